# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Unit tests for the image helpers.
"""

import pytest
from formfill_common import image
from PIL import Image


@pytest.mark.unit
class TestImageHelpers:
    def test_get_image_size(self, image_factory):
        assert image.get_image_size(image_factory(320, 120, fmt="JPEG")) == (320, 120)

    def test_to_png_bytes(self, image_factory):
        png = image.to_png_bytes(image_factory(10, 10, fmt="WEBP"))
        assert png.startswith(b"\x89PNG")

    def test_undecodable_bytes_raise_value_error(self):
        with pytest.raises(ValueError):
            image.open_image(b"definitely not an image")

    def test_adaptive_binarization(self):
        source = Image.new("RGB", (40, 40), (200, 200, 200))
        source.paste((20, 20, 20), (15, 15, 25, 25))

        binary = image.apply_adaptive_binarization(source)

        assert binary.mode == "L"
        assert set(binary.getdata()) <= {0, 255}
        assert binary.getpixel((20, 20)) == 0
        assert binary.getpixel((2, 2)) == 255
