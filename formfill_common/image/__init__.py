# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

import io
import logging
from typing import Tuple

from PIL import Image, ImageFilter, UnidentifiedImageError

logger = logging.getLogger(__name__)

MIME_TO_FORMAT = {
    "image/jpeg": "JPEG",
    "image/jpg": "JPEG",
    "image/png": "PNG",
    "image/webp": "WEBP",
}


def open_image(image_data: bytes) -> Image.Image:
    """
    Decode image bytes with Pillow.

    Raises:
        ValueError: If the bytes are not a decodable image
    """
    try:
        image = Image.open(io.BytesIO(image_data))
        image.load()
        return image
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Could not decode image: {e}") from e


def get_image_size(image_data: bytes) -> Tuple[int, int]:
    """Return (width, height) in pixels."""
    return open_image(image_data).size


def to_png_bytes(image_data: bytes) -> bytes:
    """
    Re-encode any decodable image as PNG, keeping transparency.

    PyMuPDF embeds PNG reliably regardless of the source format, so
    signatures and backgrounds are normalized through this function.
    """
    image = open_image(image_data)
    if image.mode not in ("RGB", "RGBA", "L", "LA"):
        image = image.convert("RGBA")
    img_byte_array = io.BytesIO()
    image.save(img_byte_array, format="PNG")
    return img_byte_array.getvalue()


def apply_adaptive_binarization(image: Image.Image, block_size: int = 15, offset: int = 10) -> Image.Image:
    """
    Apply adaptive mean thresholding to improve offline OCR on uneven scans.

    A box-blurred copy approximates the local mean; a pixel is white when it
    is brighter than ``local_mean - offset``.

    Args:
        image: Source image
        block_size: Neighbourhood size used for the local mean
        offset: Constant subtracted from the local mean

    Returns:
        Binarized grayscale image
    """
    gray = image.convert("L") if image.mode != "L" else image
    blurred = gray.filter(ImageFilter.BoxBlur(block_size // 2))

    binary = Image.new("L", gray.size)
    binary.putdata([
        255 if orig > blur - offset else 0
        for orig, blur in zip(gray.getdata(), blurred.getdata())
    ])
    logger.debug("Applied adaptive binarization preprocessing")
    return binary
