# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Unit tests for the text-recognition providers and their selection.
"""

from unittest.mock import MagicMock, patch

import pytest
from formfill_common.exceptions import ProviderFailureError
from formfill_common.ocr.providers import (
    TesseractProvider,
    TextractProvider,
    recognize_with_fallback,
    select_recognition_providers,
)


@pytest.mark.unit
class TestTextractProvider:
    @pytest.fixture
    def textract_response(self):
        return {
            "Blocks": [
                {"BlockType": "PAGE", "Id": "p"},
                {
                    "BlockType": "LINE",
                    "Id": "l1",
                    "Text": "Patient Name:",
                    "Confidence": 99.1,
                    "Geometry": {"BoundingBox": {"Left": 0.1, "Top": 0.2, "Width": 0.2, "Height": 0.02}},
                },
                {
                    "BlockType": "KEY_VALUE_SET",
                    "Id": "k1",
                    "EntityTypes": ["KEY"],
                    "Confidence": 87.0,
                    "Geometry": {"BoundingBox": {"Left": 0.1, "Top": 0.3, "Width": 0.1, "Height": 0.02}},
                    "Relationships": [{"Type": "CHILD", "Ids": ["w1", "w2"]}],
                },
                {
                    "BlockType": "KEY_VALUE_SET",
                    "Id": "v1",
                    "EntityTypes": ["VALUE"],
                    "Geometry": {"BoundingBox": {"Left": 0.3, "Top": 0.3, "Width": 0.1, "Height": 0.02}},
                },
                {"BlockType": "WORD", "Id": "w1", "Text": "Date"},
                {"BlockType": "WORD", "Id": "w2", "Text": "Signed"},
            ]
        }

    def test_parse_response(self, textract_response):
        items = TextractProvider(client=MagicMock()).parse_response(textract_response, page_number=2)

        assert [item.id for item in items] == ["textract-l1", "textract-key-k1"]
        line, key = items
        assert line.text == "Patient Name:"
        assert line.confidence == 99.1
        assert line.page == 2
        assert line.normalized
        assert key.text == "Date Signed"
        assert key.left == 0.1

    def test_recognize_calls_analyze_document(self, textract_response):
        client = MagicMock()
        client.analyze_document.return_value = textract_response
        provider = TextractProvider(client=client)

        items = provider.recognize(b"image-bytes")

        client.analyze_document.assert_called_once_with(
            Document={"Bytes": b"image-bytes"}, FeatureTypes=["FORMS", "TABLES"]
        )
        assert len(items) == 2

    def test_recognize_wraps_errors(self):
        client = MagicMock()
        client.analyze_document.side_effect = Exception("throttled")
        with pytest.raises(ProviderFailureError) as exc_info:
            TextractProvider(client=client).recognize(b"image-bytes")
        assert exc_info.value.provider == "textract"

    def test_invalid_features_rejected(self):
        with pytest.raises(ValueError):
            TextractProvider(features=["FORMS", "HANDWRITING"], client=MagicMock())


@pytest.mark.unit
class TestTesseractProvider:
    def test_parse_data_drops_empty_and_low_confidence_words(self):
        data = {
            "text": ["Name:", "", "smudge", "Email"],
            "conf": ["91.5", "-1", "12", 77],
            "left": [10, 0, 50, 10],
            "top": [20, 0, 20, 60],
            "width": [40, 0, 10, 45],
            "height": [12, 0, 12, 12],
        }
        items = TesseractProvider().parse_data(data, width=200, height=100, page_number=3)

        assert [item.text for item in items] == ["Name:", "Email"]
        first = items[0]
        assert first.id == "tesseract-3-10-20"
        assert first.confidence == 91.5
        assert not first.normalized
        assert (first.image_width, first.image_height) == (200, 100)

    def test_recognize_uses_pytesseract(self, image_factory):
        data = {"text": ["Phone"], "conf": [88], "left": [5], "top": [6], "width": [30], "height": [10]}
        with patch("formfill_common.ocr.providers.pytesseract.image_to_data", return_value=data) as mock_ocr:
            items = TesseractProvider().recognize(image_factory(200, 100))

        assert mock_ocr.call_count == 1
        assert "preserve_interword_spaces=1" in mock_ocr.call_args.kwargs["config"]
        assert items[0].image_width == 200

    def test_recognize_wraps_errors(self, image_factory):
        with patch(
            "formfill_common.ocr.providers.pytesseract.image_to_data",
            side_effect=RuntimeError("tesseract is not installed"),
        ):
            with pytest.raises(ProviderFailureError):
                TesseractProvider().recognize(image_factory())

    def test_undecodable_image_is_provider_failure(self):
        with pytest.raises(ProviderFailureError):
            TesseractProvider().recognize(b"not an image")


@pytest.mark.unit
class TestProviderSelection:
    def test_auto_prefers_textract_with_local_fallback(self, monkeypatch):
        monkeypatch.delenv("FORMFILL_OCR_MODE", raising=False)
        providers = select_recognition_providers(1024, {"backend": "auto"}, textract_client=MagicMock())
        assert [p.name for p in providers] == ["textract", "tesseract"]

    def test_oversized_payload_stays_local(self, monkeypatch):
        monkeypatch.delenv("FORMFILL_OCR_MODE", raising=False)
        providers = select_recognition_providers(2048, {"backend": "auto", "max_cloud_bytes": 1024})
        assert [p.name for p in providers] == ["tesseract"]

    def test_local_mode_flag(self, monkeypatch):
        monkeypatch.setenv("FORMFILL_OCR_MODE", "local")
        providers = select_recognition_providers(10, {"backend": "auto"})
        assert [p.name for p in providers] == ["tesseract"]

    def test_region_is_passed_to_textract(self, monkeypatch):
        monkeypatch.setenv("AWS_REGION", "us-east-1")
        monkeypatch.delenv("FORMFILL_OCR_MODE", raising=False)
        providers = select_recognition_providers(10, {"backend": "auto"}, textract_client=MagicMock(),
                                                 region="eu-west-1")
        assert providers[0].region == "eu-west-1"

    def test_textract_only_backend(self, monkeypatch):
        monkeypatch.delenv("FORMFILL_OCR_MODE", raising=False)
        providers = select_recognition_providers(10, {"backend": "textract"}, textract_client=MagicMock())
        assert [p.name for p in providers] == ["textract"]


@pytest.mark.unit
class TestRecognizeWithFallback:
    def _provider(self, name, result=None, error=None):
        provider = MagicMock()
        provider.name = name
        if error:
            provider.recognize.side_effect = error
        else:
            provider.recognize.return_value = result
        return provider

    def test_falls_back_to_next_provider(self):
        first = self._provider("textract", error=ProviderFailureError("down", provider="textract"))
        second = self._provider("tesseract", result=["item"])

        name, items = recognize_with_fallback([first, second], b"img", 1)

        assert name == "tesseract"
        assert items == ["item"]

    def test_all_providers_failing_raises(self):
        first = self._provider("textract", error=ProviderFailureError("down"))
        second = self._provider("tesseract", error=ProviderFailureError("missing binary"))

        with pytest.raises(ProviderFailureError) as exc_info:
            recognize_with_fallback([first, second], b"img", 1)
        assert "textract" in str(exc_info.value)
        assert "tesseract" in str(exc_info.value)
