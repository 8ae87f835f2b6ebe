# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Text-recognition providers for raster pages.

Each provider turns image bytes into RecognizedText items with a 0-100
confidence. The Amazon Textract provider is preferred; the Tesseract
provider runs locally and is used when Textract is disabled, the payload is
too large, or Textract fails.
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import boto3
import pytesseract
from botocore.config import Config

from formfill_common import image
from formfill_common.exceptions import ProviderFailureError
from formfill_common.ocr.results import RecognizedText

logger = logging.getLogger(__name__)

VALID_TEXTRACT_FEATURES = ["TABLES", "FORMS", "SIGNATURES", "LAYOUT"]

TESSERACT_WHITELIST = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz .,:-()[]/"

# Tesseract words at or below this confidence are noise
TESSERACT_MIN_WORD_CONFIDENCE = 30


class TextRecognitionProvider(ABC):
    """Recognizes positioned text on one raster page."""

    name = "base"

    @abstractmethod
    def recognize(self, image_data: bytes, page_number: int = 1) -> List[RecognizedText]:
        """
        Recognize text on an image.

        Raises:
            ProviderFailureError: If the provider call fails
        """


class TextractProvider(TextRecognitionProvider):
    """Amazon Textract analyze_document with FORMS and TABLES."""

    name = "textract"

    def __init__(self, region: Optional[str] = None, features: Optional[List[str]] = None,
                 client=None):
        self.region = region or os.environ.get("AWS_REGION", "us-east-1")
        self.features = list(features or ["FORMS", "TABLES"])

        invalid_features = [f for f in self.features if f not in VALID_TEXTRACT_FEATURES]
        if invalid_features:
            error_msg = f"Invalid Textract feature(s) specified: {invalid_features}. Valid features are: {VALID_TEXTRACT_FEATURES}"
            logger.error(error_msg)
            raise ValueError(error_msg)

        self._client = client

    @property
    def client(self):
        if self._client is None:
            # Initialize Textract client with adaptive retries
            adaptive_config = Config(retries={"max_attempts": 10, "mode": "adaptive"})
            self._client = boto3.client("textract", region_name=self.region, config=adaptive_config)
        return self._client

    def recognize(self, image_data: bytes, page_number: int = 1) -> List[RecognizedText]:
        try:
            response = self.client.analyze_document(
                Document={"Bytes": image_data},
                FeatureTypes=self.features,
            )
        except Exception as e:
            raise ProviderFailureError(f"Textract analyze_document failed: {e}", provider=self.name) from e

        return self.parse_response(response, page_number)

    def parse_response(self, response: Dict[str, Any], page_number: int = 1) -> List[RecognizedText]:
        """
        Convert LINE blocks and KEY blocks of KEY_VALUE_SET into recognized text.

        Textract geometry is already normalized to the page.
        """
        blocks = response.get("Blocks") or []
        blocks_by_id = {block.get("Id"): block for block in blocks}
        items = []

        for block in blocks:
            if block.get("BlockType") != "LINE":
                continue
            text = (block.get("Text") or "").strip()
            bbox = block.get("Geometry", {}).get("BoundingBox")
            if text and bbox:
                items.append(self._to_item(f"textract-{block['Id']}", text, block, bbox, page_number))

        for block in blocks:
            if block.get("BlockType") != "KEY_VALUE_SET" or "KEY" not in block.get("EntityTypes", []):
                continue
            bbox = block.get("Geometry", {}).get("BoundingBox")
            text = self._child_text(block, blocks_by_id)
            if text and bbox:
                items.append(self._to_item(f"textract-key-{block['Id']}", text, block, bbox, page_number))

        logger.debug(f"Textract returned {len(items)} text items for page {page_number}")
        return items

    @staticmethod
    def _child_text(block: Dict[str, Any], blocks_by_id: Dict[str, Dict[str, Any]]) -> str:
        words = []
        for relationship in block.get("Relationships", []):
            if relationship.get("Type") != "CHILD":
                continue
            for child_id in relationship.get("Ids", []):
                child = blocks_by_id.get(child_id)
                if child and child.get("BlockType") == "WORD" and child.get("Text"):
                    words.append(child["Text"])
        return " ".join(words).strip()

    @staticmethod
    def _to_item(item_id: str, text: str, block: Dict[str, Any], bbox: Dict[str, float],
                 page_number: int) -> RecognizedText:
        return RecognizedText(
            id=item_id,
            text=text,
            confidence=float(block.get("Confidence") or 0.0),
            left=float(bbox.get("Left", 0.0)),
            top=float(bbox.get("Top", 0.0)),
            width=float(bbox.get("Width", 0.0)),
            height=float(bbox.get("Height", 0.0)),
            page=page_number,
            normalized=True,
        )


class TesseractProvider(TextRecognitionProvider):
    """Offline recognition with the Tesseract engine via pytesseract."""

    name = "tesseract"

    def __init__(self, lang: str = "eng", binarize: bool = False):
        self.lang = lang
        self.binarize = binarize
        self.tesseract_config = (
            f"-c tessedit_char_whitelist='{TESSERACT_WHITELIST}' -c preserve_interword_spaces=1"
        )

    def recognize(self, image_data: bytes, page_number: int = 1) -> List[RecognizedText]:
        try:
            source = image.open_image(image_data)
            if self.binarize:
                source = image.apply_adaptive_binarization(source)
            width, height = source.size
            data = pytesseract.image_to_data(
                source,
                lang=self.lang,
                config=self.tesseract_config,
                output_type=pytesseract.Output.DICT,
            )
        except Exception as e:
            raise ProviderFailureError(f"Tesseract recognition failed: {e}", provider=self.name) from e

        return self.parse_data(data, width, height, page_number)

    def parse_data(self, data: Dict[str, List[Any]], width: int, height: int,
                   page_number: int = 1) -> List[RecognizedText]:
        """Convert pytesseract image_to_data output into recognized words."""
        items = []
        for i, raw_text in enumerate(data.get("text", [])):
            text = (raw_text or "").strip()
            try:
                confidence = float(data["conf"][i])
            except (TypeError, ValueError):
                continue
            if not text or confidence <= TESSERACT_MIN_WORD_CONFIDENCE:
                continue

            left = int(data["left"][i])
            top = int(data["top"][i])
            items.append(RecognizedText(
                id=f"tesseract-{page_number}-{left}-{top}",
                text=text,
                confidence=confidence,
                left=left,
                top=top,
                width=int(data["width"][i]),
                height=int(data["height"][i]),
                page=page_number,
                normalized=False,
                image_width=width or 1,
                image_height=height or 1,
            ))

        logger.debug(f"Tesseract returned {len(items)} words for page {page_number}")
        return items


def is_local_mode(ocr_config: Dict[str, Any]) -> bool:
    """True when cloud recognition is disabled by the environment or configuration."""
    if os.environ.get("FORMFILL_OCR_MODE", "").lower() == "local":
        return True
    return str(ocr_config.get("backend", "auto")).lower() == "tesseract"


def select_recognition_providers(payload_size: int, ocr_config: Dict[str, Any],
                                 textract_client=None, region: Optional[str] = None) -> List[TextRecognitionProvider]:
    """
    Choose the ordered provider chain for one raster payload.

    Textract comes first unless local mode is on or the payload exceeds
    ``max_cloud_bytes``; Tesseract is always the last resort except when the
    backend is pinned to ``textract``.
    """
    backend = str(ocr_config.get("backend", "auto")).lower()
    max_cloud_bytes = int(ocr_config.get("max_cloud_bytes", 10 * 1024 * 1024))
    tesseract = TesseractProvider(
        lang=ocr_config.get("tesseract_lang", "eng"),
        binarize=bool(ocr_config.get("binarize", False)),
    )

    if is_local_mode(ocr_config):
        return [tesseract]

    if payload_size > max_cloud_bytes:
        logger.info(f"Payload of {payload_size} bytes exceeds {max_cloud_bytes}, using local recognizer")
        return [tesseract]

    textract = TextractProvider(
        region=region,
        features=ocr_config.get("textract_features"),
        client=textract_client,
    )
    if backend == "textract":
        return [textract]
    return [textract, tesseract]


def recognize_with_fallback(providers: List[TextRecognitionProvider], image_data: bytes,
                            page_number: int = 1):
    """
    Run providers in order until one succeeds.

    Returns:
        Tuple of (provider name, recognized items)

    Raises:
        ProviderFailureError: If every provider fails
    """
    errors = []
    for provider in providers:
        try:
            return provider.name, provider.recognize(image_data, page_number)
        except ProviderFailureError as e:
            logger.warning(f"{provider.name} failed on page {page_number}, trying next provider: {e}")
            errors.append(f"{provider.name}: {e}")

    raise ProviderFailureError(
        f"All text-recognition providers failed: {'; '.join(errors)}",
        provider=",".join(p.name for p in providers),
    )
