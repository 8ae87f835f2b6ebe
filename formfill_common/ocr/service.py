# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Candidate extraction service for form documents.

PDFs with a text layer are read directly with PyMuPDF (text spans and
interactive form widgets). Image-only PDFs are rasterized page by page and,
like uploaded images, routed through a text-recognition provider chain of
Amazon Textract with a local Tesseract fallback.
"""

import logging
import os
import time
import traceback
from typing import Any, Dict, List, Optional, Tuple

import fitz  # PyMuPDF

from formfill_common import image
from formfill_common.config import build_config
from formfill_common.exceptions import (
    FormFillError,
    UnsupportedInputError,
    error_kind,
)
from formfill_common.models import BoundingBox, Candidate
from formfill_common.ocr.providers import (
    TextRecognitionProvider,
    recognize_with_fallback,
    select_recognition_providers,
)
from formfill_common.ocr.results import ExtractionResult, RecognizedText

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"
SUPPORTED_IMAGE_TYPES = ["image/jpeg", "image/jpg", "image/png", "image/webp"]
# Textract reads JPEG and PNG only; other image types are re-encoded first
RECOGNIZER_IMAGE_TYPES = ["image/jpeg", "image/jpg", "image/png"]

PDF_TEXT_CONFIDENCE = 0.95
PDF_WIDGET_CONFIDENCE = 1.0


class OcrService:
    """Turns document bytes into positioned candidates."""

    def __init__(
        self,
        config: Dict[str, Any] = None,
        region: Optional[str] = None,
        providers: Optional[List[TextRecognitionProvider]] = None,
        textract_client=None,
    ):
        """
        Initialize the extraction service.

        Args:
            config: Configuration dictionary; the ``ocr`` section is used
            region: AWS region for Textract
            providers: Fixed provider chain, bypassing size/mode selection
            textract_client: Optional pre-built Textract client
        """
        self.config = build_config(config)
        self.ocr_config = self.config.get("ocr", {})
        self.region = region or os.environ.get("AWS_REGION", "us-east-1")
        self.providers = providers
        self.textract_client = textract_client
        self.dpi = int(self.ocr_config.get("dpi", 144))
        self.min_confidence = float(self.ocr_config.get("min_confidence", 0.30))

        logger.info(f"OCR Service initialized with backend: {self.ocr_config.get('backend', 'auto')}, DPI: {self.dpi}")

    def extract_candidates(self, document_bytes: bytes, mime_type: str) -> ExtractionResult:
        """
        Extract candidates from a PDF or raster image.

        Failures are reported on the result with an empty candidate list and
        the elapsed time; this method does not raise.
        """
        t0 = time.time()
        mime_type = (mime_type or "").strip().lower()

        try:
            if mime_type == PDF_MIME_TYPE:
                candidates, provider, page_count = self._process_pdf(document_bytes)
            elif mime_type in SUPPORTED_IMAGE_TYPES:
                if mime_type not in RECOGNIZER_IMAGE_TYPES:
                    document_bytes = self._to_png(document_bytes, mime_type)
                candidates, provider = self._process_image(document_bytes, page_number=1)
                page_count = 1
            else:
                raise UnsupportedInputError(f"Unsupported file type: {mime_type or 'unknown'}", mime_type=mime_type)

            elapsed_ms = (time.time() - t0) * 1000
            logger.info(
                f"Extracted {len(candidates)} candidates from {page_count} page(s) "
                f"with {provider} in {elapsed_ms / 1000:.2f} seconds"
            )
            return ExtractionResult(
                success=True,
                candidates=candidates,
                processing_time_ms=elapsed_ms,
                provider=provider,
                page_count=page_count,
            )

        except FormFillError as e:
            logger.error(f"Candidate extraction failed ({e.kind}): {e}")
            return self._failure(t0, e)
        except Exception as e:
            error_msg = f"Candidate extraction failed: {str(e)}"
            logger.error(f"{error_msg}\nStack trace:\n{traceback.format_exc()}")
            return self._failure(t0, e)

    @staticmethod
    def _to_png(image_data: bytes, mime_type: str) -> bytes:
        try:
            return image.to_png_bytes(image_data)
        except ValueError as e:
            raise UnsupportedInputError(f"Could not decode {mime_type} image: {e}", mime_type=mime_type) from e

    @staticmethod
    def _failure(t0: float, error: Exception) -> ExtractionResult:
        return ExtractionResult(
            success=False,
            candidates=[],
            processing_time_ms=(time.time() - t0) * 1000,
            error=str(error),
            error_kind=error_kind(error),
        )

    def _process_pdf(self, pdf_content: bytes) -> Tuple[List[Candidate], str, int]:
        try:
            pdf_document = fitz.open(stream=pdf_content, filetype="pdf")
        except Exception as e:
            raise UnsupportedInputError(f"Could not open PDF: {e}", mime_type=PDF_MIME_TYPE) from e

        try:
            num_pages = len(pdf_document)
            if num_pages == 0:
                raise UnsupportedInputError("PDF has no pages", mime_type=PDF_MIME_TYPE)
            candidates = []
            seen_ids = set()
            for page_index in range(num_pages):
                page = pdf_document.load_page(page_index)
                candidates.extend(self._page_text_candidates(page, page_index + 1, seen_ids))
                candidates.extend(self._page_widget_candidates(page, page_index + 1, seen_ids))

            if candidates:
                return candidates, "pdf", num_pages

            logger.info(f"No text layer found in {num_pages} page(s), rasterizing for recognition")
            providers_used = []
            for page_index in range(num_pages):
                page = pdf_document.load_page(page_index)
                pix = page.get_pixmap(dpi=self.dpi)
                page_candidates, provider = self._process_image(pix.tobytes("png"), page_number=page_index + 1)
                candidates.extend(page_candidates)
                providers_used.append(provider)

            provider = providers_used[0] if len(set(providers_used)) == 1 else ",".join(providers_used)
            return candidates, provider or "none", num_pages
        finally:
            pdf_document.close()

    def _page_text_candidates(self, page, page_number: int, seen_ids: set) -> List[Candidate]:
        """One candidate per non-empty text span."""
        page_width = page.rect.width or 1
        page_height = page.rect.height or 1
        candidates = []

        text_dict = page.get_text("dict")
        for block in text_dict.get("blocks", []):
            for line in block.get("lines", []):
                for span in line.get("spans", []):
                    text = (span.get("text") or "").strip()
                    if not text:
                        continue
                    x0, y0, x1, y1 = span["bbox"]
                    candidate_id = self._unique_id(f"pdf-{page_number}-{x0:.2f}-{y0:.2f}", seen_ids)
                    bbox = BoundingBox(
                        page=page_number,
                        x=x0 / page_width,
                        y=y0 / page_height,
                        width=(x1 - x0) / page_width,
                        height=(y1 - y0) / page_height,
                    )
                    candidates.append(Candidate(
                        id=candidate_id,
                        raw_text=text,
                        confidence=PDF_TEXT_CONFIDENCE,
                        bbox=self._checked_bbox(bbox, candidate_id),
                    ))
        return candidates

    def _page_widget_candidates(self, page, page_number: int, seen_ids: set) -> List[Candidate]:
        """One candidate per named interactive form field."""
        page_width = page.rect.width or 1
        page_height = page.rect.height or 1
        candidates = []

        for widget in page.widgets() or []:
            field_name = (widget.field_name or "").strip()
            if not field_name:
                continue
            rect = widget.rect
            candidate_id = self._unique_id(f"field-{page_number}-{field_name}", seen_ids)
            bbox = BoundingBox(
                page=page_number,
                x=rect.x0 / page_width,
                y=rect.y0 / page_height,
                width=rect.width / page_width,
                height=rect.height / page_height,
            )
            candidates.append(Candidate(
                id=candidate_id,
                raw_text=field_name,
                confidence=PDF_WIDGET_CONFIDENCE,
                bbox=self._checked_bbox(bbox, candidate_id),
            ))
        return candidates

    def _process_image(self, image_data: bytes, page_number: int = 1) -> Tuple[List[Candidate], str]:
        providers = self.providers or select_recognition_providers(
            len(image_data), self.ocr_config, textract_client=self.textract_client, region=self.region
        )
        provider_name, items = recognize_with_fallback(providers, image_data, page_number)

        candidates = []
        for item in items:
            candidate = self._to_candidate(item)
            if candidate.confidence < self.min_confidence:
                continue
            candidates.append(candidate)

        logger.debug(f"Kept {len(candidates)} of {len(items)} recognized items on page {page_number}")
        return candidates, provider_name

    def _to_candidate(self, item: RecognizedText) -> Candidate:
        """Normalize provider confidence to 0-1 and the box to page-relative units."""
        if item.normalized:
            bbox = BoundingBox(page=item.page, x=item.left, y=item.top, width=item.width, height=item.height)
        else:
            image_width = item.image_width or 1
            image_height = item.image_height or 1
            bbox = BoundingBox(
                page=item.page,
                x=item.left / image_width,
                y=item.top / image_height,
                width=item.width / image_width,
                height=item.height / image_height,
            )

        return Candidate(
            id=item.id,
            raw_text=item.text,
            confidence=max(0.0, min(1.0, item.confidence / 100.0)),
            bbox=self._checked_bbox(bbox, item.id),
        )

    @staticmethod
    def _checked_bbox(bbox: BoundingBox, candidate_id: str) -> BoundingBox:
        if bbox.is_normalized():
            return bbox
        logger.warning(f"Bounding box for {candidate_id} outside the page, clamping: {bbox.to_dict()}")
        return bbox.clamped()

    @staticmethod
    def _unique_id(candidate_id: str, seen_ids: set) -> str:
        unique_id = candidate_id
        suffix = 1
        while unique_id in seen_ids:
            suffix += 1
            unique_id = f"{candidate_id}-{suffix}"
        seen_ids.add(unique_id)
        return unique_id
