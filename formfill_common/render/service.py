# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Document renderer.

Draws resolved field values onto the original document with PyMuPDF: text
runs for text-like fields, a vector check mark for checked boxes and an
aspect-preserving image for signatures. Native PDFs keep their pages;
single images are promoted to a one-page PDF sized in pixels.
"""

import logging
import time
import traceback
from typing import Any, Dict, List, Optional

import fitz  # PyMuPDF

from formfill_common import image
from formfill_common.config import build_config
from formfill_common.exceptions import (
    FormFillError,
    RenderFailure,
    UnsupportedInputError,
    error_kind,
)
from formfill_common.models import ClassifiedField, FieldType, RenderRequest
from formfill_common.render.geometry import (
    CHECK_SIZE_RATIO,
    AbsoluteRect,
    check_mark_points,
    clip_text,
    fit_within,
    text_baseline,
    text_font_size,
    to_absolute,
)
from formfill_common.render.models import RenderResult

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"
# Formats MuPDF embeds directly; anything else is re-encoded as PNG first
DIRECT_IMAGE_TYPES = {"image/jpeg", "image/jpg", "image/png"}
SUPPORTED_IMAGE_TYPES = DIRECT_IMAGE_TYPES | {"image/webp"}

FALSY_STRINGS = {"", "0", "false", "no", "off", "n", "unchecked", "none"}

BLACK = (0, 0, 0)


def is_checked(value: Any) -> bool:
    """Truthiness of a checkbox mapping value; strings like "no" and "false" are unchecked."""
    if isinstance(value, str):
        return value.strip().lower() not in FALSY_STRINGS
    return bool(value)


class DocumentRenderer:
    """Overlays field mappings onto a PDF or a single promoted image."""

    def __init__(self, config: Dict[str, Any] = None):
        """
        Initialize the renderer.

        Args:
            config: Configuration dictionary; the ``render`` section is used
        """
        self.config = build_config(config)
        render_config = self.config.get("render", {})
        self.default_font_size = float(render_config.get("default_font_size", 12))
        self.padding = float(render_config.get("padding", 2))
        self.fontname = render_config.get("font", "helv")
        self.check_scale = float(render_config.get("check_scale", CHECK_SIZE_RATIO))

    def render(self, request: RenderRequest) -> RenderResult:
        """
        Produce a filled PDF.

        Per-field problems are collected as skipped fields and do not fail
        the render. This method does not raise.
        """
        t0 = time.time()
        mime_type = (request.mime_type or "").strip().lower()
        skipped: List[RenderFailure] = []

        try:
            if mime_type == PDF_MIME_TYPE:
                doc = self._open_pdf(request.document_bytes)
                try:
                    self._render_pdf(doc, request, skipped)
                    output, page_count = self._save(doc)
                finally:
                    doc.close()
            elif mime_type in SUPPORTED_IMAGE_TYPES:
                doc = self._promote_image(request.document_bytes, mime_type)
                try:
                    self._draw_mappings(doc, request, skipped, skip_overridden_dates=False)
                    output, page_count = self._save(doc)
                finally:
                    doc.close()
            else:
                raise UnsupportedInputError(f"Unsupported file type: {mime_type or 'unknown'}", mime_type=mime_type)

        except FormFillError as e:
            logger.error(f"Rendering failed ({e.kind}): {e}")
            return self._failure(t0, e, skipped)
        except Exception as e:
            logger.error(f"Rendering failed: {str(e)}\nStack trace:\n{traceback.format_exc()}")
            return self._failure(t0, e, skipped)

        elapsed_ms = (time.time() - t0) * 1000
        logger.info(
            f"Rendered {page_count} page(s), {len(skipped)} field(s) skipped, "
            f"in {elapsed_ms / 1000:.2f} seconds"
        )
        return RenderResult(
            success=True,
            document_bytes=output,
            page_count=page_count,
            file_size=len(output),
            skipped_fields=skipped,
            processing_time_ms=elapsed_ms,
        )

    @staticmethod
    def _failure(t0: float, error: Exception, skipped: List[RenderFailure]) -> RenderResult:
        return RenderResult(
            success=False,
            skipped_fields=skipped,
            processing_time_ms=(time.time() - t0) * 1000,
            error=str(error),
            error_kind=error_kind(error),
        )

    @staticmethod
    def _save(doc: fitz.Document):
        return doc.tobytes(garbage=3, deflate=True), doc.page_count

    @staticmethod
    def _open_pdf(document_bytes: bytes) -> fitz.Document:
        try:
            doc = fitz.open(stream=document_bytes, filetype="pdf")
        except Exception as e:
            raise UnsupportedInputError(f"Could not open PDF: {e}", mime_type=PDF_MIME_TYPE) from e
        if doc.page_count == 0:
            doc.close()
            raise UnsupportedInputError("PDF has no pages", mime_type=PDF_MIME_TYPE)
        return doc

    @staticmethod
    def _promote_image(document_bytes: bytes, mime_type: str) -> fitz.Document:
        """One-page PDF at the image's pixel size with the image as background."""
        try:
            width, height = image.get_image_size(document_bytes)
            background = document_bytes if mime_type in DIRECT_IMAGE_TYPES else image.to_png_bytes(document_bytes)
        except ValueError as e:
            raise UnsupportedInputError(str(e), mime_type=mime_type) from e

        doc = fitz.open()
        page = doc.new_page(width=width, height=height)
        page.insert_image(page.rect, stream=background)
        logger.debug(f"Promoted {mime_type} image to a {width}x{height} page")
        return doc

    def _render_pdf(self, doc: fitz.Document, request: RenderRequest, skipped: List[RenderFailure]) -> None:
        self._draw_mappings(doc, request, skipped, skip_overridden_dates=True)
        if request.signature_image:
            self._place_signatures(doc, request, skipped)
        if request.date_overrides:
            self._place_date_overrides(doc, request, skipped)

    def _page_for(self, doc: fitz.Document, f: ClassifiedField, skipped: List[RenderFailure]):
        page_index = f.bbox.page - 1
        if page_index < 0 or page_index >= doc.page_count:
            self._skip(skipped, f.id, f"page {f.bbox.page} not found")
            return None
        return doc[page_index]

    @staticmethod
    def _skip(skipped: List[RenderFailure], field_id: str, reason: str) -> None:
        logger.warning(f"Skipping field {field_id}: {reason}")
        skipped.append(RenderFailure(field_id=field_id, reason=reason))

    @staticmethod
    def _date_override(request: RenderRequest, f: ClassifiedField) -> Optional[str]:
        overrides = request.date_overrides or {}
        return overrides.get(f.id) or overrides.get(f.key)

    def _draw_mappings(self, doc: fitz.Document, request: RenderRequest, skipped: List[RenderFailure],
                       skip_overridden_dates: bool) -> None:
        fields_by_id = {f.id: f for f in request.fields}
        for mapping in request.mappings:
            if not mapping.is_resolved:
                continue
            f = fields_by_id.get(mapping.field_id)
            if f is None:
                self._skip(skipped, mapping.field_id, "field not found")
                continue
            if skip_overridden_dates and f.type == FieldType.DATE and self._date_override(request, f):
                continue
            page = self._page_for(doc, f, skipped)
            if page is None:
                continue
            self.draw_field(page, f, mapping.value, request.signature_image, skipped)

    def _place_signatures(self, doc: fitz.Document, request: RenderRequest, skipped: List[RenderFailure]) -> None:
        resolved = {m.field_id for m in request.mappings if m.is_resolved}
        for f in request.fields:
            if f.type != FieldType.SIGNATURE or f.id in resolved:
                continue
            page = self._page_for(doc, f, skipped)
            if page is None:
                continue
            rect = to_absolute(f.bbox, page.rect.width, page.rect.height)
            self.draw_signature(page, f.id, request.signature_image, rect, skipped)

    def _place_date_overrides(self, doc: fitz.Document, request: RenderRequest, skipped: List[RenderFailure]) -> None:
        for f in request.fields:
            if f.type != FieldType.DATE:
                continue
            value = self._date_override(request, f)
            if not value:
                continue
            page = self._page_for(doc, f, skipped)
            if page is None:
                continue
            rect = to_absolute(f.bbox, page.rect.width, page.rect.height)
            self.draw_text(page, str(value), rect)

    def draw_field(self, page, f: ClassifiedField, value: Any, signature_image: Optional[bytes],
                   skipped: List[RenderFailure]) -> None:
        """Draw one mapping value according to the field type."""
        rect = to_absolute(f.bbox, page.rect.width, page.rect.height)

        if f.type == FieldType.CHECKBOX:
            if is_checked(value):
                self.draw_check_mark(page, rect)
        elif f.type == FieldType.SIGNATURE:
            if isinstance(value, (bytes, bytearray)):
                self.draw_signature(page, f.id, bytes(value), rect, skipped)
            elif signature_image:
                self.draw_signature(page, f.id, signature_image, rect, skipped)
            elif isinstance(value, str):
                self.draw_text(page, value, rect)
        else:
            # radio, select and address values are written as text too
            self.draw_text(page, str(value), rect)

    def draw_text(self, page, text: str, rect: AbsoluteRect) -> None:
        font_size = text_font_size(rect.height, self.default_font_size)
        text = clip_text(text.replace("\n", " "), rect.width - 2 * self.padding, font_size, self.fontname)
        if not text:
            return
        baseline = text_baseline(rect, font_size)
        point = fitz.Point(rect.x + self.padding, page.rect.height - baseline)
        page.insert_text(point, text, fontsize=font_size, fontname=self.fontname, color=BLACK)

    def draw_check_mark(self, page, rect: AbsoluteRect) -> None:
        points = check_mark_points(rect, page.rect.height, self.check_scale)
        side = min(rect.width, rect.height) * self.check_scale
        shape = page.new_shape()
        shape.draw_polyline(points)
        shape.finish(color=BLACK, width=max(0.5, side * 0.12), closePath=False)
        shape.commit()

    def draw_signature(self, page, field_id: str, signature_image: bytes, rect: AbsoluteRect,
                       skipped: List[RenderFailure]) -> None:
        try:
            png = image.to_png_bytes(signature_image)
            img_width, img_height = image.get_image_size(png)
        except ValueError as e:
            self._skip(skipped, field_id, f"signature image undecodable: {e}")
            return

        draw_width, draw_height, offset_x, offset_y = fit_within(img_width, img_height, rect.width, rect.height)
        if draw_width <= 0 or draw_height <= 0:
            self._skip(skipped, field_id, "signature field has no area")
            return

        target = rect.inset(offset_x, offset_y, draw_width, draw_height)
        page.insert_image(target.to_fitz_rect(page.rect.height), stream=png, keep_proportion=False)
