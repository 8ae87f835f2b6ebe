# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Coordinate conversion between normalized field boxes and page space.

Normalized boxes use a top-left origin. Absolute rectangles use the PDF
convention of a bottom-left origin in points (or pixels for promoted
images); PyMuPDF itself addresses pages from the top-left, so rectangles are
flipped back with ``to_fitz_rect`` right before drawing.
"""

from dataclasses import dataclass
from typing import Tuple

import fitz  # PyMuPDF

from formfill_common.models import BoundingBox

TEXT_HEIGHT_RATIO = 0.7
CHECK_SIZE_RATIO = 0.6


@dataclass(frozen=True)
class AbsoluteRect:
    """Rectangle in page units with a bottom-left origin."""

    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> Tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2

    def to_fitz_rect(self, page_height: float) -> fitz.Rect:
        top = page_height - self.y - self.height
        return fitz.Rect(self.x, top, self.x + self.width, top + self.height)

    def inset(self, dx: float, dy: float, width: float, height: float) -> "AbsoluteRect":
        """Sub-rectangle at offset (dx, dy) from this rectangle's bottom-left corner."""
        return AbsoluteRect(self.x + dx, self.y + dy, width, height)


def to_absolute(bbox: BoundingBox, page_width: float, page_height: float) -> AbsoluteRect:
    """
    Convert a normalized box to absolute bottom-left-origin coordinates.

    The box is clamped to the unit page first, so the result always lies
    within ``[0, page_width] x [0, page_height]``.
    """
    box = bbox.clamped()
    width = box.width * page_width
    height = box.height * page_height
    x = box.x * page_width
    y = page_height - box.y * page_height - height
    return AbsoluteRect(x=x, y=max(0.0, y), width=width, height=height)


def fit_within(image_width: float, image_height: float,
               box_width: float, box_height: float) -> Tuple[float, float, float, float]:
    """
    Scale an image into a box preserving aspect ratio and center it.

    Returns:
        Tuple of (draw_width, draw_height, offset_x, offset_y)
    """
    if image_width <= 0 or image_height <= 0 or box_width <= 0 or box_height <= 0:
        return 0.0, 0.0, 0.0, 0.0
    scale = min(box_width / image_width, box_height / image_height)
    draw_width = image_width * scale
    draw_height = image_height * scale
    return draw_width, draw_height, (box_width - draw_width) / 2, (box_height - draw_height) / 2


def text_font_size(field_height: float, default_size: float) -> float:
    return min(default_size, field_height * TEXT_HEIGHT_RATIO)


def text_baseline(rect: AbsoluteRect, font_size: float) -> float:
    """Baseline y (bottom-left origin) that vertically centers a run of font_size."""
    return rect.y + (rect.height - font_size) / 2


def clip_text(text: str, max_width: float, font_size: float, fontname: str = "helv") -> str:
    """Longest prefix of text whose rendered width fits in max_width."""
    if max_width <= 0 or font_size <= 0:
        return ""
    if fitz.get_text_length(text, fontname=fontname, fontsize=font_size) <= max_width:
        return text

    low, high = 0, len(text)
    while low < high:
        mid = (low + high + 1) // 2
        if fitz.get_text_length(text[:mid], fontname=fontname, fontsize=font_size) <= max_width:
            low = mid
        else:
            high = mid - 1
    return text[:low]


def check_mark_points(rect: AbsoluteRect, page_height: float,
                      scale: float = CHECK_SIZE_RATIO) -> Tuple[fitz.Point, fitz.Point, fitz.Point]:
    """
    Polyline points of a check mark centered in rect, in PyMuPDF page space.

    The mark occupies a square whose side is ``scale`` times the smaller field dimension.
    """
    side = min(rect.width, rect.height) * scale
    cx, cy = rect.center
    left = cx - side / 2
    top = page_height - (cy + side / 2)
    return (
        fitz.Point(left + 0.10 * side, top + 0.55 * side),
        fitz.Point(left + 0.40 * side, top + 0.85 * side),
        fitz.Point(left + 0.90 * side, top + 0.15 * side),
    )
