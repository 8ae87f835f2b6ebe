# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Pytest configuration file for the form-fill package tests.

Documents are built in memory with PyMuPDF and Pillow so no fixture files
are needed; AWS clients are always replaced with mocks.
"""

import io
import os

import fitz  # PyMuPDF
import pytest
from PIL import Image

# Metrics are never published from tests
os.environ["FORMFILL_METRICS_ENABLED"] = "false"
os.environ.setdefault("AWS_REGION", "us-east-1")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")

from formfill_common.models import BoundingBox, Candidate  # noqa: E402

PAGE_WIDTH = 612
PAGE_HEIGHT = 792


def build_pdf(lines=None, pages=1, widgets=None):
    """
    Build a letter-size PDF.

    Args:
        lines: List of (page_number, x, y, text) drawn with insert_text
        pages: Number of pages
        widgets: List of (page_number, field_name, fitz.Rect) text widgets
    """
    doc = fitz.open()
    for _ in range(pages):
        doc.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
    for page_number, x, y, text in lines or []:
        doc[page_number - 1].insert_text((x, y), text, fontsize=11, fontname="helv")
    for page_number, field_name, rect in widgets or []:
        widget = fitz.Widget()
        widget.field_name = field_name
        widget.field_type = fitz.PDF_WIDGET_TYPE_TEXT
        widget.rect = rect
        doc[page_number - 1].add_widget(widget)
    data = doc.tobytes()
    doc.close()
    return data


def build_image(width=200, height=100, fmt="PNG", color=(255, 255, 255)):
    image = Image.new("RGB", (width, height), color)
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def make_candidate(candidate_id, text, x, y, width=0.1, height=0.02, page=1, confidence=0.95):
    return Candidate(
        id=candidate_id,
        raw_text=text,
        confidence=confidence,
        bbox=BoundingBox(page=page, x=x, y=y, width=width, height=height),
    )


@pytest.fixture
def pdf_factory():
    return build_pdf


@pytest.fixture
def image_factory():
    return build_image


@pytest.fixture
def candidate_factory():
    return make_candidate
