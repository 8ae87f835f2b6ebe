# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
OCR module for the form-fill package.

Provides candidate extraction from PDFs and images and the geometric
grouping pass that prepares candidates for classification.
"""

from formfill_common.ocr.grouping import CandidateGrouper
from formfill_common.ocr.results import ExtractionResult, RecognizedText
from formfill_common.ocr.service import OcrService

__all__ = ["CandidateGrouper", "ExtractionResult", "OcrService", "RecognizedText"]
