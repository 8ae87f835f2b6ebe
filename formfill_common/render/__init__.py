# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Render module for the form-fill package.

Overlays resolved field values onto PDFs and promoted images.
"""

from formfill_common.render.geometry import AbsoluteRect, fit_within, to_absolute
from formfill_common.render.models import RenderResult
from formfill_common.render.service import DocumentRenderer

__all__ = ["AbsoluteRect", "DocumentRenderer", "RenderResult", "fit_within", "to_absolute"]
