# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Error taxonomy for the form auto-fill pipeline.

Services catch these at their entry points and report them on their result
objects (``error`` / ``error_kind``); helpers below the entry points raise.
"""

from dataclasses import dataclass
from typing import List, Optional


class FormFillError(Exception):
    """Base class for pipeline errors."""

    kind = "FormFillError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UnsupportedInputError(FormFillError):
    """The declared mime type (or document content) cannot be processed. Not retryable."""

    kind = "UnsupportedInput"

    def __init__(self, message: str, mime_type: Optional[str] = None):
        super().__init__(message)
        self.mime_type = mime_type


class ProviderFailureError(FormFillError):
    """A recognition or classification provider call failed. Retryable by the caller."""

    kind = "ProviderFailure"

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class ValidationFailureError(FormFillError):
    """A request is malformed; raised before any external call is made."""

    kind = "ValidationFailure"

    def __init__(self, message: str, problems: List[str] = None):
        super().__init__(message)
        self.problems = problems or []


@dataclass
class RenderFailure:
    """A single field the renderer skipped; the document is still produced."""

    field_id: str
    reason: str

    kind = "RenderFailure"

    def to_dict(self):
        return {"field_id": self.field_id, "reason": self.reason}


def error_kind(error: Exception) -> str:
    """Return the taxonomy kind for an exception, or its class name for foreign errors."""
    return getattr(error, "kind", type(error).__name__)
