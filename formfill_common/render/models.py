# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Data models for document rendering.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from formfill_common.exceptions import RenderFailure


@dataclass
class RenderResult:
    """A filled PDF plus the fields that could not be drawn."""

    success: bool
    document_bytes: Optional[bytes] = None
    page_count: int = 0
    file_size: int = 0
    skipped_fields: List[RenderFailure] = field(default_factory=list)
    processing_time_ms: float = 0.0
    error: Optional[str] = None
    error_kind: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation; document bytes are omitted."""
        result = {
            "success": self.success,
            "page_count": self.page_count,
            "file_size": self.file_size,
            "skipped_fields": [s.to_dict() for s in self.skipped_fields],
            "processing_time_ms": self.processing_time_ms,
        }
        if self.error:
            result["error"] = self.error
            result["error_kind"] = self.error_kind
        return result
