# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Data models for auto-fill resolution.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from formfill_common.models import FieldMapping


@dataclass
class AutoFillResult:
    """Mappings for one resolution pass, one per classified field."""

    success: bool
    mappings: List[FieldMapping] = field(default_factory=list)
    auto_filled_count: int = 0
    """Number of mappings that carry a non-empty value."""

    total_fields: int = 0
    processing_time_ms: float = 0.0
    error: Optional[str] = None
    error_kind: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation for API responses."""
        result = {
            "success": self.success,
            "mappings": [m.to_dict() for m in self.mappings],
            "auto_filled_count": self.auto_filled_count,
            "total_fields": self.total_fields,
            "processing_time_ms": self.processing_time_ms,
        }
        if self.error:
            result["error"] = self.error
            result["error_kind"] = self.error_kind
        return result
