# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Data models for field classification.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from formfill_common.models import ClassifiedField


@dataclass
class ClassificationEntry:
    """One structured entry returned by a classification provider."""

    candidate_id: str
    """Id of the submitted candidate this entry describes."""

    key: str = ""
    label: str = ""
    type: str = "text"
    required: bool = False
    confidence: Optional[float] = None
    """Provider confidence (0-1); None when the provider did not report one."""

    suggestions: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClassificationEntry":
        """Build an entry from a provider's JSON object, tolerating missing keys."""
        confidence = data.get("confidence")
        try:
            confidence = float(confidence) if confidence is not None else None
        except (TypeError, ValueError):
            confidence = None

        suggestions = data.get("suggestions") or []
        if not isinstance(suggestions, list):
            suggestions = [suggestions]

        return cls(
            candidate_id=str(data.get("id", data.get("candidate_id", ""))),
            key=str(data.get("key") or ""),
            label=str(data.get("label") or ""),
            type=str(data.get("type") or "text"),
            required=bool(data.get("required", False)),
            confidence=confidence,
            suggestions=[str(s) for s in suggestions if s is not None],
        )


@dataclass
class ClassificationResult:
    """Outcome of one classification call; failures carry no fields."""

    success: bool
    fields: List[ClassifiedField] = field(default_factory=list)
    processing_time_ms: float = 0.0
    error: Optional[str] = None
    error_kind: Optional[str] = None
    metering: Dict[str, Any] = field(default_factory=dict)
    dropped_entries: int = 0
    """Provider entries discarded because their id matched no submitted candidate."""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation for API responses."""
        result = {
            "success": self.success,
            "fields": [f.to_dict() for f in self.fields],
            "processing_time_ms": self.processing_time_ms,
            "dropped_entries": self.dropped_entries,
        }
        if self.metering:
            result["metering"] = self.metering
        if self.error:
            result["error"] = self.error
            result["error_kind"] = self.error_kind
        return result
