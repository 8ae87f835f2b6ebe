"""
Data classes for candidate extraction results.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from formfill_common.models import Candidate


@dataclass
class RecognizedText:
    """One word or line reported by a text-recognition provider."""

    id: str
    text: str
    confidence: float
    """Provider confidence on a 0-100 scale."""

    left: float
    top: float
    width: float
    height: float
    page: int = 1
    normalized: bool = True
    """False when the box is in pixels of an image of image_width x image_height."""

    image_width: Optional[int] = None
    image_height: Optional[int] = None


@dataclass
class ExtractionResult:
    """Outcome of one extraction call; failures carry an empty candidate list."""

    success: bool
    candidates: List[Candidate] = field(default_factory=list)
    processing_time_ms: float = 0.0
    error: Optional[str] = None
    error_kind: Optional[str] = None
    provider: Optional[str] = None
    """Name of the source that produced the candidates (pdf, textract, tesseract)."""

    page_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation for API responses."""
        return {
            "success": self.success,
            "candidates": [c.to_dict() for c in self.candidates],
            "processing_time_ms": self.processing_time_ms,
            "provider": self.provider,
            "page_count": self.page_count,
            **({"error": self.error, "error_kind": self.error_kind} if self.error else {}),
        }
