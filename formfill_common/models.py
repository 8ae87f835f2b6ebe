# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Data model for the form auto-fill pipeline.

Candidates and classified fields describe what was found on a document,
field mappings describe what should be written into each field, and the
user context is the read-only snapshot of stored data the values come from.
All coordinates are normalized to the page (0-1, origin top-left).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class FieldType(Enum):
    """Semantic type of a classified form field."""

    TEXT = "text"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    SELECT = "select"
    DATE = "date"
    SIGNATURE = "signature"
    NUMBER = "number"
    EMAIL = "email"
    PHONE = "phone"
    ADDRESS = "address"

    @classmethod
    def parse(cls, value: Any, default: "FieldType" = None) -> "FieldType":
        """Parse a string (or FieldType) into a FieldType, falling back to default."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            if default is None:
                raise
            return default


class MappingSource(Enum):
    """Provenance of a field mapping value."""

    PROFILE = "profile"
    HOUSEHOLD_MEMBER = "household_member"
    SAVED_DATE = "saved_date"
    MANUAL = "manual"


def _clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


@dataclass
class BoundingBox:
    """Page-normalized rectangle; origin is the top-left corner of the page."""

    page: int = 1
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def center(self) -> Tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def is_normalized(self) -> bool:
        """True when the box lies fully within the unit page."""
        return (
            self.page >= 1
            and 0.0 <= self.x <= 1.0
            and 0.0 <= self.y <= 1.0
            and self.width >= 0.0
            and self.height >= 0.0
            and self.right <= 1.0
            and self.bottom <= 1.0
        )

    def clamped(self) -> "BoundingBox":
        """
        Return a copy forced into the unit page.

        Providers occasionally report boxes slightly outside [0, 1]; the
        origin is clamped first and the size is then cut to what still fits.
        """
        x = _clamp_unit(self.x)
        y = _clamp_unit(self.y)
        width = max(0.0, min(float(self.width), 1.0 - x))
        height = max(0.0, min(float(self.height), 1.0 - y))
        return BoundingBox(page=max(1, int(self.page)), x=x, y=y, width=width, height=height)

    def union(self, other: "BoundingBox") -> "BoundingBox":
        """Smallest box on this page containing both boxes."""
        left = min(self.x, other.x)
        top = min(self.y, other.y)
        right = max(self.right, other.right)
        bottom = max(self.bottom, other.bottom)
        return BoundingBox(
            page=self.page, x=left, y=top, width=right - left, height=bottom - top
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "page": self.page,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BoundingBox":
        if not data:
            raise ValueError("Cannot create BoundingBox from empty data")
        return cls(
            page=int(data.get("page", 1)),
            x=float(data.get("x", 0.0)),
            y=float(data.get("y", 0.0)),
            width=float(data.get("width", 0.0)),
            height=float(data.get("height", 0.0)),
        )


@dataclass
class Candidate:
    """A single positioned text or form-field detection before classification."""

    id: str
    raw_text: str
    confidence: float
    bbox: BoundingBox
    nearby_text: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "raw_text": self.raw_text,
            "confidence": self.confidence,
            "bbox": self.bbox.to_dict(),
            "nearby_text": list(self.nearby_text),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Candidate":
        return cls(
            id=str(data["id"]),
            raw_text=str(data.get("raw_text", "")),
            confidence=float(data.get("confidence", 0.0)),
            bbox=BoundingBox.from_dict(data.get("bbox", {})),
            nearby_text=list(data.get("nearby_text") or []),
        )


@dataclass
class ClassifiedField:
    """A candidate enriched with a semantic key, label, type and metadata."""

    id: str
    key: str
    label: str
    type: FieldType
    bbox: BoundingBox
    raw_text: str = ""
    required: bool = False
    confidence: float = 0.0
    suggestions: List[str] = field(default_factory=list)
    save_to_profile: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "key": self.key,
            "label": self.label,
            "type": self.type.value,
            "required": self.required,
            "confidence": self.confidence,
            "bbox": self.bbox.to_dict(),
            "raw_text": self.raw_text,
            "suggestions": list(self.suggestions),
            "save_to_profile": self.save_to_profile,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClassifiedField":
        return cls(
            id=str(data["id"]),
            key=str(data.get("key", "")),
            label=str(data.get("label", "")),
            type=FieldType.parse(data.get("type", "text"), default=FieldType.TEXT),
            bbox=BoundingBox.from_dict(data.get("bbox", {})),
            raw_text=str(data.get("raw_text", "")),
            required=bool(data.get("required", False)),
            confidence=float(data.get("confidence", 0.0)),
            suggestions=list(data.get("suggestions") or []),
            save_to_profile=bool(data.get("save_to_profile", False)),
        )


@dataclass
class FieldMapping:
    """Resolved value and provenance for one classified field."""

    field_id: str
    value: Any = None
    source: MappingSource = MappingSource.MANUAL
    source_id: Optional[str] = None
    confidence: float = 0.0

    @property
    def is_resolved(self) -> bool:
        return self.value is not None and self.value != ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field_id": self.field_id,
            "value": self.value,
            "source": self.source.value,
            "source_id": self.source_id,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldMapping":
        return cls(
            field_id=str(data["field_id"]),
            value=data.get("value"),
            source=MappingSource(data.get("source", MappingSource.MANUAL.value)),
            source_id=data.get("source_id"),
            confidence=float(data.get("confidence", 0.0)),
        )

    @classmethod
    def unresolved(cls, field_id: str) -> "FieldMapping":
        return cls(field_id=field_id)


@dataclass
class Profile:
    """Stored profile of the user filling the form."""

    id: Optional[str] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    date_of_birth: Optional[str] = None
    address: Dict[str, Any] = field(default_factory=dict)
    custom_fields: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Profile":
        return cls(
            id=data.get("id"),
            full_name=data.get("full_name"),
            email=data.get("email"),
            phone=data.get("phone"),
            date_of_birth=data.get("date_of_birth"),
            address=dict(data.get("address") or {}),
            custom_fields=dict(data.get("custom_fields") or {}),
        )


@dataclass
class HouseholdMember:
    id: Optional[str]
    name: str
    date_of_birth: Optional[str] = None
    relationship: Optional[str] = None
    custom_fields: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HouseholdMember":
        return cls(
            id=data.get("id"),
            name=data.get("name", ""),
            date_of_birth=data.get("date_of_birth"),
            relationship=data.get("relationship"),
            custom_fields=dict(data.get("custom_fields") or {}),
        )


@dataclass
class SavedDate:
    id: Optional[str]
    label: str
    value: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SavedDate":
        return cls(id=data.get("id"), label=data.get("label", ""), value=data.get("value", ""))


@dataclass
class UserContext:
    """Read-only snapshot of a user's stored data, fetched once per resolution pass."""

    profile: Optional[Profile] = None
    household_members: List[HouseholdMember] = field(default_factory=list)
    saved_dates: List[SavedDate] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserContext":
        profile = data.get("profile")
        return cls(
            profile=Profile.from_dict(profile) if profile else None,
            household_members=[
                HouseholdMember.from_dict(m) for m in data.get("household_members") or []
            ],
            saved_dates=[SavedDate.from_dict(d) for d in data.get("saved_dates") or []],
        )


@dataclass
class RenderRequest:
    """Everything needed to produce one filled document; consumed once."""

    document_bytes: bytes
    mime_type: str
    fields: List[ClassifiedField]
    mappings: List[FieldMapping]
    signature_image: Optional[bytes] = None
    date_overrides: Dict[str, str] = field(default_factory=dict)
