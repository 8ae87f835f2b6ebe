# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Auto-fill resolution service.

For every classified field the service tries, in order, a profile match
(exact key, synonym table, fuzzy key), a saved-date match for date fields
(semantic resolvers, fuzzy label) and a household-member match for fields
that mention a relationship. The first strategy that yields a value wins;
otherwise the field gets an unresolved manual mapping.
"""

import logging
import time
import traceback
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from formfill_common.autofill.context import ProfileWriter, UserContextProvider
from formfill_common.autofill.models import AutoFillResult
from formfill_common.exceptions import (
    FormFillError,
    ProviderFailureError,
    ValidationFailureError,
    error_kind,
)
from formfill_common.models import (
    ClassifiedField,
    FieldMapping,
    FieldType,
    HouseholdMember,
    MappingSource,
    Profile,
    UserContext,
)
from formfill_common.tables import DEFAULT_TABLES, LookupTables
from formfill_common.utils import (
    DEFAULT_DATE_FORMAT,
    best_fuzzy_match,
    calculate_age,
    clamp,
    format_date,
    normalize_key,
)

logger = logging.getLogger(__name__)

EXACT_CONFIDENCE = 0.95
SYNONYM_CONFIDENCE = 0.8
DATE_RESOLVER_CONFIDENCE = 0.9
MANUAL_CONFIDENCE = 1.0

# Fuzzy profile matches stay strictly below exact matches
MAX_FUZZY_PROFILE_CONFIDENCE = 0.94

MINOR_KEYWORDS = ("child", "minor")


class AutoFillService:
    """Resolves values and provenance for classified fields from a user's stored context."""

    def __init__(
        self,
        context_provider: Optional[UserContextProvider] = None,
        profile_writer: Optional[ProfileWriter] = None,
        tables: LookupTables = DEFAULT_TABLES,
        date_format: str = DEFAULT_DATE_FORMAT,
        today_provider: Callable[[], date] = date.today,
    ):
        """
        Initialize the auto-fill service.

        Args:
            context_provider: Source of UserContext snapshots
            profile_writer: Destination for manual edits saved to the profile
            tables: Synonym, date-resolver and household lookup tables
            date_format: strftime format for every date placed in a mapping
            today_provider: Returns the current date
        """
        self.context_provider = context_provider
        self.profile_writer = profile_writer
        self.tables = tables
        self.date_format = date_format
        self.today_provider = today_provider

    @classmethod
    def from_config(cls, config: Dict[str, Any], **kwargs) -> "AutoFillService":
        """Build a service from the ``autofill`` section of a configuration dictionary."""
        autofill_config = (config or {}).get("autofill", {})
        return cls(
            tables=LookupTables.from_config(autofill_config),
            date_format=autofill_config.get("date_format", DEFAULT_DATE_FORMAT),
            **kwargs,
        )

    def auto_fill(
        self,
        fields: List[ClassifiedField],
        user_id: str,
        household_member_id: Optional[str] = None,
    ) -> AutoFillResult:
        """
        Fetch the user's context once and resolve every field.

        This method does not raise; failures are reported on the result.
        """
        t0 = time.time()
        try:
            if not user_id:
                raise ValidationFailureError("user_id is required for auto-fill", problems=["user_id"])
            if self.context_provider is None:
                raise ValueError("No user context provider configured")

            try:
                context = self.context_provider.fetch(user_id, household_member_id)
            except Exception as e:
                raise ProviderFailureError(f"Could not fetch user context: {e}", provider="user_context") from e

            if household_member_id is not None:
                context = UserContext(
                    profile=context.profile,
                    household_members=[m for m in context.household_members if m.id == household_member_id],
                    saved_dates=context.saved_dates,
                )

            mappings = self.resolve(fields, context)

        except FormFillError as e:
            logger.error(f"Auto-fill failed ({e.kind}): {e}")
            return self._failure(t0, e, len(fields))
        except Exception as e:
            logger.error(f"Auto-fill failed: {str(e)}\nStack trace:\n{traceback.format_exc()}")
            return self._failure(t0, e, len(fields))

        auto_filled_count = sum(1 for m in mappings if m.is_resolved)
        elapsed_ms = (time.time() - t0) * 1000
        logger.info(
            f"Auto-filled {auto_filled_count} of {len(fields)} fields in {elapsed_ms / 1000:.2f} seconds"
        )
        return AutoFillResult(
            success=True,
            mappings=mappings,
            auto_filled_count=auto_filled_count,
            total_fields=len(fields),
            processing_time_ms=elapsed_ms,
        )

    @staticmethod
    def _failure(t0: float, error: Exception, total_fields: int) -> AutoFillResult:
        return AutoFillResult(
            success=False,
            total_fields=total_fields,
            processing_time_ms=(time.time() - t0) * 1000,
            error=str(error),
            error_kind=error_kind(error),
        )

    def resolve(self, fields: List[ClassifiedField], context: UserContext) -> List[FieldMapping]:
        """Exactly one mapping per field, in field order."""
        return [self.map_field(f, context) for f in fields]

    def map_field(self, field: ClassifiedField, context: UserContext) -> FieldMapping:
        key = normalize_key(field.key)
        for strategy in (self.match_profile_field, self.match_date_field, self.match_household_field):
            mapping = strategy(key, field, context)
            if mapping is not None:
                logger.debug(
                    f"Resolved {field.id} ({key}) from {mapping.source.value} "
                    f"with confidence {mapping.confidence:.2f}"
                )
                return mapping
        return FieldMapping.unresolved(field.id)

    def _mapping(self, field: ClassifiedField, value: Any, source: MappingSource,
                 source_id: Optional[str], confidence: float, is_date: bool = False) -> FieldMapping:
        if is_date or field.type == FieldType.DATE:
            value = format_date(value, self.date_format)
        return FieldMapping(
            field_id=field.id,
            value=value,
            source=source,
            source_id=source_id,
            confidence=clamp(confidence),
        )

    # Profile

    def flatten_profile(self, profile: Profile) -> Dict[str, Any]:
        """Scalar fields, decomposed address and custom fields keyed by normalized name."""
        flat: Dict[str, Any] = {
            "name": profile.full_name,
            "full_name": profile.full_name,
            "email": profile.email,
            "phone": profile.phone,
            "date_of_birth": profile.date_of_birth,
        }

        address = profile.address or {}
        if isinstance(address, dict) and address:
            parts = [address.get(part) for part in ("street", "city", "state", "zip")]
            flat.update({
                "address": " ".join(str(p) for p in parts if p),
                "street": address.get("street"),
                "city": address.get("city"),
                "state": address.get("state"),
                "zip": address.get("zip"),
                "zipcode": address.get("zip"),
                "postal_code": address.get("zip"),
            })

        for custom_key, custom_value in (profile.custom_fields or {}).items():
            normalized = normalize_key(custom_key)
            if normalized:
                flat[normalized] = custom_value

        return flat

    def match_profile_field(self, key: str, field: ClassifiedField,
                            context: UserContext) -> Optional[FieldMapping]:
        profile = context.profile
        if profile is None or not key:
            return None

        flat = self.flatten_profile(profile)

        def found(profile_key: str, confidence: float) -> FieldMapping:
            return self._mapping(
                field, flat[profile_key], MappingSource.PROFILE, profile.id, confidence,
                is_date=profile_key == "date_of_birth",
            )

        if flat.get(key):
            return found(key, EXACT_CONFIDENCE)

        for canonical in self.tables.canonical_keys_for(key):
            if flat.get(canonical):
                return found(canonical, SYNONYM_CONFIDENCE)

        populated = [k for k, v in flat.items() if v]
        match = best_fuzzy_match(key, populated, self.tables.fuzzy_threshold)
        if match:
            profile_key, score = match
            return found(profile_key, min(score, MAX_FUZZY_PROFILE_CONFIDENCE))

        return None

    # Saved dates

    def _key_mentions(self, key: str, canonical: str) -> bool:
        if canonical in key:
            return True
        return any(synonym in key for synonym in self.tables.synonyms.get(canonical, ()))

    def match_date_field(self, key: str, field: ClassifiedField,
                         context: UserContext) -> Optional[FieldMapping]:
        if field.type != FieldType.DATE or not key:
            return None

        for today_key in self.tables.today_keys:
            if self._key_mentions(key, today_key):
                return self._mapping(
                    field, self.today_provider(), MappingSource.SAVED_DATE, None, DATE_RESOLVER_CONFIDENCE
                )

        for resolver_key, keyword in self.tables.date_label_keywords.items():
            if not self._key_mentions(key, resolver_key):
                continue
            saved = next(
                (d for d in context.saved_dates if d.value and keyword in (d.label or "").lower()),
                None,
            )
            if saved is not None:
                return self._mapping(
                    field, saved.value, MappingSource.SAVED_DATE, saved.id, DATE_RESOLVER_CONFIDENCE
                )

        labelled = [(normalize_key(d.label), d) for d in context.saved_dates if d.value and d.label]
        match = best_fuzzy_match(key, [label for label, _ in labelled], self.tables.fuzzy_threshold)
        if match:
            label, score = match
            saved = next(d for normalized, d in labelled if normalized == label)
            return self._mapping(field, saved.value, MappingSource.SAVED_DATE, saved.id, score)

        return None

    # Household members

    def score_household_member(self, key: str, member: HouseholdMember) -> float:
        weights = self.tables.household_weights
        relationship = (member.relationship or "").strip().lower()
        score = 0.0

        if relationship and relationship in key:
            score += weights.relationship

        if any(word in key for word in MINOR_KEYWORDS):
            age = calculate_age(member.date_of_birth, today=self.today_provider())
            if age is not None and age < weights.minor_age:
                score += weights.minor

        if "spouse" in key and relationship == "spouse":
            score += weights.spouse

        return min(score, 1.0)

    def household_member_value(self, key: str, member: HouseholdMember) -> Any:
        if "name" in key:
            return member.name
        if "birth" in key or "dob" in key:
            return format_date(member.date_of_birth, self.date_format) if member.date_of_birth else None
        if "relationship" in key:
            return member.relationship
        return (member.custom_fields or {}).get(key)

    def match_household_field(self, key: str, field: ClassifiedField,
                              context: UserContext) -> Optional[FieldMapping]:
        if not context.household_members or not key:
            return None

        label = (field.label or "").lower()
        if not any(ind in key or ind in label for ind in self.tables.relationship_indicators):
            return None

        best_member = None
        best_score = 0.0
        for member in context.household_members:
            score = self.score_household_member(key, member)
            if score > best_score:
                best_member, best_score = member, score

        if best_member is None or best_score <= self.tables.household_weights.threshold:
            return None

        value = self.household_member_value(key, best_member)
        if not value:
            return None

        return self._mapping(field, value, MappingSource.HOUSEHOLD_MEMBER, best_member.id, best_score)

    # Manual edits

    def update_field_mapping(
        self,
        mappings: List[FieldMapping],
        field: ClassifiedField,
        value: Any,
        save_to_profile: bool = False,
        user_id: Optional[str] = None,
    ) -> FieldMapping:
        """
        Overwrite the mapping for ``field`` with a manual value.

        The mapping list is updated in place. When ``save_to_profile`` is set
        the value is also written back through the profile writer under the
        normalized field key.

        Raises:
            ValidationFailureError: If a write-back is requested without a user id or writer
        """
        if save_to_profile:
            problems = []
            if not user_id:
                problems.append("user_id")
            if self.profile_writer is None:
                problems.append("profile_writer")
            if problems:
                raise ValidationFailureError(
                    f"Cannot save to profile, missing: {', '.join(problems)}", problems=problems
                )

        mapping = FieldMapping(
            field_id=field.id,
            value=value,
            source=MappingSource.MANUAL,
            source_id=None,
            confidence=MANUAL_CONFIDENCE,
        )

        for i, existing in enumerate(mappings):
            if existing.field_id == field.id:
                mappings[i] = mapping
                break
        else:
            mappings.append(mapping)

        if save_to_profile:
            self.profile_writer.save(user_id, normalize_key(field.key), value)

        return mapping
