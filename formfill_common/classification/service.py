# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Field classification service.

Grouped candidates are filtered, submitted to a classification provider in
batches, and the returned entries are normalized by a deterministic local
pass: confidence capping, text-pattern type overrides, profile-save
defaults, canned suggestions, key deduplication and reading order.
"""

import logging
import re
import time
import traceback
from typing import Any, Dict, List, Optional

from formfill_common.classification.models import ClassificationEntry, ClassificationResult
from formfill_common.classification.providers import (
    ClassificationProvider,
    select_classification_provider,
)
from formfill_common.config import build_config
from formfill_common.exceptions import FormFillError, error_kind
from formfill_common.models import Candidate, ClassifiedField, FieldType
from formfill_common.tables import DEFAULT_TABLES, LookupTables
from formfill_common.utils import create_batches, merge_metering_data, normalize_key

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 50
DEFAULT_SERVICE_CONFIDENCE = 0.5

PUNCTUATION_ONLY = re.compile(r"^[^\w\s]*$")
EMAIL_PATTERN = re.compile(r"@")
PHONE_PATTERN = re.compile(r"\d{3}[-.\s]?\d{3}[-.\s]?\d{4}")
DATE_PATTERN = re.compile(r"\d{1,2}[/-]\d{1,2}[/-]\d{2,4}")
NUMBER_PATTERN = re.compile(r"^\d+$")


class FieldClassificationService:
    """Service for turning grouped candidates into classified form fields."""

    def __init__(
        self,
        config: Dict[str, Any] = None,
        provider: Optional[ClassificationProvider] = None,
        tables: LookupTables = DEFAULT_TABLES,
        bedrock_client=None,
    ):
        """
        Initialize the classification service.

        Args:
            config: Configuration dictionary; the ``classification`` section is used
            provider: Provider override; selected from configuration when omitted
            tables: Lookup tables for profile vocabulary and suggestions
            bedrock_client: Optional BedrockClient passed to the Bedrock provider
        """
        self.config = build_config(config)
        classification_config = self.config.get("classification", {})
        self.batch_size = max(1, min(int(classification_config.get("batch_size", MAX_BATCH_SIZE)), MAX_BATCH_SIZE))
        self.min_confidence = float(classification_config.get("min_confidence", 0.30))
        self.tables = tables
        self._provider = provider
        self._bedrock_client = bedrock_client

    @property
    def provider(self) -> ClassificationProvider:
        """Provider is resolved lazily so empty inputs never build a client."""
        if self._provider is None:
            self._provider = select_classification_provider(
                self.config.get("classification", {}), bedrock_client=self._bedrock_client
            )
        return self._provider

    def classify_fields(self, candidates: List[Candidate]) -> ClassificationResult:
        """
        Classify grouped candidates.

        Any batch failure fails the whole call and no fields are returned.
        This method does not raise.
        """
        t0 = time.time()

        filtered = self.preprocess_candidates(candidates)
        if not filtered:
            logger.info(f"No classifiable candidates among {len(candidates)} inputs, skipping provider call")
            return ClassificationResult(success=True, fields=[], processing_time_ms=(time.time() - t0) * 1000)

        by_id = {c.id: c for c in filtered}
        batches = create_batches(filtered, self.batch_size)
        fields: List[ClassifiedField] = []
        metering: Dict[str, Any] = {}
        dropped = 0

        try:
            for batch_number, batch in enumerate(batches, start=1):
                logger.info(f"Classifying batch {batch_number}/{len(batches)} with {len(batch)} candidates")
                entries, batch_metering = self.provider.classify(batch)
                metering = merge_metering_data(metering, batch_metering or {})

                batch_ids = {c.id for c in batch}
                for entry in entries:
                    if entry.candidate_id not in batch_ids:
                        dropped += 1
                        logger.warning(
                            f"Discarding classification entry for unknown candidate id '{entry.candidate_id}'"
                        )
                        continue
                    fields.append(self._to_field(entry, by_id[entry.candidate_id]))

        except FormFillError as e:
            logger.error(f"Field classification failed ({e.kind}): {e}")
            return self._failure(t0, e, metering)
        except Exception as e:
            logger.error(f"Field classification failed: {str(e)}\nStack trace:\n{traceback.format_exc()}")
            return self._failure(t0, e, metering)

        enhanced = self.enhance_fields(fields)
        elapsed_ms = (time.time() - t0) * 1000
        logger.info(
            f"Classified {len(enhanced)} fields from {len(filtered)} candidates "
            f"in {elapsed_ms / 1000:.2f} seconds"
        )
        return ClassificationResult(
            success=True,
            fields=enhanced,
            processing_time_ms=elapsed_ms,
            metering=metering,
            dropped_entries=dropped,
        )

    @staticmethod
    def _failure(t0: float, error: Exception, metering: Dict[str, Any]) -> ClassificationResult:
        return ClassificationResult(
            success=False,
            fields=[],
            processing_time_ms=(time.time() - t0) * 1000,
            error=str(error),
            error_kind=error_kind(error),
            metering=metering,
        )

    def preprocess_candidates(self, candidates: List[Candidate]) -> List[Candidate]:
        """Drop low-confidence, empty and punctuation-only candidates."""
        return [
            c for c in candidates
            if c.confidence >= self.min_confidence
            and c.raw_text.strip()
            and not PUNCTUATION_ONLY.match(c.raw_text)
        ]

    def _to_field(self, entry: ClassificationEntry, candidate: Candidate) -> ClassifiedField:
        key = normalize_key(entry.key) or normalize_key(candidate.raw_text) or normalize_key(candidate.id)
        field_type = FieldType.parse(entry.type, default=FieldType.TEXT)
        if field_type.value != str(entry.type).strip().lower():
            logger.debug(f"Unknown field type '{entry.type}' for {candidate.id}, using text")

        service_confidence = entry.confidence if entry.confidence is not None else DEFAULT_SERVICE_CONFIDENCE
        return ClassifiedField(
            id=candidate.id,
            key=key,
            label=entry.label or candidate.raw_text.strip(),
            type=field_type,
            bbox=candidate.bbox,
            raw_text=candidate.raw_text,
            required=entry.required,
            confidence=max(0.0, min(1.0, min(candidate.confidence, service_confidence))),
            suggestions=list(entry.suggestions),
        )

    def enhance_fields(self, fields: List[ClassifiedField]) -> List[ClassifiedField]:
        """
        Apply the local enhancement pass and return fields in reading order.

        Keys are unique in the output; the first field returned for a key wins.
        """
        seen_keys = set()
        enhanced = []
        for f in fields:
            self._apply_type_overrides(f)
            f.save_to_profile = self.should_save_to_profile(f.key)
            if not f.suggestions:
                f.suggestions = self.generate_suggestions(f)

            if f.key in seen_keys:
                logger.debug(f"Dropping duplicate field key '{f.key}' ({f.id})")
                continue
            seen_keys.add(f.key)
            enhanced.append(f)

        return sorted(enhanced, key=lambda f: (f.bbox.page, f.bbox.y))

    @staticmethod
    def _apply_type_overrides(f: ClassifiedField) -> None:
        text = f.raw_text
        if EMAIL_PATTERN.search(text):
            f.type = FieldType.EMAIL
        elif PHONE_PATTERN.search(text):
            f.type = FieldType.PHONE
        elif DATE_PATTERN.search(text):
            f.type = FieldType.DATE
        elif NUMBER_PATTERN.match(re.sub(r"[\s-]", "", text)):
            f.type = FieldType.NUMBER

        if "sign" in text.lower():
            f.type = FieldType.SIGNATURE
            f.required = True

    def should_save_to_profile(self, key: str) -> bool:
        """True when the key overlaps the profile-field vocabulary."""
        if not key:
            return False
        return any(v in key or key in v for v in self.tables.profile_vocabulary)

    def generate_suggestions(self, f: ClassifiedField) -> List[str]:
        """Type-specific canned hints; name-like text fields get name hints."""
        canned = self.tables.suggestions.get(f.type.value)
        if canned:
            return list(canned)
        if "name" in f.key:
            return list(self.tables.name_suggestions)
        return []
