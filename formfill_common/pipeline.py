# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
End-to-end form-fill pipeline.

Runs Extract -> Group -> Classify -> Resolve -> Render for one document,
strictly in sequence, and can process independent documents concurrently
in a thread pool. Nothing is persisted; the caller receives the filled
bytes and every intermediate result.
"""

import concurrent.futures
import logging
import os
import time
import traceback
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from formfill_common import metrics
from formfill_common.autofill import AutoFillService
from formfill_common.autofill.context import ProfileWriter, UserContextProvider
from formfill_common.classification import FieldClassificationService
from formfill_common.config import build_config, get_config
from formfill_common.exceptions import ValidationFailureError, error_kind
from formfill_common.models import Candidate, ClassifiedField, FieldMapping, RenderRequest
from formfill_common.ocr import CandidateGrouper, OcrService
from formfill_common.render import DocumentRenderer, RenderResult
from formfill_common.tables import LookupTables

logger = logging.getLogger(__name__)


@dataclass
class PipelineRequest:
    """One document to fill for one user."""

    document_bytes: bytes
    mime_type: str
    user_id: str
    household_member_id: Optional[str] = None
    signature_image: Optional[bytes] = None
    date_overrides: Dict[str, str] = field(default_factory=dict)
    render: bool = True

    def validate(self) -> None:
        """
        Raises:
            ValidationFailureError: If required identifiers or content are missing
        """
        problems = []
        if not self.document_bytes:
            problems.append("document_bytes")
        if not self.mime_type:
            problems.append("mime_type")
        if not self.user_id:
            problems.append("user_id")
        if problems:
            raise ValidationFailureError(f"Invalid request, missing: {', '.join(problems)}", problems=problems)


@dataclass
class PipelineResult:
    """Outcome of one document pass with the output of every completed stage."""

    success: bool
    candidates: List[Candidate] = field(default_factory=list)
    fields: List[ClassifiedField] = field(default_factory=list)
    mappings: List[FieldMapping] = field(default_factory=list)
    auto_filled_count: int = 0
    render: Optional[RenderResult] = None
    failed_stage: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    timings_ms: Dict[str, float] = field(default_factory=dict)
    processing_time_ms: float = 0.0
    metering: Dict[str, Any] = field(default_factory=dict)

    @property
    def document_bytes(self) -> Optional[bytes]:
        return self.render.document_bytes if self.render else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation; document bytes are omitted."""
        result = {
            "success": self.success,
            "candidates": [c.to_dict() for c in self.candidates],
            "fields": [f.to_dict() for f in self.fields],
            "mappings": [m.to_dict() for m in self.mappings],
            "auto_filled_count": self.auto_filled_count,
            "timings_ms": dict(self.timings_ms),
            "processing_time_ms": self.processing_time_ms,
        }
        if self.render is not None:
            result["render"] = self.render.to_dict()
        if self.metering:
            result["metering"] = self.metering
        if self.error:
            result["failed_stage"] = self.failed_stage
            result["error"] = self.error
            result["error_kind"] = self.error_kind
        return result


class FormFillPipeline:
    """Wires the extraction, grouping, classification, auto-fill and render services together."""

    def __init__(
        self,
        config: Dict[str, Any] = None,
        context_provider: Optional[UserContextProvider] = None,
        profile_writer: Optional[ProfileWriter] = None,
        ocr_service: Optional[OcrService] = None,
        grouper: Optional[CandidateGrouper] = None,
        classifier: Optional[FieldClassificationService] = None,
        autofill: Optional[AutoFillService] = None,
        renderer: Optional[DocumentRenderer] = None,
        max_workers: int = 4,
    ):
        """
        Initialize the pipeline; services not supplied are built from config.

        Args:
            config: Configuration dictionary merged over the defaults
            context_provider: Source of user context for auto-fill
            profile_writer: Destination for manual profile write-backs
            max_workers: Thread pool size for process_many
        """
        self.config = build_config(config)
        tables = LookupTables.from_config(self.config.get("autofill", {}))

        self.ocr_service = ocr_service or OcrService(config=self.config)
        self.grouper = grouper or CandidateGrouper(self.config.get("grouping", {}))
        self.classifier = classifier or FieldClassificationService(config=self.config, tables=tables)
        self.autofill = autofill or AutoFillService.from_config(
            self.config,
            context_provider=context_provider,
            profile_writer=profile_writer or (
                context_provider if isinstance(context_provider, ProfileWriter) else None
            ),
        )
        self.renderer = renderer or DocumentRenderer(config=self.config)
        self.max_workers = max_workers

    @classmethod
    def from_environment(cls, **kwargs) -> "FormFillPipeline":
        """Build a pipeline from the DynamoDB configuration table when CONFIGURATION_TABLE_NAME is set."""
        if os.environ.get("CONFIGURATION_TABLE_NAME"):
            return cls(config=get_config(), **kwargs)
        logger.info("CONFIGURATION_TABLE_NAME not set, using default configuration")
        return cls(**kwargs)

    def process(self, request: PipelineRequest) -> PipelineResult:
        """Run every stage for one document; the first failing stage ends the pass."""
        t0 = time.time()
        result = PipelineResult(success=False)

        try:
            request.validate()
        except ValidationFailureError as e:
            logger.error(f"Rejected request before processing: {e}")
            return self._fail(result, "Validate", e, t0)

        # Extract
        stage_start = time.time()
        extraction = self.ocr_service.extract_candidates(request.document_bytes, request.mime_type)
        self._record(result, "Extract", stage_start, extraction.success, extraction.error_kind)
        if not extraction.success:
            return self._fail_with(result, "Extract", extraction.error, extraction.error_kind, t0)

        # Group
        stage_start = time.time()
        try:
            result.candidates = self.grouper.group(extraction.candidates)
        except Exception as e:
            logger.error(f"Grouping failed: {str(e)}\nStack trace:\n{traceback.format_exc()}")
            self._record(result, "Group", stage_start, False, error_kind(e))
            return self._fail(result, "Group", e, t0)
        self._record(result, "Group", stage_start, True)

        # Classify
        stage_start = time.time()
        classification = self.classifier.classify_fields(result.candidates)
        self._record(result, "Classify", stage_start, classification.success, classification.error_kind)
        result.metering = classification.metering
        if not classification.success:
            return self._fail_with(result, "Classify", classification.error, classification.error_kind, t0)
        result.fields = classification.fields

        # Resolve
        stage_start = time.time()
        autofill = self.autofill.auto_fill(result.fields, request.user_id, request.household_member_id)
        self._record(result, "Resolve", stage_start, autofill.success, autofill.error_kind)
        if not autofill.success:
            return self._fail_with(result, "Resolve", autofill.error, autofill.error_kind, t0)
        result.mappings = autofill.mappings
        result.auto_filled_count = autofill.auto_filled_count

        # Render
        if request.render:
            stage_start = time.time()
            result.render = self.renderer.render(RenderRequest(
                document_bytes=request.document_bytes,
                mime_type=request.mime_type,
                fields=result.fields,
                mappings=result.mappings,
                signature_image=request.signature_image,
                date_overrides=dict(request.date_overrides or {}),
            ))
            self._record(result, "Render", stage_start, result.render.success, result.render.error_kind)
            if not result.render.success:
                return self._fail_with(result, "Render", result.render.error, result.render.error_kind, t0)

        result.success = True
        result.processing_time_ms = (time.time() - t0) * 1000
        logger.info(
            f"Form fill completed in {result.processing_time_ms / 1000:.2f} seconds: "
            f"{len(result.fields)} fields, {result.auto_filled_count} auto-filled"
        )
        return result

    def process_many(self, requests: List[PipelineRequest],
                     max_workers: Optional[int] = None) -> List[PipelineResult]:
        """
        Process independent documents concurrently.

        Each document's stages still run in sequence. Results are returned in
        request order.
        """
        if not requests:
            return []

        results: List[Optional[PipelineResult]] = [None] * len(requests)
        with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers or self.max_workers) as executor:
            future_to_index = {
                executor.submit(self.process, request): i
                for i, request in enumerate(requests)
            }
            for future in concurrent.futures.as_completed(future_to_index):
                index = future_to_index[future]
                try:
                    results[index] = future.result()
                except Exception as e:
                    logger.error(f"Error processing document {index}: {str(e)}\nStack trace:\n{traceback.format_exc()}")
                    results[index] = PipelineResult(
                        success=False, failed_stage="Process", error=str(e), error_kind=error_kind(e)
                    )

        succeeded = sum(1 for r in results if r.success)
        logger.info(f"Processed {len(requests)} documents, {succeeded} succeeded")
        return results

    @staticmethod
    def _record(result: PipelineResult, stage: str, stage_start: float,
                is_success: bool, kind: Optional[str] = None) -> None:
        duration_ms = (time.time() - stage_start) * 1000
        result.timings_ms[stage] = duration_ms
        metrics.record_stage(stage, duration_ms, is_success, kind)

    @staticmethod
    def _fail(result: PipelineResult, stage: str, error: Exception, t0: float) -> PipelineResult:
        return FormFillPipeline._fail_with(result, stage, str(error), error_kind(error), t0)

    @staticmethod
    def _fail_with(result: PipelineResult, stage: str, error: Optional[str],
                   kind: Optional[str], t0: float) -> PipelineResult:
        result.success = False
        result.failed_stage = stage
        result.error = error
        result.error_kind = kind
        result.processing_time_ms = (time.time() - t0) * 1000
        logger.error(f"Form fill failed at {stage} ({kind}): {error}")
        return result
