# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: MIT-0

"""
Unit tests for the end-to-end form-fill pipeline.
"""

from unittest.mock import MagicMock, patch

import fitz  # PyMuPDF
import pytest
from formfill_common.autofill import AutoFillResult
from formfill_common.autofill.context import InMemoryUserContextStore
from formfill_common.classification import ClassificationResult
from formfill_common.models import BoundingBox, Candidate, ClassifiedField, FieldMapping, FieldType
from formfill_common.ocr import ExtractionResult
from formfill_common.pipeline import FormFillPipeline, PipelineRequest
from formfill_common.render import RenderResult


@pytest.fixture
def store():
    return InMemoryUserContextStore.from_dict({
        "user-1": {
            "profile": {
                "id": "p1",
                "full_name": "Jane Doe",
                "email": "jane@example.com",
                "date_of_birth": "1990-05-15",
            }
        }
    })


@pytest.fixture
def mocked_services():
    candidate = Candidate(id="c1", raw_text="Name", confidence=0.9,
                          bbox=BoundingBox(page=1, x=0.1, y=0.1, width=0.2, height=0.03))
    classified = ClassifiedField(id="c1", key="name", label="Name", type=FieldType.TEXT, bbox=candidate.bbox)

    ocr = MagicMock()
    ocr.extract_candidates.return_value = ExtractionResult(success=True, candidates=[candidate], provider="pdf")
    grouper = MagicMock()
    grouper.group.side_effect = lambda candidates: candidates
    classifier = MagicMock()
    classifier.classify_fields.return_value = ClassificationResult(
        success=True, fields=[classified], metering={"bedrock/model": {"inputTokens": 5}}
    )
    autofill = MagicMock()
    autofill.auto_fill.return_value = AutoFillResult(
        success=True, mappings=[FieldMapping(field_id="c1", value="Jane")], auto_filled_count=1, total_fields=1
    )
    renderer = MagicMock()
    renderer.render.return_value = RenderResult(success=True, document_bytes=b"%PDF-filled", page_count=1)

    return {"ocr_service": ocr, "grouper": grouper, "classifier": classifier,
            "autofill": autofill, "renderer": renderer}


def request(user_id="user-1", **kwargs):
    return PipelineRequest(document_bytes=b"%PDF-1.7", mime_type="application/pdf", user_id=user_id, **kwargs)


@pytest.mark.unit
class TestProcess:
    def test_end_to_end_with_heuristic_classifier(self, pdf_factory, store):
        pdf = pdf_factory(lines=[
            (1, 72, 100, "Full Name:"),
            (1, 72, 140, "Email:"),
            (1, 72, 180, "Date of Birth:"),
        ])
        pipeline = FormFillPipeline(
            config={"classification": {"backend": "heuristic"}},
            context_provider=store,
        )

        result = pipeline.process(PipelineRequest(document_bytes=pdf, mime_type="application/pdf", user_id="user-1"))

        assert result.success, result.error
        assert [f.key for f in result.fields] == ["full_name", "email", "date_of_birth"]
        values = {m.field_id: m.value for m in result.mappings}
        by_key = {f.key: f.id for f in result.fields}
        assert values[by_key["full_name"]] == "Jane Doe"
        assert values[by_key["email"]] == "jane@example.com"
        assert values[by_key["date_of_birth"]] == "05/15/1990"
        assert result.auto_filled_count == 3
        assert set(result.timings_ms) == {"Extract", "Group", "Classify", "Resolve", "Render"}

        filled = fitz.open(stream=result.document_bytes, filetype="pdf")
        assert "Jane Doe" in filled[0].get_text()

    def test_stages_run_in_sequence(self, mocked_services):
        pipeline = FormFillPipeline(**mocked_services)

        result = pipeline.process(request(household_member_id="m1", date_overrides={"c1": "01/01/2024"}))

        assert result.success
        assert result.document_bytes == b"%PDF-filled"
        assert result.metering == {"bedrock/model": {"inputTokens": 5}}
        mocked_services["autofill"].auto_fill.assert_called_once_with(
            mocked_services["classifier"].classify_fields.return_value.fields, "user-1", "m1"
        )
        render_request = mocked_services["renderer"].render.call_args.args[0]
        assert render_request.date_overrides == {"c1": "01/01/2024"}
        assert render_request.mappings[0].value == "Jane"

    def test_validation_failure_makes_no_calls(self, mocked_services):
        pipeline = FormFillPipeline(**mocked_services)

        result = pipeline.process(request(user_id=""))

        assert not result.success
        assert result.failed_stage == "Validate"
        assert result.error_kind == "ValidationFailure"
        mocked_services["ocr_service"].extract_candidates.assert_not_called()

    def test_extraction_failure_stops_pipeline(self, mocked_services):
        mocked_services["ocr_service"].extract_candidates.return_value = ExtractionResult(
            success=False, error="Unsupported file type: text/plain", error_kind="UnsupportedInput"
        )
        pipeline = FormFillPipeline(**mocked_services)

        result = pipeline.process(request())

        assert not result.success
        assert result.failed_stage == "Extract"
        assert result.error_kind == "UnsupportedInput"
        mocked_services["classifier"].classify_fields.assert_not_called()

    def test_classification_failure_stops_pipeline(self, mocked_services):
        mocked_services["classifier"].classify_fields.return_value = ClassificationResult(
            success=False, error="throttled", error_kind="ProviderFailure"
        )
        pipeline = FormFillPipeline(**mocked_services)

        result = pipeline.process(request())

        assert result.failed_stage == "Classify"
        assert result.error_kind == "ProviderFailure"
        mocked_services["autofill"].auto_fill.assert_not_called()
        assert "error_kind" in result.to_dict()

    def test_grouping_exception_is_reported(self, mocked_services):
        mocked_services["grouper"].group.side_effect = RuntimeError("bad geometry")
        pipeline = FormFillPipeline(**mocked_services)

        result = pipeline.process(request())

        assert result.failed_stage == "Group"
        assert result.error == "bad geometry"

    def test_render_can_be_skipped(self, mocked_services):
        pipeline = FormFillPipeline(**mocked_services)

        result = pipeline.process(request(render=False))

        assert result.success
        assert result.document_bytes is None
        mocked_services["renderer"].render.assert_not_called()

    def test_stage_metrics_are_recorded(self, mocked_services):
        pipeline = FormFillPipeline(**mocked_services)

        with patch("formfill_common.pipeline.metrics.record_stage") as mock_record:
            pipeline.process(request())

        assert [c.args[0] for c in mock_record.call_args_list] == [
            "Extract", "Group", "Classify", "Resolve", "Render"
        ]


@pytest.mark.unit
class TestProcessMany:
    def test_results_follow_request_order(self, mocked_services):
        def auto_fill(fields, user_id, household_member_id=None):
            return AutoFillResult(
                success=True,
                mappings=[FieldMapping(field_id="c1", value=user_id)],
                auto_filled_count=1,
                total_fields=1,
            )

        mocked_services["autofill"].auto_fill.side_effect = auto_fill
        pipeline = FormFillPipeline(max_workers=3, **mocked_services)

        results = pipeline.process_many([request(user_id=f"user-{i}") for i in range(6)])

        assert [r.mappings[0].value for r in results] == [f"user-{i}" for i in range(6)]

    def test_one_failure_does_not_affect_others(self, mocked_services):
        pipeline = FormFillPipeline(**mocked_services)

        results = pipeline.process_many([request(), request(user_id=""), request()])

        assert [r.success for r in results] == [True, False, True]

    def test_empty_batch(self, mocked_services):
        assert FormFillPipeline(**mocked_services).process_many([]) == []


@pytest.mark.unit
class TestConstruction:
    def test_context_store_doubles_as_profile_writer(self, store):
        pipeline = FormFillPipeline(context_provider=store)
        assert pipeline.autofill.profile_writer is store

    def test_from_environment_without_table(self, monkeypatch):
        monkeypatch.delenv("CONFIGURATION_TABLE_NAME", raising=False)
        with patch("formfill_common.pipeline.get_config") as mock_get_config:
            pipeline = FormFillPipeline.from_environment()
        mock_get_config.assert_not_called()
        assert pipeline.config["classification"]["batch_size"] == 50

    def test_from_environment_reads_table(self, monkeypatch):
        monkeypatch.setenv("CONFIGURATION_TABLE_NAME", "formfill-config")
        with patch("formfill_common.pipeline.get_config",
                   return_value={"render": {"default_font_size": 10}}) as mock_get_config:
            pipeline = FormFillPipeline.from_environment()
        mock_get_config.assert_called_once()
        assert pipeline.renderer.default_font_size == 10
