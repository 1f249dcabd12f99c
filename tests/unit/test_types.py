"""
Unit tests for core types: the run state machine, problem model and payloads.
"""

from __future__ import annotations

import pydantic
import pytest

from solveflow.core.types import (
    ImagePayload,
    ModelSelection,
    PipelineContext,
    PipelineState,
    ProblemInfo,
    StageName,
    StageResult,
)
from solveflow.utils.errors import ErrorClass, ParseError, PipelineStateError, RunCancelledError

SOLVE_PATH = [
    PipelineState.EXTRACTING,
    PipelineState.EDGE_CASES,
    PipelineState.SOLUTION_THINKING,
    PipelineState.APPROACH,
    PipelineState.CODE_GEN,
    PipelineState.COMPLEXITY,
    PipelineState.DONE,
]


class TestPipelineState:
    """Tests for PipelineContext.advance."""

    def test_full_solve_path(self, pipeline_context: PipelineContext) -> None:
        for state in SOLVE_PATH:
            pipeline_context.advance(state)
        assert pipeline_context.state == PipelineState.DONE
        assert pipeline_context.state.is_terminal

    def test_debug_path(self, pipeline_context: PipelineContext) -> None:
        pipeline_context.advance(PipelineState.DEBUGGING)
        pipeline_context.advance(PipelineState.DONE)
        assert pipeline_context.state == PipelineState.DONE

    def test_skipping_a_stage_is_rejected(self, pipeline_context: PipelineContext) -> None:
        pipeline_context.advance(PipelineState.EXTRACTING)
        with pytest.raises(PipelineStateError):
            pipeline_context.advance(PipelineState.APPROACH)

    def test_reentering_a_stage_is_rejected(self, pipeline_context: PipelineContext) -> None:
        pipeline_context.advance(PipelineState.EXTRACTING)
        with pytest.raises(PipelineStateError):
            pipeline_context.advance(PipelineState.EXTRACTING)

    @pytest.mark.parametrize("terminal", [PipelineState.ERROR, PipelineState.CANCELLED])
    def test_error_and_cancel_from_active_state(
        self, pipeline_context: PipelineContext, terminal: PipelineState
    ) -> None:
        pipeline_context.advance(PipelineState.EXTRACTING)
        pipeline_context.advance(PipelineState.EDGE_CASES)
        pipeline_context.advance(terminal)
        assert pipeline_context.state == terminal

    def test_terminal_states_are_final(self, pipeline_context: PipelineContext) -> None:
        pipeline_context.advance(PipelineState.EXTRACTING)
        pipeline_context.advance(PipelineState.CANCELLED)
        with pytest.raises(PipelineStateError):
            pipeline_context.advance(PipelineState.EDGE_CASES)
        with pytest.raises(PipelineStateError):
            pipeline_context.advance(PipelineState.ERROR)

    def test_reset_clears_outputs(self, pipeline_context: PipelineContext) -> None:
        pipeline_context.edge_cases = ["empty"]
        pipeline_context.code = "pass"
        pipeline_context.reset()
        assert pipeline_context.problem_info is None
        assert pipeline_context.images == []
        assert pipeline_context.edge_cases == []
        assert pipeline_context.code == ""

    def test_combined_thoughts_order(self, pipeline_context: PipelineContext) -> None:
        pipeline_context.edge_cases = ["e"]
        pipeline_context.solution_thoughts = ["s"]
        pipeline_context.approach_thoughts = ["a"]
        assert pipeline_context.combined_thoughts() == ["e", "s", "a"]


class TestProblemInfo:
    """Tests for the ProblemInfo model."""

    def test_statement_is_required(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            ProblemInfo.model_validate({"constraints": "x"})

    def test_optional_fields_default_empty(self) -> None:
        problem = ProblemInfo(problem_statement="  Two sum  ")
        assert problem.problem_statement == "Two sum"
        assert problem.example_output == ""

    def test_non_string_values_coerced(self) -> None:
        problem = ProblemInfo.model_validate(
            {"problem_statement": "P", "example_input": {"nums": [1, 2]}, "constraints": None}
        )
        assert problem.example_input == '{"nums": [1, 2]}'
        assert problem.constraints == ""

    def test_frozen(self, problem_info: ProblemInfo) -> None:
        with pytest.raises(pydantic.ValidationError):
            problem_info.problem_statement = "changed"  # type: ignore[misc]


class TestPayloads:
    """Tests for images, model selection and stage results."""

    def test_image_media_type_sniffing(self) -> None:
        assert ImagePayload.from_bytes(b"\xff\xd8\xff\xe0").media_type == "image/jpeg"
        assert ImagePayload.from_bytes(b"RIFF\x00\x00\x00\x00WEBP").media_type == "image/webp"
        assert ImagePayload.from_bytes(b"\x89PNG").media_type == "image/png"

    def test_image_data_url(self, sample_image: ImagePayload) -> None:
        assert sample_image.data_url.startswith("data:image/png;base64,")

    def test_invalid_base64_rejected(self) -> None:
        with pytest.raises(ValueError):
            ImagePayload.from_base64("not base64!!")

    def test_model_for_stage(self) -> None:
        models = ModelSelection(extraction="x", solution="s", debugging="d")
        assert models.for_stage(StageName.EXTRACTION) == "x"
        assert models.for_stage(StageName.CODE_GENERATION) == "s"
        assert models.for_stage(StageName.COMPLEXITY) == "s"
        assert models.for_stage(StageName.DEBUG) == "d"

    def test_stage_result(self) -> None:
        ok = StageResult.success(StageName.EDGE_CASES, ["a"])
        failed = StageResult.failure(StageName.EDGE_CASES, ParseError("bad"))
        cancelled = StageResult.failure(StageName.EDGE_CASES, RunCancelledError())

        assert ok.ok and ok.unwrap() == ["a"]
        assert not failed.ok and not failed.cancelled
        assert cancelled.cancelled
        assert cancelled.error is not None
        assert cancelled.error.classification == ErrorClass.CANCELLED
        with pytest.raises(ParseError):
            failed.unwrap()
