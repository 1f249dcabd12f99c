"""
Integration tests for the SolveFlow orchestrator.

Tests cover:
- Full solve runs: event order, stage calls, context contents
- Failures: missing credentials, extraction and later-stage errors
- Cancellation: before extraction, mid-run, independence of run kinds
- Debug follow-up runs
- Configuration changes while a run is in flight
"""

from __future__ import annotations

import asyncio

import pytest

from solveflow.core.config import ConfigManager, SolveFlowConfig
from solveflow.core.events import RunEventType
from solveflow.core.orchestrator import CANCELLED_MESSAGE, SolveFlow
from solveflow.core.types import (
    ImagePayload,
    PipelineState,
    ProblemInfo,
    RunKind,
    SolutionResult,
    StageName,
)
from solveflow.pipeline.extractors import DEBUG_COMPLEXITY
from solveflow.pipeline.prompts import MAX_TOKENS
from solveflow.providers.registry import ProviderRegistry
from solveflow.utils.errors import (
    EmptyInputError,
    ProviderAuthenticationError,
    ProviderPayloadTooLargeError,
    ProviderRateLimitError,
    ProviderServerError,
)
from tests.conftest import ANTHROPIC_TEST_KEY
from tests.integration.conftest import MockProvider, event_types

pytestmark = pytest.mark.integration

SOLVE_EVENTS = [
    RunEventType.RUN_STARTED,
    RunEventType.PROBLEM_EXTRACTED,
    RunEventType.EDGE_CASES_EXTRACTED,
    RunEventType.SOLUTION_THINKING,
    RunEventType.APPROACH_DEVELOPED,
    RunEventType.CODE_GENERATED,
    RunEventType.RUN_SUCCEEDED,
]

SOLVE_STAGE_ORDER = [
    StageName.EXTRACTION,
    StageName.EDGE_CASES,
    StageName.SOLUTION_THINKING,
    StageName.APPROACH,
    StageName.CODE_GENERATION,
    StageName.COMPLEXITY,
]


# =============================================================================
# Successful solve
# =============================================================================


class TestSolvePipeline:
    """Tests for complete initial runs."""

    @pytest.mark.asyncio
    async def test_events_in_order(
        self, flow: SolveFlow, mock_provider: MockProvider, images: list[ImagePayload]
    ) -> None:
        """A successful run publishes every stage event exactly once, in order."""
        outcome = await flow.process_initial(images)

        assert outcome.success
        events = flow.events.drain()
        assert event_types(events) == SOLVE_EVENTS
        assert sum(1 for event in events if event.type.is_stage_success) == 6
        assert {event.run_id for event in events} == {outcome.run_id}

        final = events[-1].data
        assert final["code"] == "def reverse(s):\n    return s[::-1]"
        assert final["time_complexity"] == "O(n) because each character is visited once"
        assert final["space_complexity"] == "O(n) - the reversed copy"

    @pytest.mark.asyncio
    async def test_progress_updates(
        self, flow: SolveFlow, mock_provider: MockProvider, images: list[ImagePayload]
    ) -> None:
        await flow.process_initial(images)

        progress = [
            event.data["progress"]
            for event in flow.events.drain()
            if event.type == RunEventType.PROCESSING_STATUS
        ]
        assert progress == [20, 40, 50, 65, 80, 90, 100]

    @pytest.mark.asyncio
    async def test_stage_calls(
        self, flow: SolveFlow, mock_provider: MockProvider, images: list[ImagePayload]
    ) -> None:
        """Stages call the provider once each, in order, with their own limits."""
        await flow.process_initial(images)

        assert mock_provider.stages_called() == SOLVE_STAGE_ORDER
        config = flow.config_manager.config
        for call in mock_provider.calls:
            stage = call["stage"]
            assert call["max_tokens"] == MAX_TOKENS[stage]
            if stage == StageName.EXTRACTION:
                assert call["images"] == images
                assert call["model"] == config.extraction_model
            else:
                assert call["images"] is None
                assert call["model"] == config.solution_model

        code_prompt = mock_provider.calls_for(StageName.CODE_GENERATION)[0]["prompt"]
        assert "return s read backwards" in code_prompt
        complexity_prompt = mock_provider.calls_for(StageName.COMPLEXITY)[0]["prompt"]
        assert "return s[::-1]" in complexity_prompt

    @pytest.mark.asyncio
    async def test_result_and_context(
        self, flow: SolveFlow, mock_provider: MockProvider, images: list[ImagePayload]
    ) -> None:
        outcome = await flow.process_initial(images, language="python")

        assert isinstance(outcome.result, SolutionResult)
        assert flow.problem_info is not None
        assert flow.problem_info.problem_statement == "Reverse a string"

        ctx = flow.context_for(RunKind.INITIAL)
        assert ctx is not None
        assert ctx.state == PipelineState.DONE
        assert ctx.edge_cases == ["Empty string", "Single character", "Unicode characters"]
        assert ctx.solution_thoughts[0] == "Strings are immutable, so build a new one"
        assert ctx.approach_thoughts == [
            "Walk the string from the end",
            "Collect characters into the result",
        ]
        assert ctx.pseudocode == "function reverse(s):\n    return s read backwards"
        assert outcome.result.thoughts == ctx.combined_thoughts()
        assert not flow.is_running(RunKind.INITIAL)

    @pytest.mark.asyncio
    async def test_missing_pseudocode_continues(
        self, flow: SolveFlow, mock_provider: MockProvider, images: list[ImagePayload]
    ) -> None:
        mock_provider.responses[StageName.APPROACH] = "Use slicing. It reverses in one pass."

        outcome = await flow.process_initial(images)

        assert outcome.success
        approach = next(
            event for event in flow.events.drain() if event.type == RunEventType.APPROACH_DEVELOPED
        )
        assert approach.data["pseudocode"] == ""
        assert approach.data["thoughts"] == ["Use slicing", "It reverses in one pass."]

    @pytest.mark.asyncio
    async def test_missing_complexity_uses_fallback(
        self, flow: SolveFlow, mock_provider: MockProvider, images: list[ImagePayload]
    ) -> None:
        mock_provider.responses[StageName.COMPLEXITY] = "Time Complexity: O(n)"

        outcome = await flow.process_initial(images)

        assert isinstance(outcome.result, SolutionResult)
        assert outcome.result.time_complexity == "O(n)"
        assert outcome.result.space_complexity == "Complexity not available"

    @pytest.mark.asyncio
    async def test_empty_queue_rejected(self, flow: SolveFlow) -> None:
        with pytest.raises(EmptyInputError):
            await flow.process_initial([])


# =============================================================================
# Failures
# =============================================================================


class TestFailures:
    """Tests for failed runs."""

    @pytest.mark.asyncio
    async def test_missing_key_fails_before_any_call(
        self, mock_registry: ProviderRegistry, images: list[ImagePayload]
    ) -> None:
        flow = SolveFlow(config_manager=ConfigManager(SolveFlowConfig()), registry=mock_registry)

        outcome = await flow.process_initial(images)

        assert outcome.state == PipelineState.ERROR
        assert flow.registry.active_client() is None
        events = flow.events.drain()
        assert event_types(events, include_progress=True) == [RunEventType.RUN_FAILED]
        assert events[0].data["classification"] == "configuration"
        assert "Gemini API key not configured" in events[0].data["message"]

    @pytest.mark.asyncio
    async def test_unparseable_problem(
        self, flow: SolveFlow, mock_provider: MockProvider, images: list[ImagePayload]
    ) -> None:
        mock_provider.responses[StageName.EXTRACTION] = "I cannot read these screenshots."

        outcome = await flow.process_initial(images)

        assert outcome.state == PipelineState.ERROR
        assert mock_provider.stages_called() == [StageName.EXTRACTION]
        events = flow.events.drain()
        assert event_types(events) == [RunEventType.RUN_STARTED, RunEventType.RUN_FAILED]
        failed = events[-1].data
        assert failed["classification"] == "parse_error"
        assert failed["stage"] == "extraction"
        assert flow.problem_info is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("error", "fragment"),
        [
            (ProviderAuthenticationError("gemini"), "Invalid Gemini API key"),
            (ProviderRateLimitError("gemini"), "rate limit exceeded"),
            (ProviderPayloadTooLargeError("gemini"), "switch to OpenAI"),
        ],
    )
    async def test_extraction_messages(
        self,
        flow: SolveFlow,
        mock_provider: MockProvider,
        images: list[ImagePayload],
        error: Exception,
        fragment: str,
    ) -> None:
        mock_provider.responses[StageName.EXTRACTION] = error

        outcome = await flow.process_initial(images)

        assert outcome.message is not None
        assert fragment in outcome.message

    @pytest.mark.asyncio
    async def test_later_stage_failure_stops_the_run(
        self, flow: SolveFlow, mock_provider: MockProvider, images: list[ImagePayload]
    ) -> None:
        mock_provider.responses[StageName.APPROACH] = ProviderServerError("gemini", 503)

        outcome = await flow.process_initial(images)

        assert outcome.state == PipelineState.ERROR
        assert outcome.message is not None
        assert outcome.message.startswith("Solution generation failed during approach development")
        assert StageName.CODE_GENERATION not in mock_provider.stages_called()

        events = flow.events.drain()
        assert event_types(events) == [
            RunEventType.RUN_STARTED,
            RunEventType.PROBLEM_EXTRACTED,
            RunEventType.EDGE_CASES_EXTRACTED,
            RunEventType.SOLUTION_THINKING,
            RunEventType.RUN_FAILED,
        ]
        assert events[-1].data["classification"] == "server_error"
        # The extracted problem stays available for a debug follow-up
        assert flow.problem_info is not None


# =============================================================================
# Cancellation
# =============================================================================


class TestCancellation:
    """Tests for cancelling in-flight runs."""

    @pytest.mark.asyncio
    async def test_cancel_during_extraction(
        self, flow: SolveFlow, mock_provider: MockProvider, images: list[ImagePayload]
    ) -> None:
        mock_provider.block(StageName.EXTRACTION)
        task = asyncio.create_task(flow.process_initial(images))
        await mock_provider.wait_until_called(StageName.EXTRACTION)

        assert flow.cancel(RunKind.INITIAL) is True
        outcome = await task

        assert outcome.cancelled
        assert outcome.message == CANCELLED_MESSAGE
        assert mock_provider.aborted == [StageName.EXTRACTION]

        events = flow.events.drain()
        types = event_types(events)
        assert types.count(RunEventType.RUN_CANCELLED) == 1
        assert not any(event_type.is_stage_success for event_type in types)
        assert flow.problem_info is None
        ctx = flow.context_for(RunKind.INITIAL)
        assert ctx is not None and ctx.problem_info is None
        assert ctx.state == PipelineState.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_mid_run_leaves_follow_up_alone(
        self,
        flow: SolveFlow,
        mock_provider: MockProvider,
        images: list[ImagePayload],
        problem_info: ProblemInfo,
    ) -> None:
        mock_provider.block(StageName.SOLUTION_THINKING)
        mock_provider.block(StageName.DEBUG)

        solve_task = asyncio.create_task(flow.process_initial(images))
        await mock_provider.wait_until_called(StageName.SOLUTION_THINKING)
        debug_task = asyncio.create_task(flow.process_follow_up(images, problem_info=problem_info))
        await mock_provider.wait_until_called(StageName.DEBUG)

        flow.cancel(RunKind.INITIAL)
        solve_outcome = await solve_task
        mock_provider.release(StageName.DEBUG)
        debug_outcome = await debug_task

        assert solve_outcome.cancelled
        assert debug_outcome.success
        assert mock_provider.aborted == [StageName.SOLUTION_THINKING]

        events = flow.events.drain()
        solve_types = event_types([e for e in events if e.run_id == solve_outcome.run_id])
        debug_types = event_types([e for e in events if e.run_id == debug_outcome.run_id])
        assert solve_types == [
            RunEventType.RUN_STARTED,
            RunEventType.PROBLEM_EXTRACTED,
            RunEventType.EDGE_CASES_EXTRACTED,
            RunEventType.RUN_CANCELLED,
        ]
        assert debug_types == [RunEventType.DEBUG_STARTED, RunEventType.DEBUG_SUCCEEDED]

        follow_up = flow.context_for(RunKind.FOLLOW_UP)
        assert follow_up is not None
        assert follow_up.problem_info == problem_info
        assert follow_up.state == PipelineState.DONE

    @pytest.mark.asyncio
    async def test_cancel_before_task_starts(
        self, flow: SolveFlow, mock_provider: MockProvider, images: list[ImagePayload]
    ) -> None:
        task = asyncio.create_task(flow.process_initial(images))

        assert flow.is_running(RunKind.INITIAL)
        assert flow.cancel(RunKind.INITIAL) is True
        outcome = await task

        assert outcome.cancelled
        assert mock_provider.call_count == 0
        types = event_types(flow.events.drain())
        assert types == [RunEventType.RUN_STARTED, RunEventType.RUN_CANCELLED]
        assert flow.problem_info is None
        assert not flow.is_running(RunKind.INITIAL)

    @pytest.mark.asyncio
    async def test_cancel_debug_before_task_starts(
        self,
        flow: SolveFlow,
        mock_provider: MockProvider,
        images: list[ImagePayload],
        problem_info: ProblemInfo,
    ) -> None:
        task = asyncio.create_task(flow.process_follow_up(images, problem_info=problem_info))

        assert flow.cancel(RunKind.FOLLOW_UP) is True
        outcome = await task

        assert outcome.cancelled
        assert mock_provider.call_count == 0
        types = event_types(flow.events.drain())
        assert types == [RunEventType.DEBUG_STARTED, RunEventType.DEBUG_CANCELLED]

    @pytest.mark.asyncio
    async def test_task_cancelled_from_outside(
        self, flow: SolveFlow, mock_provider: MockProvider, images: list[ImagePayload]
    ) -> None:
        mock_provider.block(StageName.EDGE_CASES)
        task = asyncio.create_task(flow.process_initial(images))
        await mock_provider.wait_until_called(StageName.EDGE_CASES)
        assert flow.problem_info is not None

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert mock_provider.aborted == [StageName.EDGE_CASES]
        types = event_types(flow.events.drain())
        assert types == [
            RunEventType.RUN_STARTED,
            RunEventType.PROBLEM_EXTRACTED,
            RunEventType.RUN_CANCELLED,
        ]
        ctx = flow.context_for(RunKind.INITIAL)
        assert ctx is not None
        assert ctx.state == PipelineState.CANCELLED
        assert ctx.problem_info is None
        assert flow.problem_info is None
        assert not flow.is_running(RunKind.INITIAL)

    @pytest.mark.asyncio
    async def test_debug_task_cancelled_from_outside(
        self,
        flow: SolveFlow,
        mock_provider: MockProvider,
        images: list[ImagePayload],
        problem_info: ProblemInfo,
    ) -> None:
        mock_provider.block(StageName.DEBUG)
        task = asyncio.create_task(flow.process_follow_up(images, problem_info=problem_info))
        await mock_provider.wait_until_called(StageName.DEBUG)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        types = event_types(flow.events.drain())
        assert types == [RunEventType.DEBUG_STARTED, RunEventType.DEBUG_CANCELLED]
        ctx = flow.context_for(RunKind.FOLLOW_UP)
        assert ctx is not None and ctx.state == PipelineState.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_without_run(self, flow: SolveFlow) -> None:
        assert flow.cancel(RunKind.INITIAL) is False
        assert flow.cancel(RunKind.FOLLOW_UP) is False
        assert flow.events.drain() == []

    @pytest.mark.asyncio
    async def test_cancel_all_clears_problem(
        self, flow: SolveFlow, mock_provider: MockProvider, images: list[ImagePayload]
    ) -> None:
        await flow.process_initial(images)
        assert flow.problem_info is not None

        assert flow.cancel_all() is False
        assert flow.problem_info is None

    @pytest.mark.asyncio
    async def test_cancel_debug_run(
        self,
        flow: SolveFlow,
        mock_provider: MockProvider,
        images: list[ImagePayload],
        problem_info: ProblemInfo,
    ) -> None:
        mock_provider.block(StageName.DEBUG)
        task = asyncio.create_task(flow.process_follow_up(images, problem_info=problem_info))
        await mock_provider.wait_until_called(StageName.DEBUG)

        flow.cancel(RunKind.FOLLOW_UP)
        outcome = await task

        assert outcome.cancelled
        types = event_types(flow.events.drain())
        assert types == [RunEventType.DEBUG_STARTED, RunEventType.DEBUG_CANCELLED]


# =============================================================================
# Debug follow-up
# =============================================================================


class TestDebugFlow:
    """Tests for follow-up runs."""

    @pytest.mark.asyncio
    async def test_debug_after_solve(
        self, flow: SolveFlow, mock_provider: MockProvider, images: list[ImagePayload]
    ) -> None:
        await flow.process_initial(images)
        flow.events.drain()
        extra = [ImagePayload.from_bytes(b"\x89PNGattempt")]

        outcome = await flow.process_follow_up(extra)

        assert outcome.success
        debug_call = mock_provider.calls_for(StageName.DEBUG)[0]
        assert debug_call["images"] == extra
        assert debug_call["model"] == flow.config_manager.config.debugging_model
        assert "Reverse a string" in debug_call["prompt"]

        events = flow.events.drain()
        assert event_types(events) == [RunEventType.DEBUG_STARTED, RunEventType.DEBUG_SUCCEEDED]
        data = events[-1].data
        assert data["code"] == "def reverse(s):\n    return s[::-1]"
        assert data["time_complexity"] == DEBUG_COMPLEXITY
        assert data["space_complexity"] == DEBUG_COMPLEXITY
        assert data["thoughts"] == [
            "The loop stops one character early",
            "Prefer slicing over manual loops",
        ]
        assert data["debug_analysis"].startswith("### Issues Identified")

    @pytest.mark.asyncio
    async def test_debug_without_problem(
        self, flow: SolveFlow, mock_provider: MockProvider, images: list[ImagePayload]
    ) -> None:
        outcome = await flow.process_follow_up(images)

        assert outcome.state == PipelineState.ERROR
        assert mock_provider.call_count == 0
        events = flow.events.drain()
        assert event_types(events) == [RunEventType.DEBUG_FAILED]
        assert events[0].data["classification"] == "validation"

    @pytest.mark.asyncio
    async def test_debug_provider_failure(
        self,
        flow: SolveFlow,
        mock_provider: MockProvider,
        images: list[ImagePayload],
        problem_info: ProblemInfo,
    ) -> None:
        mock_provider.responses[StageName.DEBUG] = ProviderRateLimitError("gemini")

        outcome = await flow.process_follow_up(images, problem_info=problem_info)

        assert outcome.message is not None
        assert outcome.message.startswith("Failed to process debug request")
        events = flow.events.drain()
        assert events[-1].type == RunEventType.DEBUG_FAILED
        assert events[-1].data["classification"] == "rate_limit"


# =============================================================================
# Configuration changes
# =============================================================================


class TestConfigurationChanges:
    """Tests for configuration updates around runs."""

    @pytest.mark.asyncio
    async def test_in_flight_run_keeps_its_client(
        self, flow: SolveFlow, mock_provider: MockProvider, images: list[ImagePayload]
    ) -> None:
        mock_provider.block(StageName.EDGE_CASES)
        task = asyncio.create_task(flow.process_initial(images))
        await mock_provider.wait_until_called(StageName.EDGE_CASES)

        flow.config_manager.update(api_key=ANTHROPIC_TEST_KEY)
        new_client = flow.registry.active_client()
        assert isinstance(new_client, MockProvider)
        assert new_client is not mock_provider

        mock_provider.release(StageName.EDGE_CASES)
        outcome = await task

        assert outcome.success
        assert mock_provider.stages_called() == SOLVE_STAGE_ORDER
        assert new_client.call_count == 0
        ctx = flow.context_for(RunKind.INITIAL)
        assert ctx is not None and ctx.provider == "gemini"

    @pytest.mark.asyncio
    async def test_next_run_uses_new_configuration(
        self, flow: SolveFlow, mock_provider: MockProvider, images: list[ImagePayload]
    ) -> None:
        flow.config_manager.update(api_key=ANTHROPIC_TEST_KEY)
        new_client = flow.registry.active_client()
        assert isinstance(new_client, MockProvider)

        await flow.process_initial(images)

        assert mock_provider.call_count == 0
        assert new_client.call_count == 6
        assert new_client.calls[0]["model"] == "claude-3-7-sonnet-20250219"

    @pytest.mark.asyncio
    async def test_close_releases_client(
        self, flow: SolveFlow, mock_provider: MockProvider
    ) -> None:
        async with flow:
            pass

        assert mock_provider.closed
        assert flow.events.closed
