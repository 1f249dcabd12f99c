"""
SolveFlow Orchestrator.

Sequences the stage executors for the two top-level operations:

- ``process_initial``: screenshots -> extraction -> edge cases -> solution
  thinking -> approach + pseudocode -> code -> complexity
- ``process_follow_up``: extra screenshots -> single debug critique

Each run owns a fresh ``PipelineContext`` and a ``CancellationToken``. Both
are registered when the run is requested, before its coroutine first runs,
so ``cancel`` always reaches it. Every run publishes its progress as tagged ``RunEvent`` objects on the event channel.
The provider client is captured once at run start, so a configuration
change never reaches an in-flight run.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Coroutine, Sequence
from dataclasses import dataclass
from typing import Any

from solveflow.core.cancellation import CancellationController, CancellationToken
from solveflow.core.config import ConfigManager, get_config_manager
from solveflow.core.events import EventChannel, RunEvent, RunEventType
from solveflow.core.types import (
    ApiProvider,
    ApproachResult,
    ComplexityResult,
    DebugResult,
    ImagePayload,
    PipelineContext,
    PipelineState,
    ProblemInfo,
    RunKind,
    SolutionResult,
    StageName,
)
from solveflow.pipeline.extractors import DEBUG_COMPLEXITY, DebugExtraction
from solveflow.pipeline.stages import SOLVE_STAGES, run_debug
from solveflow.providers.base import BaseProvider
from solveflow.providers.registry import ProviderRegistry, ProviderSnapshot
from solveflow.utils.errors import (
    EmptyInputError,
    ErrorClass,
    MissingAPIKeyError,
    RunCancelledError,
    SolveFlowError,
    ValidationError,
)
from solveflow.utils.logging import LogContext, get_logger

logger = get_logger(__name__)


# =============================================================================
# Stage Metadata
# =============================================================================

_STAGE_STATES: dict[StageName, PipelineState] = {
    StageName.EXTRACTION: PipelineState.EXTRACTING,
    StageName.EDGE_CASES: PipelineState.EDGE_CASES,
    StageName.SOLUTION_THINKING: PipelineState.SOLUTION_THINKING,
    StageName.APPROACH: PipelineState.APPROACH,
    StageName.CODE_GENERATION: PipelineState.CODE_GEN,
    StageName.COMPLEXITY: PipelineState.COMPLEXITY,
    StageName.DEBUG: PipelineState.DEBUGGING,
}

_STAGE_PROGRESS: dict[StageName, tuple[int, str]] = {
    StageName.EXTRACTION: (20, "Analyzing problem from screenshots..."),
    StageName.EDGE_CASES: (40, "Analyzing edge cases..."),
    StageName.SOLUTION_THINKING: (50, "Developing solution insights..."),
    StageName.APPROACH: (65, "Creating solution approach and pseudocode..."),
    StageName.CODE_GENERATION: (80, "Generating solution code..."),
    StageName.COMPLEXITY: (90, "Analyzing time and space complexity..."),
}

_STAGE_LABELS: dict[StageName, str] = {
    StageName.EXTRACTION: "problem extraction",
    StageName.EDGE_CASES: "edge case analysis",
    StageName.SOLUTION_THINKING: "solution thinking",
    StageName.APPROACH: "approach development",
    StageName.CODE_GENERATION: "code generation",
    StageName.COMPLEXITY: "complexity analysis",
    StageName.DEBUG: "debug analysis",
}

_PROVIDER_LABELS: dict[ApiProvider, str] = {
    ApiProvider.OPENAI: "OpenAI",
    ApiProvider.GEMINI: "Gemini",
    ApiProvider.ANTHROPIC: "Anthropic",
}

CANCELLED_MESSAGE = "Processing was canceled by the user."


def extraction_failure_message(error: SolveFlowError, provider: ApiProvider) -> str:
    """User-facing message for a failed extraction stage."""
    label = _PROVIDER_LABELS[provider]
    classification = error.classification
    if classification == ErrorClass.AUTH:
        return f"Invalid {label} API key. Please check your settings."
    if classification == ErrorClass.RATE_LIMIT:
        return f"{label} API rate limit exceeded or insufficient credits. Please try again later."
    if classification == ErrorClass.TOKEN_LIMIT:
        alternative = "OpenAI" if provider == ApiProvider.GEMINI else "Gemini"
        return (
            f"The screenshots contain too much information for {label}. "
            f"Try fewer screenshots or switch to {alternative} in settings."
        )
    if classification == ErrorClass.PARSE:
        return "Failed to parse the problem from the screenshots. Please try clearer screenshots."
    if classification == ErrorClass.SERVER:
        return f"{label} server error. Please try again later."
    if classification == ErrorClass.TIMEOUT:
        return f"{label} request timed out. Please try again."
    return f"Failed to process screenshots: {error.message}"


def stage_failure_message(stage: StageName, error: SolveFlowError) -> str:
    """User-facing message for a failure after extraction."""
    return f"Solution generation failed during {_STAGE_LABELS[stage]}: {error.message}"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class RunOutcome:
    """
    Return value of a top-level run.

    The same information is published as events; the outcome is handy for
    callers that simply await the run.
    """

    run_id: str
    kind: RunKind
    state: PipelineState
    result: SolutionResult | DebugResult | None = None
    error: SolveFlowError | None = None
    message: str | None = None

    @property
    def success(self) -> bool:
        return self.state == PipelineState.DONE

    @property
    def cancelled(self) -> bool:
        return self.state == PipelineState.CANCELLED

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "kind": self.kind.value,
            "state": self.state.value,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error.to_dict() if self.error else None,
            "message": self.message,
        }


# =============================================================================
# Orchestrator
# =============================================================================


class SolveFlow:
    """
    Pipeline orchestrator.

    Example:
        flow = SolveFlow()
        listener = asyncio.create_task(flow.events.listen(render))
        outcome = await flow.process_initial([ImagePayload.from_bytes(png)])
        if outcome.success:
            print(outcome.result.code)

    Attributes:
        config_manager: Source of configuration and change notifications
        registry: Provider client registry following ``config_manager``
        events: Channel every run publishes its events on
    """

    def __init__(
        self,
        config_manager: ConfigManager | None = None,
        registry: ProviderRegistry | None = None,
        channel: EventChannel | None = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            config_manager: Configuration holder (global manager if None)
            registry: Provider registry (a new one if None)
            channel: Event channel (a new one if None)
        """
        self.config_manager = config_manager or get_config_manager()
        self.registry = registry or ProviderRegistry()
        self.registry.attach(self.config_manager)
        self.events = channel or EventChannel()

        self._cancellation = CancellationController()
        self._contexts: dict[RunKind, PipelineContext] = {}
        self._problem_info: ProblemInfo | None = None
        self._problem_owner: str | None = None

        logger.info(
            "SolveFlow initialized",
            provider=self.registry.provider.value,
            has_client=self.registry.active_client() is not None,
        )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def problem_info(self) -> ProblemInfo | None:
        """Problem of the last successful extraction, if not cleared since."""
        return self._problem_info

    def context_for(self, kind: RunKind) -> PipelineContext | None:
        """Context of the latest run of ``kind``."""
        return self._contexts.get(kind)

    def is_running(self, kind: RunKind) -> bool:
        return self._cancellation.active(kind) is not None

    # =========================================================================
    # Cancellation
    # =========================================================================

    def cancel(self, kind: RunKind) -> bool:
        """
        Cancel the requested or in-flight run of ``kind``.

        Returns:
            True if a run was cancelled
        """
        return self._cancellation.cancel(kind)

    def cancel_all(self) -> bool:
        """Cancel every run and forget the stored problem."""
        cancelled = self._cancellation.cancel_all()
        self._clear_problem()
        return cancelled

    def reset(self) -> None:
        """Cancel everything and drop all run contexts."""
        self.cancel_all()
        self._contexts.clear()

    def _clear_problem(self) -> None:
        self._problem_info = None
        self._problem_owner = None

    def _register(self, ctx: PipelineContext) -> CancellationToken:
        """Acquire the token for ``ctx``; cancelling it drops the run's partial results."""
        token = self._cancellation.acquire(ctx.kind)
        token.add_release_hook(lambda: self._on_cancel(ctx))
        return token

    def _on_cancel(self, ctx: PipelineContext) -> None:
        ctx.reset()
        if ctx.kind == RunKind.INITIAL:
            self._clear_problem()

    # =========================================================================
    # Event helpers
    # =========================================================================

    def _emit(
        self,
        run_id: str,
        kind: RunKind,
        event_type: RunEventType,
        data: dict[str, Any] | None = None,
    ) -> None:
        self.events.publish(RunEvent(type=event_type, run_id=run_id, kind=kind, data=data or {}))

    def _progress(self, ctx: PipelineContext, progress: int, message: str) -> None:
        self._emit(
            ctx.run_id,
            ctx.kind,
            RunEventType.PROCESSING_STATUS,
            {"message": message, "progress": progress},
        )

    def _new_context(
        self,
        kind: RunKind,
        run_id: str,
        snapshot: ProviderSnapshot,
        images: Sequence[ImagePayload],
        problem_info: ProblemInfo | None = None,
    ) -> PipelineContext:
        ctx = PipelineContext(
            run_id=run_id,
            kind=kind,
            language=snapshot.language,
            provider=snapshot.provider.value,
            models=snapshot.models,
            images=list(images),
            problem_info=problem_info,
        )
        self._contexts[kind] = ctx
        return ctx

    # =========================================================================
    # Initial solve
    # =========================================================================

    def process_initial(
        self,
        images: Sequence[ImagePayload],
        language: str | None = None,
    ) -> Coroutine[Any, Any, RunOutcome]:
        """
        Run the full solve pipeline on the screenshot queue.

        The run is registered as soon as this is called; the returned
        coroutine executes it and must be awaited:

            outcome = await flow.process_initial(images)

        Args:
            images: Screenshots of the problem, in order
            language: Target language (configured language if None)

        Returns:
            Coroutine resolving to the RunOutcome that mirrors the terminal event

        Raises:
            EmptyInputError: If no screenshots were given
        """
        if not images:
            raise EmptyInputError("images")

        kind = RunKind.INITIAL
        run_id = f"run-{uuid.uuid4().hex[:12]}"
        snapshot = self.registry.snapshot(language)
        # A new run always starts without a problem
        self._clear_problem()

        if snapshot.client is None:
            return self._configuration_failure(run_id, kind, snapshot)

        ctx = self._new_context(kind, run_id, snapshot, images)
        token = self._register(ctx)
        return self._execute(
            ctx,
            token,
            self._run_solve(ctx, snapshot.client, token),
            None,
            "Failed to process screenshots. Please try again.",
        )

    async def _execute(
        self,
        ctx: PipelineContext,
        token: CancellationToken,
        body: Awaitable[RunOutcome],
        failure_stage: StageName | None,
        failure_message: str,
    ) -> RunOutcome:
        """Await a run body and turn whatever escapes it into a terminal event."""
        with LogContext(run_id=ctx.run_id, run_kind=ctx.kind.value):
            try:
                return await body
            except asyncio.CancelledError:
                # The task awaiting this run was cancelled from outside
                token.cancel()
                self._finish_cancelled(ctx)
                raise
            except Exception as e:
                if token.cancelled:
                    return self._finish_cancelled(ctx)
                logger.error("Run failed unexpectedly", error=str(e), exc_info=True)
                error = e if isinstance(e, SolveFlowError) else SolveFlowError(str(e), cause=e)
                return self._finish_failed(ctx, failure_stage, error, failure_message)
            finally:
                self._cancellation.release(ctx.kind, token)

    async def _run_solve(
        self,
        ctx: PipelineContext,
        client: BaseProvider,
        token: CancellationToken,
    ) -> RunOutcome:
        logger.info(
            "Run started",
            provider=ctx.provider,
            language=ctx.language,
            image_count=len(ctx.images),
        )
        self._emit(
            ctx.run_id,
            ctx.kind,
            RunEventType.RUN_STARTED,
            {"provider": ctx.provider, "language": ctx.language, "image_count": len(ctx.images)},
        )

        for stage, executor in SOLVE_STAGES:
            if token.cancelled:
                return self._finish_cancelled(ctx)

            ctx.advance(_STAGE_STATES[stage])
            progress, message = _STAGE_PROGRESS[stage]
            self._progress(ctx, progress, message)

            result = await executor(ctx, client, token)

            if result.cancelled or token.cancelled:
                return self._finish_cancelled(ctx)
            if not result.ok:
                assert result.error is not None
                if stage == StageName.EXTRACTION:
                    user_message = extraction_failure_message(result.error, ApiProvider(ctx.provider))
                else:
                    user_message = stage_failure_message(stage, result.error)
                return self._finish_failed(ctx, stage, result.error, user_message)

            self._apply_stage(ctx, stage, result.payload)

        ctx.advance(PipelineState.DONE)
        solution = SolutionResult(
            code=ctx.code,
            thoughts=ctx.combined_thoughts(),
            time_complexity=ctx.time_complexity,
            space_complexity=ctx.space_complexity,
        )
        self._progress(ctx, 100, "Solution generated successfully")
        self._emit(
            ctx.run_id,
            ctx.kind,
            RunEventType.RUN_SUCCEEDED,
            {
                **solution.to_dict(),
                "edge_cases": list(ctx.edge_cases),
                "solution_thoughts": list(ctx.solution_thoughts),
                "approach_thoughts": list(ctx.approach_thoughts),
                "pseudocode": ctx.pseudocode,
            },
        )
        logger.info("Run succeeded", code_length=len(ctx.code))
        return RunOutcome(ctx.run_id, ctx.kind, ctx.state, result=solution)

    def _apply_stage(self, ctx: PipelineContext, stage: StageName, payload: Any) -> None:
        """Write a stage payload into the context and publish its event."""
        if stage == StageName.EXTRACTION:
            problem: ProblemInfo = payload
            ctx.problem_info = problem
            self._problem_info = problem
            self._problem_owner = ctx.run_id
            self._emit(ctx.run_id, ctx.kind, RunEventType.PROBLEM_EXTRACTED, problem.to_dict())

        elif stage == StageName.EDGE_CASES:
            ctx.edge_cases = list(payload)
            self._emit(
                ctx.run_id,
                ctx.kind,
                RunEventType.EDGE_CASES_EXTRACTED,
                {"edge_cases": list(ctx.edge_cases)},
            )

        elif stage == StageName.SOLUTION_THINKING:
            ctx.solution_thoughts = list(payload)
            self._emit(
                ctx.run_id,
                ctx.kind,
                RunEventType.SOLUTION_THINKING,
                {"thoughts": list(ctx.solution_thoughts)},
            )

        elif stage == StageName.APPROACH:
            approach: ApproachResult = payload
            ctx.approach_thoughts = list(approach.thoughts)
            ctx.pseudocode = approach.pseudocode
            if not approach.pseudocode:
                logger.warning("No pseudocode found, continuing without it")
            self._emit(
                ctx.run_id,
                ctx.kind,
                RunEventType.APPROACH_DEVELOPED,
                {"thoughts": list(ctx.approach_thoughts), "pseudocode": ctx.pseudocode},
            )

        elif stage == StageName.CODE_GENERATION:
            ctx.code = payload
            self._emit(
                ctx.run_id,
                ctx.kind,
                RunEventType.CODE_GENERATED,
                {"thoughts": ctx.combined_thoughts(), "code": ctx.code},
            )

        elif stage == StageName.COMPLEXITY:
            complexity: ComplexityResult = payload
            ctx.time_complexity = complexity.time_complexity
            ctx.space_complexity = complexity.space_complexity

    # =========================================================================
    # Debug follow-up
    # =========================================================================

    def process_follow_up(
        self,
        images: Sequence[ImagePayload],
        problem_info: ProblemInfo | None = None,
        language: str | None = None,
    ) -> Coroutine[Any, Any, RunOutcome]:
        """
        Run the single-stage debug critique on extra screenshots.

        Registered when called, like ``process_initial``; await the result.

        Args:
            images: Screenshots of the user's attempt, errors or test cases
            problem_info: Problem to debug against (last extracted if None)
            language: Target language (configured language if None)

        Returns:
            Coroutine resolving to the RunOutcome that mirrors the terminal event

        Raises:
            EmptyInputError: If no screenshots were given
        """
        if not images:
            raise EmptyInputError("images")

        kind = RunKind.FOLLOW_UP
        run_id = f"debug-{uuid.uuid4().hex[:12]}"
        snapshot = self.registry.snapshot(language)
        problem = problem_info or self._problem_info

        if snapshot.client is None:
            return self._configuration_failure(run_id, kind, snapshot)
        if problem is None:
            return self._missing_problem(run_id, kind)

        ctx = self._new_context(kind, run_id, snapshot, images, problem_info=problem)
        token = self._register(ctx)
        return self._execute(
            ctx,
            token,
            self._run_debug(ctx, snapshot.client, token),
            StageName.DEBUG,
            "Failed to process debug request.",
        )

    async def _run_debug(
        self,
        ctx: PipelineContext,
        client: BaseProvider,
        token: CancellationToken,
    ) -> RunOutcome:
        logger.info("Debug started", provider=ctx.provider, image_count=len(ctx.images))
        self._emit(
            ctx.run_id,
            ctx.kind,
            RunEventType.DEBUG_STARTED,
            {"provider": ctx.provider, "language": ctx.language, "image_count": len(ctx.images)},
        )
        self._progress(ctx, 30, "Processing debug screenshots...")
        if token.cancelled:
            return self._finish_cancelled(ctx)

        ctx.advance(PipelineState.DEBUGGING)
        self._progress(ctx, 60, "Analyzing code and generating debug feedback...")
        result = await run_debug(ctx, client, token)

        if result.cancelled or token.cancelled:
            return self._finish_cancelled(ctx)
        if not result.ok:
            assert result.error is not None
            message = f"Failed to process debug request: {result.error.message}"
            return self._finish_failed(ctx, StageName.DEBUG, result.error, message)

        extraction: DebugExtraction = result.unwrap()
        ctx.code = extraction.code
        ctx.debug_analysis = extraction.analysis
        ctx.time_complexity = DEBUG_COMPLEXITY
        ctx.space_complexity = DEBUG_COMPLEXITY
        ctx.advance(PipelineState.DONE)

        debug = DebugResult(
            code=ctx.code,
            debug_analysis=ctx.debug_analysis,
            thoughts=list(extraction.thoughts),
            time_complexity=ctx.time_complexity,
            space_complexity=ctx.space_complexity,
        )
        self._progress(ctx, 100, "Debug analysis complete")
        self._emit(ctx.run_id, ctx.kind, RunEventType.DEBUG_SUCCEEDED, debug.to_dict())
        logger.info("Debug succeeded")
        return RunOutcome(ctx.run_id, ctx.kind, ctx.state, result=debug)

    # =========================================================================
    # Terminal outcomes
    # =========================================================================

    async def _configuration_failure(
        self, run_id: str, kind: RunKind, snapshot: ProviderSnapshot
    ) -> RunOutcome:
        error = MissingAPIKeyError(snapshot.provider.value)
        message = f"{_PROVIDER_LABELS[snapshot.provider]} API key not configured. Please check your settings."
        with LogContext(run_id=run_id, run_kind=kind.value):
            logger.warning("Run rejected, no provider client", provider=snapshot.provider.value)
        event_type = RunEventType.RUN_FAILED if kind == RunKind.INITIAL else RunEventType.DEBUG_FAILED
        self._emit(
            run_id,
            kind,
            event_type,
            {"message": message, "classification": error.classification.value},
        )
        return RunOutcome(run_id, kind, PipelineState.ERROR, error=error, message=message)

    async def _missing_problem(self, run_id: str, kind: RunKind) -> RunOutcome:
        error = ValidationError("No problem information available", field="problem_info")
        message = "No problem information available. Solve a problem before debugging."
        with LogContext(run_id=run_id, run_kind=kind.value):
            logger.warning("Debug requested without a problem")
        self._emit(
            run_id,
            kind,
            RunEventType.DEBUG_FAILED,
            {"message": message, "classification": error.classification.value},
        )
        return RunOutcome(run_id, kind, PipelineState.ERROR, error=error, message=message)

    def _finish_failed(
        self,
        ctx: PipelineContext,
        stage: StageName | None,
        error: SolveFlowError,
        message: str,
    ) -> RunOutcome:
        if not ctx.state.is_terminal and ctx.state != PipelineState.IDLE:
            ctx.advance(PipelineState.ERROR)
        else:
            ctx.state = PipelineState.ERROR
        ctx.error = error

        logger.warning(
            "Run failed",
            stage=stage.value if stage else None,
            classification=error.classification.value,
            error=error.message,
        )
        event_type = RunEventType.RUN_FAILED if ctx.kind == RunKind.INITIAL else RunEventType.DEBUG_FAILED
        self._emit(
            ctx.run_id,
            ctx.kind,
            event_type,
            {
                "message": message,
                "classification": error.classification.value,
                "stage": stage.value if stage else None,
            },
        )
        return RunOutcome(ctx.run_id, ctx.kind, ctx.state, error=error, message=message)

    def _finish_cancelled(self, ctx: PipelineContext) -> RunOutcome:
        if ctx.state.is_terminal:
            return RunOutcome(ctx.run_id, ctx.kind, ctx.state, error=ctx.error)

        if ctx.state == PipelineState.IDLE:
            ctx.state = PipelineState.CANCELLED
        else:
            ctx.advance(PipelineState.CANCELLED)
        ctx.error = RunCancelledError()
        ctx.reset()
        if ctx.kind == RunKind.INITIAL and self._problem_owner == ctx.run_id:
            self._clear_problem()

        event_type = (
            RunEventType.RUN_CANCELLED if ctx.kind == RunKind.INITIAL else RunEventType.DEBUG_CANCELLED
        )
        self._emit(ctx.run_id, ctx.kind, event_type, {"message": CANCELLED_MESSAGE})
        return RunOutcome(ctx.run_id, ctx.kind, ctx.state, error=ctx.error, message=CANCELLED_MESSAGE)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def close(self) -> None:
        """Cancel runs, stop following configuration and close the channel."""
        logger.info("Closing SolveFlow")
        self.reset()
        self.registry.detach()
        client = self.registry.active_client()
        if client is not None:
            await client.close()
        self.events.close()

    async def __aenter__(self) -> SolveFlow:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def __repr__(self) -> str:
        return (
            f"SolveFlow("
            f"provider={self.registry.provider.value!r}, "
            f"initial_running={self.is_running(RunKind.INITIAL)}, "
            f"follow_up_running={self.is_running(RunKind.FOLLOW_UP)})"
        )
