"""
Stage executors.

Each executor is an async function of ``(PipelineContext, BaseProvider,
CancellationToken)`` returning a ``StageResult``. Executors read the fields
earlier stages produced but never write to the context; the orchestrator
applies the payload once the result is known.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import Any

from solveflow.core.cancellation import CancellationToken
from solveflow.core.types import (
    ApproachResult,
    ComplexityResult,
    PipelineContext,
    ProblemInfo,
    StageName,
    StageResult,
)
from solveflow.pipeline import extractors
from solveflow.pipeline.prompts import (
    StagePrompt,
    approach_prompt,
    code_generation_prompt,
    complexity_prompt,
    debug_prompt,
    edge_cases_prompt,
    extraction_prompt,
    solution_thinking_prompt,
)
from solveflow.providers.base import BaseProvider
from solveflow.utils.errors import ParseError, RunCancelledError, SolveFlowError, ValidationError
from solveflow.utils.logging import StageLogger

StageExecutor = Callable[[PipelineContext, BaseProvider, CancellationToken], Awaitable[StageResult[Any]]]


def _require_problem(ctx: PipelineContext) -> ProblemInfo:
    if ctx.problem_info is None:
        raise ValidationError("No problem information available", field="problem_info")
    return ctx.problem_info


async def _run_stage(
    stage: StageName,
    ctx: PipelineContext,
    client: BaseProvider,
    token: CancellationToken,
    build: Callable[[], StagePrompt],
    parse: Callable[[str], Any],
    with_images: bool = False,
) -> StageResult[Any]:
    """
    Shared executor body: prompt, guarded provider call, parse.

    Expected failures (provider, parse, cancellation) become a failed
    ``StageResult``; anything else propagates to the orchestrator.
    """
    stage_logger = StageLogger(stage.value)
    model = ctx.models.for_stage(stage)
    start_time = time.time()

    try:
        token.raise_if_cancelled()
        request = build()
        stage_logger.log_start(client.name, model)

        raw = await token.guard(
            client.generate(
                request.prompt,
                ctx.images if with_images else None,
                system=request.system,
                model=model,
                max_tokens=request.max_tokens,
                temperature=request.temperature,
            )
        )
        # A response that lands right after cancel() must not be used
        token.raise_if_cancelled()
        payload = parse(raw)

    except RunCancelledError as e:
        stage_logger.logger.info("Stage cancelled", stage=stage.value, provider=client.name)
        return StageResult.failure(stage, e, time.time() - start_time)

    except SolveFlowError as e:
        stage_logger.log_failure(client.name, e)
        return StageResult.failure(stage, e, time.time() - start_time)

    duration = time.time() - start_time
    stage_logger.log_complete(client.name, duration)
    return StageResult.success(stage, payload, duration)


# =============================================================================
# Solve stages
# =============================================================================


async def run_extraction(
    ctx: PipelineContext, client: BaseProvider, token: CancellationToken
) -> StageResult[ProblemInfo]:
    """Stage 1: screenshots to ``ProblemInfo``."""
    return await _run_stage(
        StageName.EXTRACTION,
        ctx,
        client,
        token,
        build=lambda: extraction_prompt(ctx.language),
        parse=extractors.parse_problem_info,
        with_images=True,
    )


async def run_edge_cases(
    ctx: PipelineContext, client: BaseProvider, token: CancellationToken
) -> StageResult[list[str]]:
    """Stage 2: edge cases as a list."""
    return await _run_stage(
        StageName.EDGE_CASES,
        ctx,
        client,
        token,
        build=lambda: edge_cases_prompt(_require_problem(ctx), ctx.language),
        parse=extractors.extract_bullets,
    )


async def run_solution_thinking(
    ctx: PipelineContext, client: BaseProvider, token: CancellationToken
) -> StageResult[list[str]]:
    """Stage 3: key insights as a list."""
    return await _run_stage(
        StageName.SOLUTION_THINKING,
        ctx,
        client,
        token,
        build=lambda: solution_thinking_prompt(_require_problem(ctx), ctx.language),
        parse=extractors.extract_bullets,
    )


def _parse_approach(text: str) -> ApproachResult:
    return ApproachResult(
        thoughts=extractors.extract_bullets(text),
        pseudocode=extractors.extract_pseudocode(text),
    )


async def run_approach(
    ctx: PipelineContext, client: BaseProvider, token: CancellationToken
) -> StageResult[ApproachResult]:
    """Stage 4: narrative approach plus pseudocode, which may be empty."""
    return await _run_stage(
        StageName.APPROACH,
        ctx,
        client,
        token,
        build=lambda: approach_prompt(_require_problem(ctx), ctx.language),
        parse=_parse_approach,
    )


def _parse_code(text: str) -> str:
    code = extractors.extract_code(text)
    if not code:
        raise ParseError("Model returned no code")
    return code


async def run_code_generation(
    ctx: PipelineContext, client: BaseProvider, token: CancellationToken
) -> StageResult[str]:
    """Stage 5: the solution code."""
    return await _run_stage(
        StageName.CODE_GENERATION,
        ctx,
        client,
        token,
        build=lambda: code_generation_prompt(
            _require_problem(ctx), ctx.language, ctx.pseudocode
        ),
        parse=_parse_code,
    )


def _build_complexity(ctx: PipelineContext) -> StagePrompt:
    if not ctx.code:
        raise ValidationError("Complexity analysis needs generated code", field="code")
    return complexity_prompt(_require_problem(ctx), ctx.code)


async def run_complexity(
    ctx: PipelineContext, client: BaseProvider, token: CancellationToken
) -> StageResult[ComplexityResult]:
    """Stage 6: time and space complexity of the generated code."""
    return await _run_stage(
        StageName.COMPLEXITY,
        ctx,
        client,
        token,
        build=lambda: _build_complexity(ctx),
        parse=extractors.extract_complexity,
    )


# =============================================================================
# Debug stage
# =============================================================================


async def run_debug(
    ctx: PipelineContext, client: BaseProvider, token: CancellationToken
) -> StageResult[extractors.DebugExtraction]:
    """Single-stage follow-up critique of the user's attempt."""
    return await _run_stage(
        StageName.DEBUG,
        ctx,
        client,
        token,
        build=lambda: debug_prompt(_require_problem(ctx), ctx.language),
        parse=extractors.extract_debug,
        with_images=True,
    )


SOLVE_STAGES: tuple[tuple[StageName, StageExecutor], ...] = (
    (StageName.EXTRACTION, run_extraction),
    (StageName.EDGE_CASES, run_edge_cases),
    (StageName.SOLUTION_THINKING, run_solution_thinking),
    (StageName.APPROACH, run_approach),
    (StageName.CODE_GENERATION, run_code_generation),
    (StageName.COMPLEXITY, run_complexity),
)
