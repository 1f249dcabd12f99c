"""
Core type definitions for SolveFlow.

This module contains the Enums, Dataclasses and models shared by the
pipeline, the provider adapters and the orchestrator.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, field_validator

from solveflow.utils.errors import PipelineStateError, RunCancelledError, SolveFlowError

T = TypeVar("T")

# =============================================================================
# Enums
# =============================================================================


class ApiProvider(str, Enum):
    """Supported AI backends."""

    OPENAI = "openai"
    GEMINI = "gemini"
    ANTHROPIC = "anthropic"


class RunKind(str, Enum):
    """The two independent top-level operations."""

    INITIAL = "initial"  # screenshot queue -> full solve
    FOLLOW_UP = "follow_up"  # extra screenshots -> debug critique


class StageName(str, Enum):
    """Pipeline stages, in execution order."""

    EXTRACTION = "extraction"
    EDGE_CASES = "edge_cases"
    SOLUTION_THINKING = "solution_thinking"
    APPROACH = "approach"
    CODE_GENERATION = "code_generation"
    COMPLEXITY = "complexity"
    DEBUG = "debug"


class PipelineState(str, Enum):
    """Lifecycle of a single run."""

    IDLE = "idle"
    EXTRACTING = "extracting"
    EDGE_CASES = "edge_cases"
    SOLUTION_THINKING = "solution_thinking"
    APPROACH = "approach"
    CODE_GEN = "code_gen"
    COMPLEXITY = "complexity"
    DEBUGGING = "debugging"
    DONE = "done"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineState.DONE, PipelineState.ERROR, PipelineState.CANCELLED)


# Forward transitions; ERROR and CANCELLED are reachable from any active state
_TRANSITIONS: dict[PipelineState, tuple[PipelineState, ...]] = {
    PipelineState.IDLE: (PipelineState.EXTRACTING, PipelineState.DEBUGGING),
    PipelineState.EXTRACTING: (PipelineState.EDGE_CASES,),
    PipelineState.EDGE_CASES: (PipelineState.SOLUTION_THINKING,),
    PipelineState.SOLUTION_THINKING: (PipelineState.APPROACH,),
    PipelineState.APPROACH: (PipelineState.CODE_GEN,),
    PipelineState.CODE_GEN: (PipelineState.COMPLEXITY,),
    PipelineState.COMPLEXITY: (PipelineState.DONE,),
    PipelineState.DEBUGGING: (PipelineState.DONE,),
}


# =============================================================================
# Inputs
# =============================================================================


class ProblemInfo(BaseModel):
    """Structured coding problem produced by the extraction stage."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    problem_statement: str
    constraints: str = ""
    example_input: str = ""
    example_output: str = ""

    @field_validator(
        "problem_statement", "constraints", "example_input", "example_output", mode="before"
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        # Models sometimes answer with lists or objects instead of strings
        if value is None:
            return ""
        if isinstance(value, str):
            return value
        if isinstance(value, list):
            return "\n".join(
                item if isinstance(item, str) else json.dumps(item) for item in value
            )
        if isinstance(value, dict):
            return json.dumps(value)
        return str(value)

    @field_validator("problem_statement")
    @classmethod
    def _require_statement(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("problem_statement is empty")
        return value.strip()

    def to_dict(self) -> dict[str, str]:
        return self.model_dump()


@dataclass(frozen=True)
class ImagePayload:
    """A screenshot already loaded by the caller, base64 encoded."""

    data: str
    media_type: str = "image/png"

    @classmethod
    def from_bytes(cls, raw: bytes, media_type: str | None = None) -> ImagePayload:
        """Encode raw image bytes, sniffing the media type when not given."""
        if media_type is None:
            if raw.startswith(b"\xff\xd8"):
                media_type = "image/jpeg"
            elif raw[:4] == b"RIFF" and raw[8:12] == b"WEBP":
                media_type = "image/webp"
            else:
                media_type = "image/png"
        return cls(data=base64.b64encode(raw).decode("ascii"), media_type=media_type)

    @classmethod
    def from_base64(cls, data: str, media_type: str = "image/png") -> ImagePayload:
        try:
            base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError("image payload is not valid base64") from e
        return cls(data=data, media_type=media_type)

    @property
    def data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.data}"


@dataclass(frozen=True)
class ModelSelection:
    """Per-category model identifiers captured at run start."""

    extraction: str
    solution: str
    debugging: str

    def for_stage(self, stage: StageName) -> str:
        if stage == StageName.EXTRACTION:
            return self.extraction
        if stage == StageName.DEBUG:
            return self.debugging
        return self.solution


# =============================================================================
# Stage Results
# =============================================================================


@dataclass(frozen=True)
class StageResult(Generic[T]):
    """Success(payload) or Failure(error) returned by every stage executor."""

    stage: StageName
    payload: T | None = None
    error: SolveFlowError | None = None
    duration_seconds: float = 0.0

    @classmethod
    def success(cls, stage: StageName, payload: T, duration: float = 0.0) -> StageResult[T]:
        return cls(stage=stage, payload=payload, duration_seconds=duration)

    @classmethod
    def failure(
        cls, stage: StageName, error: SolveFlowError, duration: float = 0.0
    ) -> StageResult[T]:
        return cls(stage=stage, error=error, duration_seconds=duration)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def cancelled(self) -> bool:
        return isinstance(self.error, RunCancelledError)

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.payload  # type: ignore[return-value]


@dataclass(frozen=True)
class ApproachResult:
    thoughts: list[str]
    pseudocode: str


@dataclass(frozen=True)
class ComplexityResult:
    time_complexity: str
    space_complexity: str


@dataclass
class SolutionResult:
    """Final payload of a successful solve run."""

    code: str
    thoughts: list[str]
    time_complexity: str
    space_complexity: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "thoughts": list(self.thoughts),
            "time_complexity": self.time_complexity,
            "space_complexity": self.space_complexity,
        }


@dataclass
class DebugResult:
    """Final payload of a successful follow-up run."""

    code: str
    debug_analysis: str
    thoughts: list[str]
    time_complexity: str
    space_complexity: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "debug_analysis": self.debug_analysis,
            "thoughts": list(self.thoughts),
            "time_complexity": self.time_complexity,
            "space_complexity": self.space_complexity,
        }


# =============================================================================
# Pipeline Context
# =============================================================================


@dataclass
class PipelineContext:
    """
    Mutable per-run accumulator.

    Built incrementally by the orchestrator from stage results. Stages run
    strictly in sequence within one run, so a context is never written by
    two stages at once. Each run owns its own context.
    """

    run_id: str
    kind: RunKind
    language: str
    provider: str
    models: ModelSelection
    images: list[ImagePayload] = field(default_factory=list)
    problem_info: ProblemInfo | None = None
    edge_cases: list[str] = field(default_factory=list)
    solution_thoughts: list[str] = field(default_factory=list)
    approach_thoughts: list[str] = field(default_factory=list)
    pseudocode: str = ""
    code: str = ""
    time_complexity: str = ""
    space_complexity: str = ""
    debug_analysis: str = ""
    state: PipelineState = PipelineState.IDLE
    error: SolveFlowError | None = None
    created_at: datetime = field(default_factory=datetime.now)

    def advance(self, target: PipelineState) -> None:
        """Move to ``target``, rejecting re-entry and out-of-order jumps."""
        current = self.state
        if current.is_terminal:
            raise PipelineStateError(current.value, target.value)
        if target in (PipelineState.ERROR, PipelineState.CANCELLED):
            if current == PipelineState.IDLE:
                raise PipelineStateError(current.value, target.value)
        elif target not in _TRANSITIONS.get(current, ()):
            raise PipelineStateError(current.value, target.value)
        self.state = target

    def combined_thoughts(self) -> list[str]:
        """Edge cases, insights and approach notes as one ordered list."""
        return [*self.edge_cases, *self.solution_thoughts, *self.approach_thoughts]

    def reset(self) -> None:
        """Drop everything produced so far; the state is kept."""
        self.images = []
        self.problem_info = None
        self.edge_cases = []
        self.solution_thoughts = []
        self.approach_thoughts = []
        self.pseudocode = ""
        self.code = ""
        self.time_complexity = ""
        self.space_complexity = ""
        self.debug_analysis = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "kind": self.kind.value,
            "language": self.language,
            "provider": self.provider,
            "state": self.state.value,
            "problem_info": self.problem_info.to_dict() if self.problem_info else None,
            "edge_cases": list(self.edge_cases),
            "solution_thoughts": list(self.solution_thoughts),
            "approach_thoughts": list(self.approach_thoughts),
            "pseudocode": self.pseudocode,
            "code": self.code,
            "time_complexity": self.time_complexity,
            "space_complexity": self.space_complexity,
            "debug_analysis": self.debug_analysis,
            "error": self.error.to_dict() if self.error else None,
        }
