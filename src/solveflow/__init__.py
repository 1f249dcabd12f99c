"""
SolveFlow - Screenshot to Solution Pipeline

Turns screenshots of a coding problem into a structured problem statement,
edge cases, an approach with pseudocode, runnable code and a complexity
analysis, through a chain of LLM calls on OpenAI, Gemini or Anthropic.

Basic Usage:
    from solveflow import ImagePayload, SolveFlow

    flow = SolveFlow()
    outcome = await flow.process_initial(
        [ImagePayload.from_bytes(Path("problem.png").read_bytes())],
        language="python",
    )
    print(outcome.result.code)
"""

from solveflow.core.config import ConfigManager, SolveFlowConfig
from solveflow.core.events import EventChannel, RunEvent, RunEventType
from solveflow.core.orchestrator import RunOutcome, SolveFlow
from solveflow.core.types import (
    ApiProvider,
    DebugResult,
    ImagePayload,
    PipelineState,
    ProblemInfo,
    RunKind,
    SolutionResult,
)

__version__ = "0.1.0"
__all__ = [
    # Main class
    "SolveFlow",
    "RunOutcome",
    # Config
    "SolveFlowConfig",
    "ConfigManager",
    # Events
    "EventChannel",
    "RunEvent",
    "RunEventType",
    # Types
    "ApiProvider",
    "RunKind",
    "PipelineState",
    "ImagePayload",
    "ProblemInfo",
    "SolutionResult",
    "DebugResult",
    # Version
    "__version__",
]
