"""Core orchestration module.

This module provides the main entry points and core components for SolveFlow:
- SolveFlow: Pipeline orchestrator
- ConfigManager: Live configuration with change notifications
- CancellationController: Per-run cancellation tokens
- EventChannel: Stream of tagged run events
"""

from solveflow.core.cancellation import CancellationController, CancellationToken
from solveflow.core.config import (
    ConfigManager,
    LoggingConfig,
    SolveFlowConfig,
    get_config,
    get_config_manager,
    set_config,
)
from solveflow.core.events import EventChannel, RunEvent, RunEventType
from solveflow.core.types import (
    ApiProvider,
    DebugResult,
    ImagePayload,
    ModelSelection,
    PipelineContext,
    PipelineState,
    ProblemInfo,
    RunKind,
    SolutionResult,
    StageName,
    StageResult,
)

# Imported last: the orchestrator depends on the providers package, which
# needs the configuration module above
from solveflow.core.orchestrator import RunOutcome, SolveFlow  # noqa: E402

__all__ = [
    # Orchestrator
    "SolveFlow",
    "RunOutcome",
    # Configuration
    "SolveFlowConfig",
    "LoggingConfig",
    "ConfigManager",
    "get_config",
    "get_config_manager",
    "set_config",
    # Cancellation
    "CancellationController",
    "CancellationToken",
    # Events
    "EventChannel",
    "RunEvent",
    "RunEventType",
    # Types
    "ApiProvider",
    "RunKind",
    "StageName",
    "PipelineState",
    "ProblemInfo",
    "ImagePayload",
    "ModelSelection",
    "PipelineContext",
    "StageResult",
    "SolutionResult",
    "DebugResult",
]
