"""Utility modules for SolveFlow."""

from solveflow.utils.errors import (
    ConfigurationError,
    ErrorClass,
    ParseError,
    ProviderError,
    RunCancelledError,
    SolveFlowError,
    ValidationError,
)
from solveflow.utils.logging import get_logger, mask_secret, setup_logging

__all__ = [
    # Errors
    "ErrorClass",
    "SolveFlowError",
    "ProviderError",
    "ConfigurationError",
    "ParseError",
    "RunCancelledError",
    "ValidationError",
    # Logging
    "get_logger",
    "setup_logging",
    "mask_secret",
]
