"""
Structured logging setup for SolveFlow.

Provides consistent logging across all modules with support for
JSON formatting (production) and pretty printing (development).
Credential values are scrubbed by a processor before rendering.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import MutableMapping
from typing import Any

import structlog
from structlog.types import Processor

# Event keys whose values are never rendered
SECRET_KEYS = frozenset(
    {"api_key", "api_keys", "apikey", "key", "credential", "authorization", "x-goog-api-key"}
)


def mask_secret(value: str | None, visible: int = 4) -> str:
    """
    Build a display form of a secret.

    Args:
        value: The secret (may be empty)
        visible: Number of trailing characters to keep

    Returns:
        Masked string, e.g. ``"****************abcd"``; empty input gives ``""``
    """
    if not value:
        return ""
    if len(value) <= visible * 2:
        return "*" * len(value)
    return "*" * (len(value) - visible) + value[-visible:]


def redact_secrets(
    logger: Any,
    method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """structlog processor that replaces credential-bearing values."""
    for key in list(event_dict.keys()):
        if key.lower() in SECRET_KEYS and event_dict[key]:
            event_dict[key] = "***"
    return event_dict


def setup_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_file: str | None = None,
) -> None:
    """
    Configure logging for the entire application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: If True, output JSON logs (for production)
        log_file: Optional file path to write logs to

    Example:
        # Development (pretty console output)
        setup_logging(level="DEBUG", json_format=False)

        # Production (JSON for log aggregation)
        setup_logging(level="INFO", json_format=True)
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=numeric_level,
        format="%(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        logging.getLogger().addHandler(file_handler)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        redact_secrets,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if json_format:
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a logger for a specific module.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger

    Example:
        logger = get_logger(__name__)
        logger.info("Run started", run_id="run-123", provider="gemini")
    """
    return structlog.get_logger(name)


class LogContext:
    """
    Context manager for adding contextual information to logs.

    Example:
        with LogContext(run_id="run-123", run_kind="initial"):
            logger.info("Stage started")  # Includes run_id and run_kind
    """

    def __init__(self, **context: Any):
        self.context = context
        self._token: object | None = None

    def __enter__(self) -> LogContext:
        self._token = structlog.contextvars.bind_contextvars(**self.context)
        return self

    def __exit__(self, *args: Any) -> None:
        if self._token:
            structlog.contextvars.unbind_contextvars(*self.context.keys())


# =============================================================================
# Specialized Loggers
# =============================================================================


class ProviderLogger:
    """Logger specifically for provider operations."""

    def __init__(self, provider_name: str):
        self.logger = get_logger(f"solveflow.providers.{provider_name}")
        self.provider_name = provider_name

    def debug(self, message: str, **extra: Any) -> None:
        """Log debug message."""
        self.logger.debug(message, provider=self.provider_name, **extra)

    def info(self, message: str, **extra: Any) -> None:
        """Log info message."""
        self.logger.info(message, provider=self.provider_name, **extra)

    def warning(self, message: str, **extra: Any) -> None:
        """Log warning message."""
        self.logger.warning(message, provider=self.provider_name, **extra)

    def error(self, message: str, **extra: Any) -> None:
        """Log error message."""
        self.logger.error(message, provider=self.provider_name, **extra)

    def log_request(
        self,
        model: str,
        input_tokens: int,
        image_count: int = 0,
        **extra: Any,
    ) -> None:
        """Log an API request."""
        self.logger.debug(
            "API request",
            provider=self.provider_name,
            model=model,
            input_tokens=input_tokens,
            image_count=image_count,
            **extra,
        )

    def log_response(
        self,
        model: str,
        output_tokens: int,
        latency_ms: float,
        **extra: Any,
    ) -> None:
        """Log an API response."""
        self.logger.debug(
            "API response",
            provider=self.provider_name,
            model=model,
            output_tokens=output_tokens,
            latency_ms=round(latency_ms, 2),
            **extra,
        )

    def log_error(self, error: Exception, **extra: Any) -> None:
        """Log a provider error."""
        self.logger.error(
            "Provider error",
            provider=self.provider_name,
            error_type=type(error).__name__,
            error_message=str(error),
            **extra,
        )


class StageLogger:
    """Logger specifically for pipeline stage operations."""

    def __init__(self, stage_name: str):
        self.logger = get_logger(f"solveflow.pipeline.{stage_name}")
        self.stage_name = stage_name

    def log_start(self, provider: str, model: str, **extra: Any) -> None:
        """Log stage execution start."""
        self.logger.info(
            "Stage started",
            stage=self.stage_name,
            provider=provider,
            model=model,
            **extra,
        )

    def log_complete(self, provider: str, duration_seconds: float, **extra: Any) -> None:
        """Log stage completion."""
        self.logger.info(
            "Stage completed",
            stage=self.stage_name,
            provider=provider,
            duration_seconds=round(duration_seconds, 2),
            **extra,
        )

    def log_failure(self, provider: str, error: Exception, **extra: Any) -> None:
        """Log stage failure without the traceback of expected provider errors."""
        self.logger.warning(
            "Stage failed",
            stage=self.stage_name,
            provider=provider,
            error_type=type(error).__name__,
            error_message=str(error),
            **extra,
        )


# Initialize default logging on import
setup_logging()
