"""
Custom exceptions for SolveFlow.

Provides a hierarchy of exceptions for the failure modes of the solve
pipeline. Every exception carries an ``ErrorClass`` so callers can tell an
auth failure from a rate limit or an unparseable model answer without
string matching.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorClass(str, Enum):
    """Classification attached to every ``run-failed`` event."""

    CONFIGURATION = "configuration"
    AUTH = "auth_error"
    RATE_LIMIT = "rate_limit"
    TOKEN_LIMIT = "token_limit"
    SERVER = "server_error"
    TIMEOUT = "timeout"
    TRANSPORT = "transport_error"
    PARSE = "parse_error"
    CANCELLED = "cancelled"
    VALIDATION = "validation"
    GENERIC = "generic"


class SolveFlowError(Exception):
    """
    Base exception for all SolveFlow errors.

    All custom exceptions inherit from this class.
    """

    classification: ErrorClass = ErrorClass.GENERIC

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for event payloads."""
        return {
            "error": self.__class__.__name__,
            "classification": self.classification.value,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# Provider Errors
# =============================================================================


class ProviderError(SolveFlowError):
    """
    LLM provider errors.

    Raised when a provider call fails for a reason that has no more
    specific class below.
    """

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(f"[{provider}] {message}", details, cause)
        self.provider = provider
        self.status_code = status_code


class ProviderAuthenticationError(ProviderError):
    """Provider rejected the credential."""

    classification = ErrorClass.AUTH

    def __init__(self, provider: str, details: dict[str, Any] | None = None):
        super().__init__(
            provider,
            "Authentication failed. Check your API key.",
            status_code=401,
            details=details,
        )


class ProviderRateLimitError(ProviderError):
    """Rate limit exceeded or quota exhausted."""

    classification = ErrorClass.RATE_LIMIT

    def __init__(
        self,
        provider: str,
        retry_after: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        message = "Rate limit exceeded."
        if retry_after:
            message += f" Retry after {retry_after} seconds."
        super().__init__(provider, message, status_code=429, details=details)
        self.retry_after = retry_after


class ProviderPayloadTooLargeError(ProviderError):
    """Request exceeded the provider's size or token limits."""

    classification = ErrorClass.TOKEN_LIMIT

    def __init__(self, provider: str, details: dict[str, Any] | None = None):
        super().__init__(
            provider,
            "Request is too large for this provider.",
            status_code=413,
            details=details,
        )


class ProviderServerError(ProviderError):
    """Provider returned a 5xx response."""

    classification = ErrorClass.SERVER

    def __init__(
        self,
        provider: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            provider,
            f"Server error ({status_code}). Please try again later.",
            status_code=status_code,
            details=details,
        )


class ProviderTimeoutError(ProviderError):
    """Request timeout for provider."""

    classification = ErrorClass.TIMEOUT

    def __init__(
        self,
        provider: str,
        timeout: float,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            provider,
            f"Request timed out after {timeout} seconds.",
            status_code=408,
            details=details,
        )
        self.timeout = timeout


class ProviderTransportError(ProviderError):
    """Network failure before a response was received."""

    classification = ErrorClass.TRANSPORT

    def __init__(
        self,
        provider: str,
        message: str = "Network error while contacting the provider.",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(provider, message, details=details)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(SolveFlowError):
    """
    Invalid configuration.

    Raised when configuration is invalid or missing required values.
    Always detected before any network call is made.
    """

    classification = ErrorClass.CONFIGURATION

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.config_key = config_key


class MissingAPIKeyError(ConfigurationError):
    """Required API key is missing."""

    def __init__(self, provider: str):
        super().__init__(
            f"API key not configured for provider: {provider}. Please check your settings.",
            config_key=f"api_keys.{provider}",
        )
        self.provider = provider


# =============================================================================
# Parsing Errors
# =============================================================================


class ParseError(SolveFlowError):
    """Model output could not be decoded into the expected structure."""

    classification = ErrorClass.PARSE


class ProblemParseError(ParseError):
    """The extraction stage returned something that is not a problem JSON object."""

    def __init__(self, reason: str = "unparseable problem info", raw_text: str = ""):
        super().__init__(reason, {"preview": raw_text[:200]} if raw_text else None)
        self.raw_text = raw_text


# =============================================================================
# Run Control Errors
# =============================================================================


class RunCancelledError(SolveFlowError):
    """The run was aborted by its caller."""

    classification = ErrorClass.CANCELLED

    def __init__(self, message: str = "Processing was canceled by the user."):
        super().__init__(message)


class PipelineStateError(SolveFlowError):
    """Illegal state transition inside a run."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Illegal pipeline transition: {current} -> {target}")
        self.current = current
        self.target = target


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(SolveFlowError):
    """
    Input validation error.

    Raised when input validation fails.
    """

    classification = ErrorClass.VALIDATION

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.field = field


class EmptyInputError(ValidationError):
    """Input is empty."""

    def __init__(self, field: str = "input"):
        super().__init__(f"{field} cannot be empty.", field=field)

