"""
Exception Hierarchy & Error Handling Framework
===============================================
Type-safe exception taxonomy with structured context propagation,
retry metadata, and observability integration.

Content-quality problems (unparseable replies, length violations, empty
fields) are deliberately absent: they are data, reported in the generation
outcome, never raised.

Architecture: Railway-Oriented Programming + Error Algebra
"""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from core.enums import ErrorSeverity

# =============================================================================
# BASE EXCEPTION CLASSES
# =============================================================================


class ContentEngineException(Exception):
    """
    Root exception for all application errors.

    Implements structured error context with:
    - Unique error ID for distributed tracing
    - Severity classification for alerting
    - Structured context dictionary
    - Retry metadata
    - Timestamp for temporal analysis
    """

    def __init__(
        self,
        message: str,
        *,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: Optional[dict[str, Any]] = None,
        error_code: Optional[str] = None,
        retryable: bool = False,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.error_id: UUID = uuid4()
        self.message: str = message
        self.severity: ErrorSeverity = severity
        self.context: dict[str, Any] = context or {}
        self.error_code: Optional[str] = error_code
        self.retryable: bool = retryable
        self.timestamp: datetime = datetime.utcnow()

        # Exception chaining for causal analysis
        if cause:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        """Serialize exception for logging/telemetry."""
        return {
            "error_id": str(self.error_id),
            "error_type": self.__class__.__name__,
            "message": self.message,
            "severity": self.severity.name,
            "error_code": self.error_code,
            "retryable": self.retryable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.__cause__) if self.__cause__ else None,
        }

    def __str__(self) -> str:
        """Human-readable error representation."""
        parts = [f"[{self.severity.name}] {self.message}"]
        if self.error_code:
            parts.append(f"Code: {self.error_code}")
        if self.context:
            parts.append(f"Context: {self.context}")
        return " | ".join(parts)


# =============================================================================
# LLM & API EXCEPTIONS
# =============================================================================


class LLMException(ContentEngineException):
    """Base exception for model endpoint errors."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("severity", ErrorSeverity.ERROR)
        super().__init__(message, **kwargs)


class LLMTransportError(LLMException):
    """Network failure or non-2xx response (other than 429) from the model endpoint."""

    def __init__(
        self,
        message: str = "LLM endpoint request failed",
        *,
        status_code: Optional[int] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            retryable=True,
            context={"status_code": status_code, "operation": operation},
            error_code="LLM_TRANSPORT",
            **kwargs,
        )
        self.status_code = status_code
        self.operation = operation


class LLMRateLimitError(LLMException):
    """API rate limit exceeded (HTTP 429)."""

    def __init__(
        self,
        message: str = "LLM API rate limit exceeded",
        *,
        retry_after: Optional[int] = None,
        rate_limit_headers: Optional[Dict[str, str]] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            retryable=True,
            context={
                "retry_after_seconds": retry_after,
                "rate_limit_headers": rate_limit_headers or {},
                "operation": operation,
            },
            error_code="LLM_RATE_LIMIT",
            **kwargs,
        )
        self.retry_after = retry_after
        self.rate_limit_headers: Dict[str, str] = rate_limit_headers or {}
        self.operation = operation


class LLMTimeoutError(LLMException):
    """API request exceeded its deadline."""

    def __init__(
        self,
        message: str = "LLM API request timed out",
        *,
        timeout_seconds: Optional[float] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            retryable=True,
            context={"timeout_seconds": timeout_seconds, "operation": operation},
            error_code="LLM_TIMEOUT",
            **kwargs,
        )
        self.timeout_seconds = timeout_seconds
        self.operation = operation


class LLMInvalidResponseError(LLMException):
    """LLM returned a response without usable content."""

    def __init__(
        self,
        message: str = "LLM returned invalid response",
        *,
        response_text: Optional[str] = None,
        expected_format: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message,
            retryable=True,  # May succeed on retry with different generation
            context={
                "response_preview": response_text[:500] if response_text else None,
                "expected_format": expected_format,
            },
            error_code="LLM_INVALID_RESPONSE",
            **kwargs,
        )


# =============================================================================
# CONTENT GENERATION EXCEPTIONS
# =============================================================================


class ContentGenerationException(ContentEngineException):
    """Base exception for content generation errors."""

    pass


class GenerationError(ContentGenerationException):
    """Generation request cannot be processed as given."""

    def __init__(self, message: str, *, template_id: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.ERROR,
            retryable=False,
            context={"template_id": template_id},
            error_code="GENERATION_FAILED",
            **kwargs,
        )


# =============================================================================
# VALIDATION EXCEPTIONS
# =============================================================================


class ValidationException(ContentEngineException):
    """Base exception for input validation errors."""

    def __init__(self, message: str, *, field: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.WARNING,
            retryable=False,
            context={"field": field},
            error_code="VALIDATION_FAILED",
            **kwargs,
        )
        self.field = field


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================


class ConfigurationException(ContentEngineException):
    """Base exception for configuration errors."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, severity=ErrorSeverity.CRITICAL, **kwargs)


class MissingConfigurationError(ConfigurationException):
    """Required configuration parameter missing."""

    def __init__(self, parameter_name: str, message: Optional[str] = None, **kwargs):
        message = message or f"Required configuration parameter missing: {parameter_name}"
        super().__init__(
            message,
            retryable=False,
            context={"parameter_name": parameter_name},
            error_code="MISSING_CONFIGURATION",
            **kwargs,
        )
        self.parameter_name = parameter_name


# =============================================================================
# MODULE EXPORTS
# =============================================================================

__all__ = [
    # Base
    "ContentEngineException",
    # LLM
    "LLMException",
    "LLMTransportError",
    "LLMRateLimitError",
    "LLMTimeoutError",
    "LLMInvalidResponseError",
    # Content
    "ContentGenerationException",
    "GenerationError",
    # Validation
    "ValidationException",
    # Configuration
    "ConfigurationException",
    "MissingConfigurationError",
]
