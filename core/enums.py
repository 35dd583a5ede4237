"""
Domain Enumerations & Type Taxonomy
====================================
Exhaustive type-safe enumerations for domain modeling with
first-class support for pattern matching and serialization.

Architecture: Type-Driven Design + ADT (Algebraic Data Types)
"""

from enum import Enum, IntEnum


class GenerationMode(str, Enum):
    """
    Output format negotiated with the model for one generation request.

    Decided once by the prompt composer and threaded through parsing and
    repair, so no later stage re-derives it.
    """

    SINGLE_FIELD_HTML = "single_field_html"
    MULTI_FIELD_JSON = "multi_field_json"

    @property
    def is_html(self) -> bool:
        return self is GenerationMode.SINGLE_FIELD_HTML


class FieldKind(str, Enum):
    """How an output field's value is rendered."""

    RICH = "rich"
    PLAIN = "plain"

    @property
    def output_marker(self) -> str:
        """Type marker shown to the model in the user prompt."""
        return "HTML_FRAGMENT" if self is FieldKind.RICH else "PLAIN_TEXT"


class ViolationReason(str, Enum):
    """Why a generated field failed validation."""

    EMPTY = "empty"
    WORD_RANGE = "word_range"
    CHAR_RANGE = "char_range"


class RepairStage(str, Enum):
    """Escalating recovery strategies, cheapest first."""

    RETRY_WHOLE = "retry_whole"
    MARKER_FALLBACK = "marker_fallback"
    HEADING_FALLBACK = "heading_fallback"
    PER_FIELD_REPAIR = "per_field_repair"
    SINGLE_FIELD_HTML_FALLBACK = "single_field_html_fallback"


class RequestStatus(str, Enum):
    """Lifecycle state of a tracked model request."""

    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"
    RATE_LIMITED = "rate_limited"


class RateLimitStatus(str, Enum):
    """Tiered view of remaining model quota."""

    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


class ErrorSeverity(IntEnum):
    """
    Error classification by impact severity.

    Determines alerting, retry, and recovery strategies.
    """

    CRITICAL = 5  # System failure, immediate intervention required
    ERROR = 4  # Operation failed, automatic retry possible
    WARNING = 3  # Degraded performance, monitoring needed
    INFO = 2  # Notable event, no action required
    DEBUG = 1  # Diagnostic information


__all__ = [
    "GenerationMode",
    "FieldKind",
    "ViolationReason",
    "RepairStage",
    "RequestStatus",
    "RateLimitStatus",
    "ErrorSeverity",
]
