"""
System Constants & Invariants
==============================
Immutable constants defining generation behavior boundaries: token budgets,
activity monitoring windows, locale names and fixed prompt fragments.

Architecture: Value Objects + Namespace Organization
"""

from dataclasses import dataclass, field
from typing import Dict, Final, Tuple

# =============================================================================
# TOKEN BUDGETS
# =============================================================================


@dataclass(frozen=True)
class TokenBudgets:
    """
    Completion token budgets per generation stage.

    Single-field HTML mode is tuned for long-form copy; JSON mode scales
    with the number of output fields up to a fixed ceiling.
    """

    SINGLE_FIELD_HTML: int = 4000
    JSON_BASE: int = 800
    JSON_PER_FIELD: int = 600
    JSON_CEILING: int = 4000

    FIELD_REPAIR_DEFAULT: int = 1000
    FIELD_REPAIR_PLAIN_DEFAULT: int = 400
    FIELD_REPAIR_CEILING: int = 4000
    FIELD_REPAIR_FLOOR: int = 64

    # Rough tokenizer ratios used to turn field limits into budgets
    CHARS_PER_TOKEN: float = 3.0
    TOKENS_PER_WORD: float = 2.0
    BUDGET_PADDING: int = 50

    TITLE: int = 60
    SUGGESTION: int = 250


TOKEN_BUDGETS: Final = TokenBudgets()


# =============================================================================
# ACTIVITY MONITORING
# =============================================================================


@dataclass(frozen=True)
class ActivityWindow:
    """Sliding window used for request telemetry."""

    WINDOW_SECONDS: float = 60.0
    CLEANUP_INTERVAL_SECONDS: float = 5.0
    ASSUMED_REQUEST_LIMIT: int = 1000  # Azure OpenAI default RPM for GPT-4 class deployments
    WARNING_THRESHOLD_PCT: float = 30.0
    CRITICAL_THRESHOLD_PCT: float = 10.0
    DEFAULT_RESET_SECONDS: int = 60


ACTIVITY_WINDOW: Final = ActivityWindow()


# Header names are matched case-insensitively; first hit wins.
RATE_LIMIT_HEADER_ALIASES: Final[Dict[str, Tuple[str, ...]]] = {
    "remaining": ("x-ratelimit-remaining-requests", "x-ms-ratelimit-remaining-requests"),
    "reset": ("x-ratelimit-reset-requests", "x-ms-ratelimit-reset-requests"),
    "retry_after": ("retry-after", "x-ms-retry-after-ms", "retry-after-ms"),
}


# =============================================================================
# LOCALIZATION
# =============================================================================


LANGUAGE_NAMES: Final[Dict[str, str]] = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "nl": "Dutch",
    "sv": "Swedish",
    "da": "Danish",
    "no": "Norwegian",
    "fi": "Finnish",
    "pl": "Polish",
    "cs": "Czech",
    "hu": "Hungarian",
    "ro": "Romanian",
    "el": "Greek",
    "tr": "Turkish",
    "ru": "Russian",
    "uk": "Ukrainian",
    "ar": "Arabic",
    "he": "Hebrew",
    "hi": "Hindi",
    "th": "Thai",
    "vi": "Vietnamese",
    "id": "Indonesian",
    "ms": "Malay",
    "ja": "Japanese",
    "ko": "Korean",
    "zh": "Chinese",
}


# =============================================================================
# PROMPT FRAGMENTS
# =============================================================================


@dataclass(frozen=True)
class PromptFragments:
    """Fixed prompt text shared by every generation call."""

    CLAIMS_RULES: str = (
        "Follow the provided product claims exactly: use mandatory claims, "
        "never use disallowed claims, and only use allowed claims where they fit."
    )
    BRAND_RULES: str = (
        "Follow the brand guidelines, tone of voice and guardrails provided for this brand."
    )
    FALLBACK_INSTRUCTION: str = (
        "Write compelling, on-brand copy for this field based on the inputs provided."
    )
    SAFETY_RULES: Tuple[str, ...] = field(
        default=(
            "Never mention product size, weight, pack size or dimensions.",
            "Never mention the country of origin or where the product is made.",
            "Do not repeat sentences, phrases or ideas across fields.",
            "Stop once the requested fields are complete; do not add extra fields or commentary.",
        )
    )
    MIN_INSTRUCTION_WORDS: int = 3


PROMPT_FRAGMENTS: Final = PromptFragments()


# Sentinel markers the model may use to wrap each field's content.
FIELD_MARKER_OPEN: Final = "##FIELD_ID:{field_id}##"
FIELD_MARKER_CLOSE: Final = "##END_FIELD_ID##"


# Output field types treated as rich markup.
RICH_FIELD_TYPES: Final = frozenset({"richtext", "rich-text", "rich_text", "html"})


__all__ = [
    "TokenBudgets",
    "TOKEN_BUDGETS",
    "ActivityWindow",
    "ACTIVITY_WINDOW",
    "RATE_LIMIT_HEADER_ALIASES",
    "LANGUAGE_NAMES",
    "PromptFragments",
    "PROMPT_FRAGMENTS",
    "FIELD_MARKER_OPEN",
    "FIELD_MARKER_CLOSE",
    "RICH_FIELD_TYPES",
]
