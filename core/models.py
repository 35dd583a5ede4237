"""
Domain Data Models
==================
Pydantic v2 schema definitions for template-driven content generation:
- Brand voice and template descriptors supplied by the caller
- Normalized per-field content and constraint violation records
- Generation outcomes and request telemetry

Field names are snake_case in Python and camelCase on the wire; both
spellings are accepted on input.

Architecture: Domain-Driven Design + Value Objects
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

from config.constants import RICH_FIELD_TYPES
from core.enums import (
    FieldKind,
    GenerationMode,
    RateLimitStatus,
    RepairStage,
    RequestStatus,
    ViolationReason,
)

# =============================================================================
# CONFIGURATION
# =============================================================================


class BaseModelConfig(BaseModel):
    """Base configuration for all models."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
        use_enum_values=False,  # Keep enum types (don't convert to strings)
    )


# =============================================================================
# BRAND & TEMPLATE MODELS
# =============================================================================


class BrandVoice(BaseModelConfig):
    """
    Brand voice settings applied to one generation call.

    Absence of language/country means no localization constraint.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    brand_identity: Optional[str] = None
    tone_of_voice: Optional[str] = None
    guardrails: Optional[str] = None
    language: Optional[str] = None
    country: Optional[str] = None

    @property
    def has_locale(self) -> bool:
        return bool(self.language and self.country)


class TemplateField(BaseModelConfig):
    """Shared base of input and output template fields."""

    id: str = Field(..., min_length=1)
    name: str = Field(default="")
    type: str = Field(default="plainText")
    ai_prompt: Optional[str] = None

    @property
    def kind(self) -> FieldKind:
        return FieldKind.RICH if (self.type or "").lower() in RICH_FIELD_TYPES else FieldKind.PLAIN

    @property
    def label(self) -> str:
        """Human-readable name, falling back to the id."""
        return self.name or self.id


class InputField(TemplateField):
    """One user-supplied value per template instantiation."""

    value: str = Field(default="")

    @field_validator("value", mode="before")
    @classmethod
    def coerce_value(cls, v: Any) -> str:
        """Lists become comma-separated, None becomes empty."""
        if v is None:
            return ""
        if isinstance(v, (list, tuple)):
            return ", ".join(str(item) for item in v)
        return str(v)


class OutputField(TemplateField):
    """AI-generated field with optional voice scoping and length bounds."""

    use_brand_identity: bool = False
    use_tone_of_voice: bool = False
    use_guardrails: bool = False

    min_words: Optional[int] = Field(default=None, ge=0)
    max_words: Optional[int] = Field(default=None, ge=0)
    min_chars: Optional[int] = Field(default=None, ge=0)
    max_chars: Optional[int] = Field(default=None, ge=0)


class ProductContext(BaseModelConfig):
    """
    Pre-approved product claims.

    `styled_claims` is opaque and embedded verbatim into prompts.
    """

    product_name: str = Field(..., min_length=1)
    styled_claims: Any = None


class ContentTemplate(BaseModelConfig):
    """Ordered input and output field definitions for one generation task."""

    id: str
    name: str = ""
    input_fields: List[InputField] = Field(default_factory=list)
    output_fields: List[OutputField] = Field(default_factory=list)


class GenerationRequest(BaseModelConfig):
    """Everything needed for one generation call; owned entirely by that call."""

    brand: BrandVoice
    template: ContentTemplate
    product_context: Optional[ProductContext] = None
    additional_instructions: Optional[str] = None


# =============================================================================
# GENERATION RESULTS
# =============================================================================


class NormalizedContent(BaseModelConfig):
    """
    Canonical per-field result.

    Counts are always derived from `plain`, never from raw markup.
    """

    html: str = ""
    plain: str = ""
    word_count: int = Field(default=0, ge=0)
    char_count: int = Field(default=0, ge=0)

    @classmethod
    def empty(cls) -> "NormalizedContent":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.plain.strip()


class ConstraintViolation(BaseModelConfig):
    """A field that is missing or outside its declared bounds."""

    field_id: str
    reason: ViolationReason
    observed_value: int = 0
    bound: Optional[int] = None
    minimum: Optional[int] = None
    maximum: Optional[int] = None

    @property
    def unit(self) -> str:
        return "characters" if self.reason is ViolationReason.CHAR_RANGE else "words"

    def describe(self) -> str:
        """Feedback sentence embedded into repair prompts."""
        if self.reason is ViolationReason.EMPTY:
            return "previous draft was missing or empty"
        observed = f"previous draft had {self.observed_value} {self.unit}"
        if self.minimum is not None and self.maximum is not None:
            return f"{observed}, must be between {self.minimum} and {self.maximum}"
        if self.maximum is not None:
            return f"{observed}, must be no more than {self.maximum}"
        return f"{observed}, must be at least {self.minimum}"


class ComposedPrompt(BaseModelConfig):
    """System and user prompt text for one model call."""

    system_prompt: str
    user_prompt: str
    required_field_ids: List[str] = Field(default_factory=list)
    mode: GenerationMode = GenerationMode.MULTI_FIELD_JSON


class GenerationOutcome(BaseModelConfig):
    """
    Result of one generation request.

    Empty fields are reported here, never raised.
    """

    outputs: Dict[str, NormalizedContent] = Field(default_factory=dict)
    mode: GenerationMode
    missing_field_ids: List[str] = Field(default_factory=list)
    violations: List[ConstraintViolation] = Field(default_factory=list)
    repairs_attempted: List[RepairStage] = Field(default_factory=list)
    model_calls: int = 0

    @computed_field
    @property
    def empty_field_ids(self) -> List[str]:
        return [field_id for field_id, content in self.outputs.items() if content.is_empty]

    @computed_field
    @property
    def complete(self) -> bool:
        return not self.empty_field_ids


class SuggestionResult(BaseModelConfig):
    """Single-shot suggestion with truncation flag."""

    suggestion: str
    truncated: bool = False


# =============================================================================
# ACTIVITY TELEMETRY
# =============================================================================


class RateLimitHeaders(BaseModelConfig):
    """Raw quota headers captured from a model response."""

    remaining: Optional[str] = None
    reset: Optional[str] = None
    retry_after: Optional[str] = None


class ActivityRequest(BaseModelConfig):
    """One tracked model request; timestamps are epoch seconds, duration is ms."""

    id: str
    timestamp: float
    endpoint: str
    status: RequestStatus = RequestStatus.PENDING
    duration: Optional[float] = None
    completed_at: Optional[float] = None
    rate_limit_headers: Optional[RateLimitHeaders] = None


class RateLimitInfo(BaseModelConfig):
    remaining: int
    limit: int
    reset_in: int


class ActivityStats(BaseModelConfig):
    """Snapshot of model request activity over the trailing window."""

    active_requests: int = 0
    requests_per_minute: int = 0
    average_response_time: int = 0
    rate_limit_status: RateLimitStatus = RateLimitStatus.NORMAL
    rate_limit_info: Optional[RateLimitInfo] = None
    last_updated: Optional[float] = None


__all__ = [
    "BrandVoice",
    "TemplateField",
    "InputField",
    "OutputField",
    "ProductContext",
    "ContentTemplate",
    "GenerationRequest",
    "NormalizedContent",
    "ConstraintViolation",
    "ComposedPrompt",
    "GenerationOutcome",
    "SuggestionResult",
    "RateLimitHeaders",
    "ActivityRequest",
    "RateLimitInfo",
    "ActivityStats",
]
