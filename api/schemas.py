"""
API Schemas: Request/Response Models

Centralized Pydantic models for API request/response validation.
Template generation reuses the domain models directly; the DTOs here cover
the supplementary endpoints and system responses.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.models import BaseModelConfig, BrandVoice


class TitleRequest(BaseModelConfig):
    """Command: Generate a localized title for finished content."""

    content_body: str = Field(..., min_length=1, description="Finished content, HTML or plain")
    brand: BrandVoice
    topic: Optional[str] = Field(None, max_length=500)
    keywords: Optional[List[str]] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "contentBody": "<p>Our new trail shoe grips wet rock.</p>",
                "brand": {"name": "Summit", "language": "de", "country": "Germany"},
                "topic": "Trail running",
                "keywords": ["grip", "wet rock"],
            }
        }
    )


class TitleResponse(BaseModelConfig):
    """Query result: Generated title."""

    title: str


class SuggestionRequest(BaseModelConfig):
    """Command: Single-shot suggestion for one form field."""

    prompt: str = Field(..., min_length=1, max_length=4000)
    brand: Optional[BrandVoice] = None
    form_values: Dict[str, Any] = Field(default_factory=dict)
    field_type: Optional[str] = None
    max_length: Optional[int] = Field(None, gt=0)
    max_rows: Optional[int] = Field(None, gt=0)

    @field_validator("prompt")
    @classmethod
    def validate_prompt(cls, v: str) -> str:
        """Reject whitespace-only prompts."""
        if not v.strip():
            raise ValueError("Prompt must not be blank")
        return v


class HealthCheckResponse(BaseModelConfig):
    """System health status."""

    status: str
    timestamp: datetime
    version: str
    dependencies: dict


class ErrorResponse(BaseModel):
    """Standardized error response (snake_case, as emitted by the handlers)."""

    error: str
    detail: Any
    timestamp: datetime
    request_id: Optional[str] = None
    error_code: Optional[str] = None
