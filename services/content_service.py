"""
Content Service: Business Logic Layer for Content Generation

Facade used by request handlers:
- Template generation through the generate/validate/repair pipeline
- Localized title generation from finished content
- Single-shot suggestions for individual form fields

Design Pattern: Service Layer over the execution pipeline
"""

import math
import re
from typing import Any, Dict, List, Mapping, Optional

from loguru import logger

from config.constants import TOKEN_BUDGETS
from config.settings import LLMSettings
from core.exceptions import LLMInvalidResponseError, ValidationException
from core.models import BrandVoice, GenerationOutcome, GenerationRequest, SuggestionResult
from execution.content_normalizer import html_to_plain, strip_code_fences
from execution.generation_orchestrator import GenerationOrchestrator
from execution.prompt_composer import PromptComposer
from infrastructure.llm_client import LLMClient, build_messages

_PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")
_WRAPPING_QUOTES = "\"'“”„‘’‚«»"
_TITLE_PREFIX = re.compile(r"^\s*title\s*:\s*", re.IGNORECASE)

_BRAND_PLACEHOLDERS = {
    "brand.name": "name",
    "brand.identity": "brand_identity",
    "brand.brand_identity": "brand_identity",
    "brand.tone_of_voice": "tone_of_voice",
    "brand.tone": "tone_of_voice",
    "brand.guardrails": "guardrails",
    "brand.language": "language",
    "brand.country": "country",
}


def _strip_wrapping_quotes(text: str) -> str:
    text = text.strip()
    while len(text) >= 2 and text[0] in _WRAPPING_QUOTES and text[-1] in _WRAPPING_QUOTES:
        text = text[1:-1].strip()
    return text


class ContentService:
    """
    Service layer for content generation.

    Provides high-level operations for the API layer, abstracting away the
    pipeline and model client.
    """

    def __init__(
        self,
        orchestrator: GenerationOrchestrator,
        llm_client: LLMClient,
        llm_settings: LLMSettings,
        prompt_composer: Optional[PromptComposer] = None,
    ):
        """
        Initialize service with required dependencies.

        Args:
            orchestrator: Template generation pipeline
            llm_client: Client for single-shot calls
            llm_settings: Sampling parameters
            prompt_composer: Shared prompt fragments (language lock)
        """
        self.orchestrator = orchestrator
        self.llm = llm_client
        self.llm_settings = llm_settings
        self.composer = prompt_composer or PromptComposer()
        logger.debug("ContentService initialized")

    async def generate_from_template(self, request: GenerationRequest) -> GenerationOutcome:
        """
        Populate every output field of a template.

        Returns:
            GenerationOutcome; fields that stayed empty are reported, not raised
        """
        return await self.orchestrator.generate(request)

    async def generate_title(
        self,
        content_body: str,
        brand: BrandVoice,
        topic: Optional[str] = None,
        keywords: Optional[List[str]] = None,
    ) -> str:
        """
        Generate one localized title for finished content.

        Raises:
            ValidationException: Missing content, or brand without language/country
            LLMInvalidResponseError: Model returned no usable title
        """
        if not content_body or not content_body.strip():
            raise ValidationException("Content body is required", field="content_body")
        if not brand.has_locale:
            raise ValidationException(
                "Brand language and country are required for title generation", field="brand"
            )

        system_prompt = "\n\n".join(
            [
                f'You are an expert copywriter writing titles for the brand "{brand.name}".',
                self.composer.language_directive(brand),
                "Write exactly one title of 6 to 12 words for the content provided. "
                "Return plain text only: no quotes, no markdown, no HTML and no commentary.",
            ]
        )

        user_parts = [f"Content:\n{html_to_plain(content_body)[:4000]}"]
        if topic:
            user_parts.append(f"Topic: {topic}")
        if keywords:
            user_parts.append(f"Keywords: {', '.join(keywords)}")

        response = await self.llm.complete(
            build_messages(system_prompt, "\n\n".join(user_parts)),
            operation="generate_title",
            max_tokens=TOKEN_BUDGETS.TITLE,
            temperature=self.llm_settings.default_temperature,
        )

        title = html_to_plain(strip_code_fences(response.content))
        title = _strip_wrapping_quotes(_TITLE_PREFIX.sub("", title))
        if not title:
            raise LLMInvalidResponseError(
                "Model returned an empty title",
                response_text=response.content,
                expected_format="plain text title",
            )

        logger.info(f"Title generated | brand={brand.name} | words={len(title.split())}")
        return title

    async def generate_suggestion(
        self,
        prompt: str,
        brand: Optional[BrandVoice] = None,
        form_values: Optional[Mapping[str, Any]] = None,
        field_type: Optional[str] = None,
        max_length: Optional[int] = None,
        max_rows: Optional[int] = None,
    ) -> SuggestionResult:
        """
        Single-shot plain-text suggestion for one form field.

        `{{key}}` placeholders resolve from form values and `{{brand.*}}`
        from the brand; anything unresolved is removed. The reply is clamped
        to `max_length` characters and `max_rows` lines.

        Raises:
            ValidationException: Prompt empty after interpolation
            LLMInvalidResponseError: Model returned an empty suggestion
        """
        resolved_prompt = self.interpolate(prompt or "", brand, form_values)
        if not resolved_prompt:
            raise ValidationException("Prompt is required", field="prompt")

        system_parts = [
            "You are a helpful marketing assistant. Respond with plain text only: "
            "no markdown, no HTML, no surrounding quotes and no commentary."
        ]
        if field_type:
            system_parts.append(f"The text will be used in a {field_type} field.")
        if max_length:
            system_parts.append(f"Keep the response under {max_length} characters.")
        if max_rows:
            system_parts.append(f"Use at most {max_rows} lines.")
        if brand is not None:
            system_parts.append(self.composer.language_directive(brand))

        max_tokens = (
            math.ceil(max_length / TOKEN_BUDGETS.CHARS_PER_TOKEN) + 5
            if max_length
            else TOKEN_BUDGETS.SUGGESTION
        )
        response = await self.llm.complete(
            build_messages("\n".join(part for part in system_parts if part), resolved_prompt),
            operation="suggest",
            max_tokens=max_tokens,
            temperature=self.llm_settings.default_temperature,
        )

        suggestion = _strip_wrapping_quotes(strip_code_fences(response.content))
        if not suggestion:
            raise LLMInvalidResponseError(
                "Model returned an empty suggestion",
                response_text=response.content,
                expected_format="plain text",
            )

        suggestion, truncated = self.clamp(suggestion, max_length, max_rows)
        if truncated:
            logger.warning(
                f"Suggestion clamped | max_length={max_length} | max_rows={max_rows}"
            )
        return SuggestionResult(suggestion=suggestion, truncated=truncated)

    @staticmethod
    def interpolate(
        prompt: str,
        brand: Optional[BrandVoice],
        form_values: Optional[Mapping[str, Any]],
    ) -> str:
        values: Dict[str, str] = {}
        for key, value in (form_values or {}).items():
            if isinstance(value, (list, tuple)):
                value = ", ".join(str(item) for item in value)
            values[str(key).strip().lower()] = "" if value is None else str(value)

        def replace(match: "re.Match[str]") -> str:
            key = match.group(1).strip().lower()
            if key in _BRAND_PLACEHOLDERS:
                return (getattr(brand, _BRAND_PLACEHOLDERS[key]) or "") if brand else ""
            return values.get(key, "")

        resolved = _PLACEHOLDER_PATTERN.sub(replace, prompt)
        return re.sub(r"[ \t]+", " ", resolved).strip()

    @staticmethod
    def clamp(text: str, max_length: Optional[int], max_rows: Optional[int]):
        """Returns (clamped_text, truncated)."""
        truncated = False
        if max_rows:
            lines = text.split("\n")
            if len(lines) > max_rows:
                text = "\n".join(lines[:max_rows]).rstrip()
                truncated = True
        if max_length and len(text) > max_length:
            text = text[:max_length].rstrip()
            truncated = True
        return text, truncated


__all__ = ["ContentService"]
