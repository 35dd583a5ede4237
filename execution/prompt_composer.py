"""
Prompt Composer: Template + Brand Voice -> Model Prompts

Builds system and user prompts for template generation and for the narrower
repair prompts the orchestrator issues. The output format (bare HTML fragment
vs. flat JSON object) is decided here once and carried on the ComposedPrompt.

Architectural Pattern: Builder over immutable request data
"""

import json
import re
from typing import Any, List, Optional

from loguru import logger

from config.constants import (
    FIELD_MARKER_CLOSE,
    FIELD_MARKER_OPEN,
    LANGUAGE_NAMES,
    PROMPT_FRAGMENTS,
)
from core.enums import FieldKind, GenerationMode
from core.exceptions import GenerationError
from core.models import (
    BrandVoice,
    ComposedPrompt,
    ConstraintViolation,
    ContentTemplate,
    GenerationRequest,
    OutputField,
)
from execution.constraint_evaluator import check_char_range, check_word_range

_PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")
_EMPTY_PARENS_PATTERN = re.compile(r"\(\s*\)")
_WHITESPACE_PATTERN = re.compile(r"\s+")

_VOICE_ATTRIBUTES = (
    # (flag on OutputField, attribute on BrandVoice, label)
    ("use_brand_identity", "brand_identity", "Brand identity"),
    ("use_tone_of_voice", "tone_of_voice", "Tone of voice"),
    ("use_guardrails", "guardrails", "Guardrails"),
)


def resolve_mode(template: ContentTemplate) -> GenerationMode:
    """Exactly one rich output field selects bare-HTML mode; anything else is JSON."""
    fields = template.output_fields
    if len(fields) == 1 and fields[0].kind is FieldKind.RICH:
        return GenerationMode.SINGLE_FIELD_HTML
    return GenerationMode.MULTI_FIELD_JSON


def validate_template(template: ContentTemplate) -> None:
    """
    Reject templates the pipeline cannot fill.

    Raises:
        GenerationError: no output fields, or a field id used twice
    """
    if not template.output_fields:
        raise GenerationError("Template has no output fields", template_id=template.id)

    seen = set()
    for field in [*template.input_fields, *template.output_fields]:
        if field.id in seen:
            raise GenerationError(
                f"Duplicate field id in template: {field.id}", template_id=template.id
            )
        seen.add(field.id)


class PromptComposer:
    """Composes prompts for generation, strict retry, per-field repair and HTML fallback."""

    # ------------------------------------------------------------------
    # Primary prompt
    # ------------------------------------------------------------------

    def compose(self, request: GenerationRequest) -> ComposedPrompt:
        validate_template(request.template)
        mode = resolve_mode(request.template)
        output_fields = request.template.output_fields

        system_parts = [self._role_line(request.brand), self._format_directive(mode, output_fields)]
        system_parts.extend(self._shared_directives(request, output_fields))
        system_prompt = "\n\n".join(part for part in system_parts if part)

        user_parts = [
            f"Template: {request.template.name or request.template.id}",
            self._inputs_block(request),
            self._claims_block(request),
            self._outputs_block(request, output_fields),
            self._additional_block(request),
        ]
        user_prompt = "\n\n".join(part for part in user_parts if part)

        logger.debug(
            f"Prompt composed | template_id={request.template.id} | mode={mode.value} | "
            f"fields={len(output_fields)} | system_chars={len(system_prompt)} | "
            f"user_chars={len(user_prompt)}"
        )

        return ComposedPrompt(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            required_field_ids=[field.id for field in output_fields],
            mode=mode,
        )

    def compose_retry_strict(
        self, request: GenerationRequest, previous: ComposedPrompt
    ) -> ComposedPrompt:
        """Same prompt with a harder key-set directive appended."""
        keys = ", ".join(f'"{field_id}"' for field_id in previous.required_field_ids)
        strict = (
            "IMPORTANT: Your previous reply did not contain every required key. "
            f"Output ONLY a single JSON object with exactly these keys: {keys}. "
            "Every value must be a non-empty string. No other keys, no code fences, no commentary."
        )
        return previous.model_copy(
            update={"system_prompt": f"{previous.system_prompt}\n\n{strict}"}
        )

    # ------------------------------------------------------------------
    # Single-field prompts
    # ------------------------------------------------------------------

    def compose_field_repair(
        self,
        request: GenerationRequest,
        field: OutputField,
        violation: ConstraintViolation,
    ) -> ComposedPrompt:
        """Isolated regeneration prompt for one field, carrying the observed shortfall."""
        output_fields = request.template.output_fields
        if field.kind is FieldKind.RICH:
            format_line = (
                f'Rewrite only the field "{field.label}". Output a bare HTML fragment for it, '
                "with no JSON wrapper, no code fences and no commentary."
            )
        else:
            format_line = (
                f'Rewrite only the field "{field.label}". Output only its plain text, '
                "with no JSON, no markdown, no surrounding quotes and no commentary."
            )

        system_parts = [self._role_line(request.brand), format_line]
        system_parts.extend(self._shared_directives(request, output_fields))

        user_parts = [
            self._inputs_block(request),
            self._claims_block(request),
            self._field_block(request, field),
            f"Previous attempt problem: {violation.describe()}.",
            self._additional_block(request),
        ]
        return ComposedPrompt(
            system_prompt="\n\n".join(part for part in system_parts if part),
            user_prompt="\n\n".join(part for part in user_parts if part),
            required_field_ids=[field.id],
            mode=resolve_mode(request.template),
        )

    def compose_html_fallback(self, request: GenerationRequest, field: OutputField) -> ComposedPrompt:
        """Terminal HTML-only prompt built straight from the field's instruction."""
        system_parts = [
            self._role_line(request.brand),
            "Respond with an HTML fragment only, using simple tags such as <p>, <h2>, <h3>, "
            "<ul>, <ol>, <li> and <strong>. Do not return JSON, do not use code fences "
            "and do not add commentary.",
            self.language_directive(request.brand),
            self._brand_voice_block(request.brand),
            self._claims_directive(request),
            self._safety_block(),
        ]

        guidance = [f"Write the {field.label}.", self.resolve_field_instruction(field, request)]
        word_range = check_word_range(field)
        if word_range is not None:
            guidance.append(f"Aim for {word_range.describe('words')}.")
        char_range = check_char_range(field)
        if char_range is not None:
            guidance.append(f"Keep it to {char_range.describe('characters')}.")

        user_parts = [
            " ".join(guidance),
            self._inputs_block(request),
            self._claims_block(request),
            self._additional_block(request),
        ]
        return ComposedPrompt(
            system_prompt="\n\n".join(part for part in system_parts if part),
            user_prompt="\n\n".join(part for part in user_parts if part),
            required_field_ids=[field.id],
            mode=GenerationMode.SINGLE_FIELD_HTML,
        )

    # ------------------------------------------------------------------
    # Placeholder substitution
    # ------------------------------------------------------------------

    def resolve_field_instruction(self, field: OutputField, request: GenerationRequest) -> str:
        """
        Substitute {{...}} placeholders in a field's instruction.

        Resolution order: Rules, Product Name, then input fields by id or name.
        Unknown placeholders stay verbatim. A vacuous result gets a generic
        instruction appended.
        """
        text = field.ai_prompt or ""

        def replace(match: "re.Match[str]") -> str:
            resolved = self._resolve_placeholder(match.group(1), request)
            return match.group(0) if resolved is None else resolved

        text = _PLACEHOLDER_PATTERN.sub(replace, text)
        text = _EMPTY_PARENS_PATTERN.sub("", text)
        text = _WHITESPACE_PATTERN.sub(" ", text).strip()

        if len(text.split()) < PROMPT_FRAGMENTS.MIN_INSTRUCTION_WORDS:
            text = f"{text} {PROMPT_FRAGMENTS.FALLBACK_INSTRUCTION}".strip()
        return text

    @staticmethod
    def _resolve_placeholder(token: str, request: GenerationRequest) -> Optional[str]:
        key = token.strip().lower()

        if key == "rules":
            return (
                PROMPT_FRAGMENTS.CLAIMS_RULES
                if request.product_context is not None
                else PROMPT_FRAGMENTS.BRAND_RULES
            )
        if key == "product name" and request.product_context is not None:
            return request.product_context.product_name

        for input_field in request.template.input_fields:
            if key in (input_field.id.lower(), input_field.name.strip().lower()):
                value = input_field.value.strip()
                return value if value else f"[{input_field.label}]"
        return None

    # ------------------------------------------------------------------
    # Shared fragments
    # ------------------------------------------------------------------

    def language_directive(self, brand: BrandVoice) -> str:
        """Hard language lock; empty when the brand has no locale."""
        if not brand.has_locale:
            return ""
        code = re.split(r"[-_]", brand.language.strip())[0].lower()
        language = LANGUAGE_NAMES.get(code, brand.language)
        directive = (
            f"LANGUAGE REQUIREMENT: Write ALL content in {language} for an audience in "
            f"{brand.country}. This is mandatory."
        )
        if code != "en":
            directive += " Do NOT write in English."
        return directive

    @staticmethod
    def _role_line(brand: BrandVoice) -> str:
        return f'You are an expert marketing copywriter writing for the brand "{brand.name}".'

    @staticmethod
    def _format_directive(mode: GenerationMode, output_fields: List[OutputField]) -> str:
        if mode.is_html:
            return (
                f'Output ONLY a bare HTML fragment for the field "{output_fields[0].label}". '
                "Do not wrap it in JSON or any other object and do not use markdown code fences."
            )
        keys = ", ".join(f'"{field.id}"' for field in output_fields)
        return (
            f"Output ONLY a single flat JSON object whose keys are exactly: {keys}. "
            "Every value must be a string. Do not use markdown code fences and do not add "
            "any commentary before or after the JSON. If a value cannot be written as a JSON "
            f"string, emit it instead as {FIELD_MARKER_OPEN.format(field_id='<id>')}"
            f"<value>{FIELD_MARKER_CLOSE} using the field id."
        )

    def _shared_directives(
        self, request: GenerationRequest, output_fields: List[OutputField]
    ) -> List[str]:
        return [
            self.language_directive(request.brand),
            self._brand_voice_block(request.brand, output_fields),
            self._claims_directive(request),
            self._safety_block(),
        ]

    @staticmethod
    def _brand_voice_block(
        brand: BrandVoice, output_fields: Optional[List[OutputField]] = None
    ) -> str:
        """Global voice text, skipping any attribute a field scopes to itself."""
        lines = []
        for flag, attribute, label in _VOICE_ATTRIBUTES:
            value = getattr(brand, attribute)
            if not value:
                continue
            if output_fields and any(getattr(field, flag) for field in output_fields):
                continue
            lines.append(f"{label}: {value.strip()}")
        return "Brand voice:\n" + "\n".join(lines) if lines else ""

    @staticmethod
    def _claims_directive(request: GenerationRequest) -> str:
        if request.product_context is None:
            return ""
        return (
            "PRODUCT CLAIMS: The product claims provided are the absolute source of truth. "
            "Never invent claims. Never use disallowed claims. Always include mandatory claims. "
            "Use allowed claims to enrich the copy where they fit."
        )

    @staticmethod
    def _safety_block() -> str:
        return "Content rules:\n" + "\n".join(f"- {rule}" for rule in PROMPT_FRAGMENTS.SAFETY_RULES)

    @staticmethod
    def _inputs_block(request: GenerationRequest) -> str:
        if not request.template.input_fields:
            return ""
        lines = [
            f"- {field.label}: {field.value.strip() or '(empty)'}"
            for field in request.template.input_fields
        ]
        return "Input fields:\n" + "\n".join(lines)

    @staticmethod
    def _claims_block(request: GenerationRequest) -> str:
        context = request.product_context
        if context is None:
            return ""
        claims: Any = context.styled_claims
        if claims is None:
            serialized = "(none provided)"
        elif isinstance(claims, str):
            serialized = claims
        else:
            serialized = json.dumps(claims, indent=2, ensure_ascii=False, default=str)
        return f"Product: {context.product_name}\nProduct claims (use verbatim):\n{serialized}"

    def _outputs_block(self, request: GenerationRequest, output_fields: List[OutputField]) -> str:
        blocks = [
            self._field_block(request, field, index=position)
            for position, field in enumerate(output_fields, start=1)
        ]
        return "Output fields:\n" + "\n".join(blocks)

    def _field_block(
        self,
        request: GenerationRequest,
        field: OutputField,
        index: Optional[int] = None,
    ) -> str:
        prefix = f"{index}. " if index is not None else ""
        lines = [
            f"{prefix}{field.label} (id: {field.id})",
            f"   Instructions: {self.resolve_field_instruction(field, request)}",
        ]

        for flag, attribute, label in _VOICE_ATTRIBUTES:
            value = getattr(request.brand, attribute)
            if getattr(field, flag) and value:
                lines.append(f"   {label}: {value.strip()}")

        word_range = check_word_range(field)
        if word_range is not None:
            lines.append(f"   Length: {word_range.describe('words')}.")
        char_range = check_char_range(field)
        if char_range is not None:
            lines.append(f"   Characters: {char_range.describe('characters')}.")

        lines.append(f"   Output type: {field.kind.output_marker}")
        return "\n".join(lines)

    @staticmethod
    def _additional_block(request: GenerationRequest) -> str:
        extra = (request.additional_instructions or "").strip()
        return f"Additional instructions: {extra}" if extra else ""


__all__ = ["PromptComposer", "resolve_mode", "validate_template"]
