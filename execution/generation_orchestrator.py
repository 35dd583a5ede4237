"""
Generation Orchestrator: Generate -> Validate -> Repair

Drives one generation request through an explicit state machine:

    COMPOSE -> CALL_MODEL -> PARSE -> VALIDATE -> DONE
                              ^  |        |
                  RETRY_WHOLE-+--+        +-> PER_FIELD_REPAIR -> VALIDATE
                                          +-> SINGLE_FIELD_HTML_FALLBACK -> VALIDATE

Every repair stage runs at most once per request, so the number of model
calls is bounded by 2 + (number of output fields) + 1. Stages execute
sequentially; the only shared state is the ActivityTracker behind the
LLM client.

Architectural Pattern: State Machine + Bounded Repair Ladder
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from loguru import logger

from config.constants import TOKEN_BUDGETS
from config.settings import GenerationSettings, LLMSettings
from core.enums import FieldKind, GenerationMode, RepairStage
from core.exceptions import LLMException, LLMRateLimitError
from core.models import (
    ComposedPrompt,
    ConstraintViolation,
    GenerationOutcome,
    GenerationRequest,
    NormalizedContent,
    OutputField,
)
from execution.constraint_evaluator import ConstraintEvaluator, check_char_range, check_word_range
from execution.content_normalizer import ContentNormalizer
from execution.prompt_composer import PromptComposer
from execution.response_parser import ResponseParser, missing_keys
from infrastructure.llm_client import LLMClient, build_messages
from infrastructure.monitoring import MetricsCollector


class Stage(str, Enum):
    COMPOSE = "compose"
    CALL_MODEL = "call_model"
    PARSE = "parse"
    RETRY_WHOLE = "retry_whole"
    VALIDATE = "validate"
    PER_FIELD_REPAIR = "per_field_repair"
    SINGLE_FIELD_HTML_FALLBACK = "single_field_html_fallback"
    DONE = "done"


@dataclass
class GenerationState:
    """Mutable per-request state; never shared between requests."""

    request: GenerationRequest
    prompt: Optional[ComposedPrompt] = None
    pending_reply: Optional[str] = None
    replies: List[str] = field(default_factory=list)
    values: Dict[str, str] = field(default_factory=dict)
    outputs: Dict[str, NormalizedContent] = field(default_factory=dict)
    missing_after_parse: List[str] = field(default_factory=list)
    violations: List[ConstraintViolation] = field(default_factory=list)
    repairs: List[RepairStage] = field(default_factory=list)
    model_calls: int = 0
    json_object_seen: bool = False
    retried_whole: bool = False
    repaired_fields: bool = False
    html_fallback_done: bool = False

    @property
    def fields(self) -> List[OutputField]:
        return self.request.template.output_fields

    @property
    def mode(self) -> GenerationMode:
        return self.prompt.mode if self.prompt else GenerationMode.MULTI_FIELD_JSON


class GenerationOrchestrator:
    """
    Turns a GenerationRequest into a GenerationOutcome.

    Content-quality problems never raise: fields still empty or out of range
    after the repair ladder are reported in the outcome. Errors from the
    primary call propagate; errors from repair calls are logged and the
    repair step is skipped, except rate limiting, which always propagates.
    """

    def __init__(
        self,
        llm_client: LLMClient,
        llm_settings: LLMSettings,
        generation_settings: GenerationSettings,
        prompt_composer: Optional[PromptComposer] = None,
        response_parser: Optional[ResponseParser] = None,
        content_normalizer: Optional[ContentNormalizer] = None,
        constraint_evaluator: Optional[ConstraintEvaluator] = None,
        metrics_collector: Optional[MetricsCollector] = None,
    ):
        self.llm = llm_client
        self.llm_settings = llm_settings
        self.budgets = generation_settings
        self.composer = prompt_composer or PromptComposer()
        self.parser = response_parser or ResponseParser()
        self.normalizer = content_normalizer or ContentNormalizer()
        self.evaluator = constraint_evaluator or ConstraintEvaluator()
        self.metrics = metrics_collector

        self._handlers: Dict[Stage, Callable[[GenerationState], Awaitable[Stage]]] = {
            Stage.COMPOSE: self._compose,
            Stage.CALL_MODEL: self._call_model,
            Stage.PARSE: self._parse,
            Stage.RETRY_WHOLE: self._retry_whole,
            Stage.VALIDATE: self._validate,
            Stage.PER_FIELD_REPAIR: self._per_field_repair,
            Stage.SINGLE_FIELD_HTML_FALLBACK: self._single_field_html_fallback,
        }

    async def generate(self, request: GenerationRequest) -> GenerationOutcome:
        """
        Run the full generate/validate/repair loop for one request.

        Raises:
            GenerationError: Template cannot be processed
            MissingConfigurationError: Model endpoint not configured
            LLMException: Primary call failed, or any call was rate limited
        """
        logger.info(
            f"Generation started | template_id={request.template.id} | "
            f"brand={request.brand.name} | fields={len(request.template.output_fields)}"
        )

        state = GenerationState(request=request)
        stage = Stage.COMPOSE
        while stage is not Stage.DONE:
            logger.debug(f"Generation stage | template_id={request.template.id} | stage={stage.value}")
            stage = await self._handlers[stage](state)

        return self._finish(state)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _compose(self, state: GenerationState) -> Stage:
        state.prompt = self.composer.compose(state.request)
        return Stage.CALL_MODEL

    async def _call_model(self, state: GenerationState) -> Stage:
        state.pending_reply = await self._call(
            state,
            state.prompt,
            operation="generate_template",
            max_tokens=self.primary_token_budget(state.mode, len(state.fields)),
            temperature=self.llm_settings.default_temperature,
        )
        return Stage.PARSE

    async def _parse(self, state: GenerationState) -> Stage:
        required = state.prompt.required_field_ids
        reply = state.pending_reply
        state.pending_reply = None

        if reply is not None:
            state.replies.append(reply)
            parsed = self.parser.parse(reply, required, state.mode)
            if isinstance(parsed, str):
                candidate = {required[0]: parsed} if parsed.strip() else {}
            else:
                state.json_object_seen = state.json_object_seen or parsed is not None
                candidate = parsed or {}

            # Earlier values win; a retry only fills gaps
            for field_id in required:
                if field_id not in state.values and field_id in candidate:
                    state.values[field_id] = candidate[field_id]

            before_markers = len(missing_keys(state.values, required))
            state.values = self.parser.recover_markers(reply, state.values, required)
            if len(missing_keys(state.values, required)) < before_markers:
                state.repairs.append(RepairStage.MARKER_FALLBACK)
                self._record_repair(RepairStage.MARKER_FALLBACK)

        missing = missing_keys(state.values, required)
        if missing and state.json_object_seen and not state.retried_whole:
            logger.warning(
                f"Reply missing required keys, retrying whole template | "
                f"template_id={state.request.template.id} | missing={missing}"
            )
            return Stage.RETRY_WHOLE

        if missing and not state.mode.is_html:
            for text in state.replies:
                state.values = self.parser.recover_headings(text, state.values, state.fields)
                if not missing_keys(state.values, required):
                    break
            if len(missing_keys(state.values, required)) < len(missing):
                state.repairs.append(RepairStage.HEADING_FALLBACK)
                self._record_repair(RepairStage.HEADING_FALLBACK)

        state.missing_after_parse = missing_keys(state.values, required)
        state.outputs = self.normalizer.normalize_outputs(state.values, state.fields)
        for field_id in required:
            state.outputs.setdefault(field_id, NormalizedContent.empty())
        return Stage.VALIDATE

    async def _retry_whole(self, state: GenerationState) -> Stage:
        state.retried_whole = True
        state.repairs.append(RepairStage.RETRY_WHOLE)
        self._record_repair(RepairStage.RETRY_WHOLE)

        strict = self.composer.compose_retry_strict(state.request, state.prompt)
        state.pending_reply = await self._call_repair(
            state,
            strict,
            operation="generate_template_retry",
            max_tokens=self.primary_token_budget(state.mode, len(state.fields)),
            temperature=self.llm_settings.default_temperature,
        )
        return Stage.PARSE

    async def _validate(self, state: GenerationState) -> Stage:
        state.violations = self.evaluator.evaluate(state.outputs, state.fields)

        if state.violations and not state.repaired_fields:
            return Stage.PER_FIELD_REPAIR

        if (
            state.mode.is_html
            and not state.html_fallback_done
            and state.outputs[state.fields[0].id].is_empty
        ):
            return Stage.SINGLE_FIELD_HTML_FALLBACK

        return Stage.DONE

    async def _per_field_repair(self, state: GenerationState) -> Stage:
        state.repaired_fields = True
        by_field = self.evaluator.first_violation_per_field(state.violations)

        for output_field in state.fields:
            violation = by_field.get(output_field.id)
            if violation is None:
                continue

            state.repairs.append(RepairStage.PER_FIELD_REPAIR)
            self._record_repair(RepairStage.PER_FIELD_REPAIR)
            logger.info(
                f"Repairing field | field_id={output_field.id} | "
                f"reason={violation.reason.value} | {violation.describe()}"
            )

            prompt = self.composer.compose_field_repair(state.request, output_field, violation)
            reply = await self._call_repair(
                state,
                prompt,
                operation="repair_field",
                max_tokens=self.field_repair_token_budget(output_field),
                temperature=self.llm_settings.repair_temperature,
            )
            if reply is None:
                continue

            content = self.normalizer.normalize(
                self.parser.parse_single_value(reply, output_field.id), output_field.type
            )
            if content.is_empty:
                logger.warning(f"Field repair returned empty content | field_id={output_field.id}")
                continue

            state.outputs[output_field.id] = content
            remaining = self.evaluator.evaluate_field(output_field, content)
            if remaining:
                # Accepted as-is; each field gets a single repair attempt
                logger.warning(
                    f"Field still out of range after repair | field_id={output_field.id} | "
                    f"{remaining[0].describe()}"
                )

        return Stage.VALIDATE

    async def _single_field_html_fallback(self, state: GenerationState) -> Stage:
        state.html_fallback_done = True
        state.repairs.append(RepairStage.SINGLE_FIELD_HTML_FALLBACK)
        self._record_repair(RepairStage.SINGLE_FIELD_HTML_FALLBACK)

        output_field = state.fields[0]
        prompt = self.composer.compose_html_fallback(state.request, output_field)
        reply = await self._call_repair(
            state,
            prompt,
            operation="html_fallback",
            max_tokens=self.budgets.single_field_html_max_tokens,
            temperature=self.llm_settings.default_temperature,
        )
        if reply is not None:
            content = self.normalizer.normalize(
                self.parser.parse_single_value(reply, output_field.id), output_field.type
            )
            if not content.is_empty:
                state.outputs[output_field.id] = content
        return Stage.VALIDATE

    # ------------------------------------------------------------------
    # Model calls
    # ------------------------------------------------------------------

    async def _call(
        self,
        state: GenerationState,
        prompt: ComposedPrompt,
        *,
        operation: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        state.model_calls += 1
        response = await self.llm.complete(
            build_messages(prompt.system_prompt, prompt.user_prompt),
            operation=operation,
            max_tokens=max_tokens,
            temperature=temperature,
            top_p=self.llm_settings.top_p,
        )
        return response.content

    async def _call_repair(self, state: GenerationState, prompt: ComposedPrompt, **kwargs) -> Optional[str]:
        """Repair-stage call; model failures skip the step instead of aborting."""
        try:
            return await self._call(state, prompt, **kwargs)
        except LLMRateLimitError:
            raise
        except LLMException as e:
            logger.warning(
                f"Repair call failed, skipping step | operation={kwargs.get('operation')} | "
                f"error_type={type(e).__name__} | error={e.message}"
            )
            return None

    # ------------------------------------------------------------------
    # Token budgets
    # ------------------------------------------------------------------

    def primary_token_budget(self, mode: GenerationMode, field_count: int) -> int:
        if mode.is_html:
            return self.budgets.single_field_html_max_tokens
        return min(
            self.budgets.json_base_max_tokens + self.budgets.json_tokens_per_field * field_count,
            self.budgets.json_max_tokens_ceiling,
        )

    def field_repair_token_budget(self, output_field: OutputField) -> int:
        """Budget from the field's own ceiling, not the template-wide default."""
        char_range = check_char_range(output_field)
        word_range = check_word_range(output_field)

        if char_range is not None and char_range.maximum is not None:
            budget = math.ceil(char_range.maximum / TOKEN_BUDGETS.CHARS_PER_TOKEN)
            budget += TOKEN_BUDGETS.BUDGET_PADDING
        elif word_range is not None and word_range.maximum is not None:
            budget = math.ceil(word_range.maximum * TOKEN_BUDGETS.TOKENS_PER_WORD)
            budget += TOKEN_BUDGETS.BUDGET_PADDING
        elif output_field.kind is FieldKind.RICH:
            budget = self.budgets.field_repair_default_max_tokens
        else:
            budget = TOKEN_BUDGETS.FIELD_REPAIR_PLAIN_DEFAULT

        return max(TOKEN_BUDGETS.FIELD_REPAIR_FLOOR, min(budget, self.budgets.field_repair_max_tokens_ceiling))

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _record_repair(self, stage: RepairStage) -> None:
        if self.metrics:
            self.metrics.record_repair(stage.value)

    def _finish(self, state: GenerationState) -> GenerationOutcome:
        ordered = {
            output_field.id: state.outputs.get(output_field.id, NormalizedContent.empty())
            for output_field in state.fields
        }
        outcome = GenerationOutcome(
            outputs=ordered,
            mode=state.mode,
            missing_field_ids=state.missing_after_parse,
            violations=state.violations,
            repairs_attempted=state.repairs,
            model_calls=state.model_calls,
        )

        empty = outcome.empty_field_ids
        if self.metrics:
            self.metrics.record_empty_fields(len(empty))

        if empty:
            logger.warning(
                f"Generation finished with empty fields | template_id={state.request.template.id} | "
                f"empty={empty} | model_calls={state.model_calls}"
            )
        else:
            logger.success(
                f"Generation complete | template_id={state.request.template.id} | "
                f"mode={state.mode.value} | model_calls={state.model_calls} | "
                f"repairs={[stage.value for stage in state.repairs]} | "
                f"violations={len(state.violations)}"
            )
        return outcome


__all__ = ["GenerationOrchestrator", "GenerationState", "Stage"]
