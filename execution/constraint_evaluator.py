"""
Constraint Evaluator: Length Bounds for Generated Fields

Resolves each output field's word and character bounds and checks normalized
content against them. Counts always come from the normalized plain text, so
markup never inflates a field's length.

Word bounds resolve from explicit minWords/maxWords first, then from a
"N-M words" or "length: N-M" phrase in the field's instruction or name.
Character bounds are explicit only.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from loguru import logger

from core.enums import ViolationReason
from core.models import ConstraintViolation, NormalizedContent, OutputField

# Integers with optional thousands separators: "1,200", "1.200", "150"
_NUMBER = r"(\d{1,3}(?:[,.]\d{3})+(?!\d)|\d+)"
_RANGE_SEPARATOR = r"\s*(?:-|–|—|to)\s*"

_WORDS_PATTERN = re.compile(_NUMBER + _RANGE_SEPARATOR + _NUMBER + r"\s*words?\b", re.IGNORECASE)
_LENGTH_PATTERN = re.compile(
    r"\blength\s*:?\s*" + _NUMBER + _RANGE_SEPARATOR + _NUMBER, re.IGNORECASE
)


@dataclass(frozen=True)
class LengthRange:
    """Inclusive bounds; either side may be open."""

    minimum: Optional[int] = None
    maximum: Optional[int] = None

    def contains(self, value: int) -> bool:
        if self.minimum is not None and value < self.minimum:
            return False
        if self.maximum is not None and value > self.maximum:
            return False
        return True

    def violated_bound(self, value: int) -> Optional[int]:
        """Return the bound `value` falls outside of, or None when in range."""
        if self.minimum is not None and value < self.minimum:
            return self.minimum
        if self.maximum is not None and value > self.maximum:
            return self.maximum
        return None

    def describe(self, unit: str) -> str:
        """Natural-language directive, e.g. 'between 50 and 100 words'."""
        if self.minimum is not None and self.maximum is not None:
            return f"between {self.minimum} and {self.maximum} {unit}"
        if self.maximum is not None:
            return f"no more than {self.maximum} {unit}"
        return f"at least {self.minimum} {unit}"


def _parse_int(token: str) -> int:
    return int(re.sub(r"[,.]", "", token))


def _explicit_range(minimum: Optional[int], maximum: Optional[int]) -> Optional[LengthRange]:
    """Build a range from declared bounds; an inverted pair is ignored."""
    if minimum is None and maximum is None:
        return None
    if minimum is not None and maximum is not None and minimum >= maximum:
        return None
    return LengthRange(minimum=minimum, maximum=maximum)


def _range_from_text(text: Optional[str]) -> Optional[LengthRange]:
    if not text:
        return None
    for pattern in (_WORDS_PATTERN, _LENGTH_PATTERN):
        match = pattern.search(text)
        if not match:
            continue
        low, high = _parse_int(match.group(1)), _parse_int(match.group(2))
        if low < high:
            return LengthRange(minimum=low, maximum=high)
    return None


def count_words(text: str) -> int:
    return len(text.split()) if text else 0


def check_word_range(field: OutputField) -> Optional[LengthRange]:
    """
    Resolve a field's word bounds.

    Returns:
        LengthRange, or None when the field carries no word constraint
    """
    explicit = _explicit_range(field.min_words, field.max_words)
    if explicit is not None:
        return explicit
    return _range_from_text(field.ai_prompt) or _range_from_text(field.name)


def check_char_range(field: OutputField) -> Optional[LengthRange]:
    """Resolve a field's character bounds (explicit bounds only)."""
    return _explicit_range(field.min_chars, field.max_chars)


class ConstraintEvaluator:
    """Flags missing fields and length violations in a generation result."""

    def evaluate_field(
        self, field: OutputField, content: Optional[NormalizedContent]
    ) -> List[ConstraintViolation]:
        if content is None or content.is_empty:
            return [ConstraintViolation(field_id=field.id, reason=ViolationReason.EMPTY)]

        violations: List[ConstraintViolation] = []

        word_range = check_word_range(field)
        if word_range is not None:
            bound = word_range.violated_bound(content.word_count)
            if bound is not None:
                violations.append(
                    ConstraintViolation(
                        field_id=field.id,
                        reason=ViolationReason.WORD_RANGE,
                        observed_value=content.word_count,
                        bound=bound,
                        minimum=word_range.minimum,
                        maximum=word_range.maximum,
                    )
                )

        char_range = check_char_range(field)
        if char_range is not None:
            bound = char_range.violated_bound(content.char_count)
            if bound is not None:
                violations.append(
                    ConstraintViolation(
                        field_id=field.id,
                        reason=ViolationReason.CHAR_RANGE,
                        observed_value=content.char_count,
                        bound=bound,
                        minimum=char_range.minimum,
                        maximum=char_range.maximum,
                    )
                )

        return violations

    def evaluate(
        self,
        outputs: Mapping[str, NormalizedContent],
        fields: List[OutputField],
    ) -> List[ConstraintViolation]:
        """
        Check every output field, in template order.

        A field absent from `outputs` is reported as empty.
        """
        violations: List[ConstraintViolation] = []
        for field in fields:
            violations.extend(self.evaluate_field(field, outputs.get(field.id)))

        if violations:
            logger.debug(
                f"Constraint check | fields={len(fields)} | violations="
                f"{[(v.field_id, v.reason.value) for v in violations]}"
            )
        return violations

    @staticmethod
    def first_violation_per_field(
        violations: List[ConstraintViolation],
    ) -> Dict[str, ConstraintViolation]:
        """Keep one violation per field, preserving order."""
        by_field: Dict[str, ConstraintViolation] = {}
        for violation in violations:
            by_field.setdefault(violation.field_id, violation)
        return by_field


__all__ = [
    "LengthRange",
    "ConstraintEvaluator",
    "count_words",
    "check_word_range",
    "check_char_range",
]
