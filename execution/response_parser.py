"""
Response Parser: Model Reply -> Field Values

Extracts a field-id -> text mapping from a model reply. Models usually
produce some structure even when they ignore the exact JSON contract, so
each fallback trades strictness for recoverability:

1. strip code fences (bare-HTML mode returns the text as-is)
2. strict JSON between the first '{' and the last '}'
3. (orchestrator) one stricter whole-template retry
4. ##FIELD_ID:<id>## ... ##END_FIELD_ID## markers
5. field names used as section headings

The heading stage is a heuristic. A field name that happens to start a line
mid-prose will be taken as a heading; results from it are best-effort.
"""

import json
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from loguru import logger

from config.constants import FIELD_MARKER_CLOSE, FIELD_MARKER_OPEN
from core.enums import GenerationMode
from core.models import OutputField
from execution.content_normalizer import strip_code_fences


def _coerce_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        return "\n".join(str(item) for item in value if item is not None)
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def extract_json_object(text: str) -> Optional[Dict[str, str]]:
    """
    Parse the substring between the first '{' and the last '}'.

    Returns:
        Mapping of key -> string value, or None if the slice is not a JSON object
    """
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        parsed = json.loads(text[start : end + 1])
    except ValueError:
        return None
    if not isinstance(parsed, dict):
        return None

    values: Dict[str, str] = {}
    for key, value in parsed.items():
        coerced = _coerce_value(value)
        if coerced is not None:
            values[str(key)] = coerced
    return values


def missing_keys(values: Optional[Dict[str, str]], required_field_ids: Iterable[str]) -> List[str]:
    present = values or {}
    return [field_id for field_id in required_field_ids if field_id not in present]


def extract_marked_sections(text: str, field_ids: Iterable[str]) -> Dict[str, str]:
    """Inner text of paired sentinel markers, per field id found."""
    found: Dict[str, str] = {}
    for field_id in field_ids:
        pattern = re.compile(
            re.escape(FIELD_MARKER_OPEN.format(field_id=field_id))
            + r"(.*?)"
            + re.escape(FIELD_MARKER_CLOSE),
            re.DOTALL,
        )
        match = pattern.search(text)
        if match and match.group(1).strip():
            found[field_id] = match.group(1).strip()
    return found


def _heading_pattern(field: OutputField) -> "re.Pattern[str]":
    names = {re.escape(field.label.strip()), re.escape(field.id)}
    alternatives = "|".join(sorted(names, key=len, reverse=True))
    return re.compile(
        r"^[ \t]*(?:#{1,6}[ \t]*)?(?:\*\*)?(?:" + alternatives + r")(?:\*\*)?"
        r"(?:[ \t]*\([^)\n]*\))?(?:\*\*)?[ \t]*(?::(?:\*\*)?[ \t]*|\r?\n|$)",
        re.IGNORECASE | re.MULTILINE,
    )


def extract_heading_sections(text: str, fields: Iterable[OutputField]) -> Dict[str, str]:
    """
    Split prose on field-name headings.

    Each field takes the text between its heading and the next found heading,
    in document order. Empty when no heading matches.
    """
    positions: List[Tuple[int, int, str]] = []
    for field in fields:
        match = _heading_pattern(field).search(text)
        if match:
            positions.append((match.start(), match.end(), field.id))

    if not positions:
        return {}

    positions.sort()
    sections: Dict[str, str] = {}
    for index, (_, content_start, field_id) in enumerate(positions):
        content_end = positions[index + 1][0] if index + 1 < len(positions) else len(text)
        content = text[content_start:content_end].strip()
        if content:
            sections[field_id] = content
    return sections


class ResponseParser:
    """Mode-aware extraction of field values from raw model text."""

    def parse(
        self,
        raw_text: str,
        required_field_ids: List[str],
        mode: GenerationMode,
    ) -> Union[Dict[str, str], str, None]:
        """
        Strict parse: fences, then JSON.

        Returns:
            The cleaned text in bare-HTML mode, otherwise the parsed mapping
            or None when no JSON object could be read
        """
        cleaned = strip_code_fences(raw_text or "")
        if mode.is_html:
            return cleaned

        values = extract_json_object(cleaned)
        if values is None:
            logger.warning(
                f"Reply is not a JSON object | required={required_field_ids} | "
                f"preview={cleaned[:120]!r}"
            )
        return values

    def recover_markers(
        self, raw_text: str, values: Optional[Dict[str, str]], required_field_ids: List[str]
    ) -> Dict[str, str]:
        """Fill missing ids from sentinel markers; existing values are kept."""
        merged = dict(values or {})
        missing = missing_keys(merged, required_field_ids)
        if not missing:
            return merged

        recovered = extract_marked_sections(raw_text or "", missing)
        if recovered:
            logger.warning(f"Recovered fields from markers | fields={list(recovered)}")
            merged.update(recovered)
        return merged

    def recover_headings(
        self, raw_text: str, values: Optional[Dict[str, str]], fields: List[OutputField]
    ) -> Dict[str, str]:
        """Fill missing ids from heading-delimited sections; existing values are kept."""
        merged = dict(values or {})
        missing = set(missing_keys(merged, [field.id for field in fields]))
        if not missing:
            return merged

        sections = extract_heading_sections(strip_code_fences(raw_text or ""), fields)
        recovered = {field_id: text for field_id, text in sections.items() if field_id in missing}
        if recovered:
            logger.warning(
                f"Recovered fields from section headings (heuristic) | fields={list(recovered)}"
            )
            merged.update(recovered)
        return merged

    def parse_single_value(self, raw_text: str, field_id: str) -> str:
        """
        Reply of a single-field call.

        Unwraps a JSON object when the model answered in JSON anyway.
        """
        cleaned = strip_code_fences(raw_text or "")
        if cleaned.startswith("{"):
            values = extract_json_object(cleaned)
            if values:
                if field_id in values:
                    return values[field_id]
                if len(values) == 1:
                    return next(iter(values.values()))
        return cleaned


__all__ = [
    "ResponseParser",
    "extract_json_object",
    "extract_marked_sections",
    "extract_heading_sections",
    "missing_keys",
]
