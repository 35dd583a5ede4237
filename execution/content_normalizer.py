"""
Content Normalizer: Raw Model Output -> Canonical Field Content

Turns whatever the model returned for a field (markup, markdown, prose,
fenced blocks, or an accidental JSON wrapper) into a NormalizedContent
record. Normalization never raises; malformed input degrades to empty or
best-effort content.

Rich markup is always passed through an allowlist sanitizer before plain
text is derived from it.
"""

import json
import re
from typing import Any, Dict, List, Mapping, Optional

import bleach
import markdown
from bs4 import BeautifulSoup
from loguru import logger

from config.constants import RICH_FIELD_TYPES
from core.models import NormalizedContent, OutputField
from execution.constraint_evaluator import count_words

_FENCE_PATTERN = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)
_STRAY_FENCE_PATTERN = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*$", re.MULTILINE)

_HTML_TAG_PATTERN = re.compile(r"<\s*([a-z][a-z0-9]*)\b[^>]*>", re.IGNORECASE)
_WRAPPER_PATTERN = re.compile(r"<!DOCTYPE[^>]*>|</?(?:html|head|body)\b[^>]*>", re.IGNORECASE)
_BETWEEN_TAGS_PATTERN = re.compile(r">\s*\n\s*<")

MARKDOWN_EXTENSIONS = ["extra", "nl2br", "sane_lists"]

# Elements whose content is dropped entirely, not just unwrapped
_DROPPED_ELEMENTS = ["script", "style", "iframe", "object", "embed", "noscript", "template"]

ALLOWED_TAGS = frozenset(
    {
        "p", "br", "span", "div",
        "strong", "b", "em", "i", "u", "s", "strike",
        "h1", "h2", "h3", "h4", "h5", "h6",
        "ul", "ol", "li", "blockquote", "pre", "code", "a",
        "table", "thead", "tbody", "tr", "td", "th",
    }
)
ALLOWED_ATTRIBUTES = {
    "*": ["class", "id"],
    "a": ["href", "target", "rel"],
}
ALLOWED_PROTOCOLS = frozenset({"http", "https", "mailto"})


def strip_code_fences(text: str) -> str:
    """Remove a wrapping ```lang ... ``` block, or any stray fence lines."""
    if not text:
        return ""
    match = _FENCE_PATTERN.match(text)
    if match:
        return match.group(1).strip()
    return _STRAY_FENCE_PATTERN.sub("", text).strip()


def is_rich_type(field_type: Optional[str]) -> bool:
    return (field_type or "").lower() in RICH_FIELD_TYPES


def looks_like_html(text: str) -> bool:
    return bool(_HTML_TAG_PATTERN.search(text))


def markdown_to_html(text: str) -> str:
    """Render markdown (or bare prose, which becomes <p> blocks) to compact HTML."""
    rendered = markdown.markdown(
        text.replace("\r\n", "\n"), extensions=MARKDOWN_EXTENSIONS, output_format="html"
    )
    return _BETWEEN_TAGS_PATTERN.sub("><", rendered).strip()


def sanitize_html(markup: str) -> str:
    """
    Reduce markup to the formatting allowlist.

    Script-like elements are removed with their content; any other tag
    outside the allowlist is unwrapped and its text kept. Event-handler
    attributes, images and non-http(s)/mailto links do not survive.
    """
    if not markup:
        return ""
    soup = BeautifulSoup(markup, "html.parser")
    for element in soup(_DROPPED_ELEMENTS):
        element.decompose()
    cleaned = bleach.clean(
        str(soup),
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRIBUTES,
        protocols=ALLOWED_PROTOCOLS,
        strip=True,
        strip_comments=True,
    )
    return _BETWEEN_TAGS_PATTERN.sub("><", cleaned).strip()


def strip_html_wrappers(markup: str) -> str:
    return _WRAPPER_PATTERN.sub("", markup).strip()


def html_to_plain(markup: str) -> str:
    """Tag-stripped, whitespace-collapsed text; script/style bodies are dropped."""
    if not markup:
        return ""
    soup = BeautifulSoup(strip_html_wrappers(markup), "html.parser")
    for element in soup(["script", "style"]):
        element.decompose()
    text = soup.get_text(" ").replace("\xa0", " ")
    return re.sub(r"\s+", " ", text).strip()


def extract_first_html_value(raw: str) -> str:
    """
    Recover the first value when a rich field arrives as several concatenated
    values, e.g. a JSON object or a comma-joined run of JSON strings.
    """
    trimmed = raw.strip()
    if not trimmed:
        return ""

    candidates = []
    if trimmed.startswith("{"):
        candidates.append(trimmed)
    elif trimmed.startswith('"'):
        candidates.extend([trimmed, f"[{trimmed}]"])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        values = parsed.values() if isinstance(parsed, dict) else parsed
        if isinstance(values, str):
            return values
        first = next((v for v in values if isinstance(v, str)), None)
        if first is not None:
            return first
    return trimmed


class ContentNormalizer:
    """
    Produces NormalizedContent per field.

    Rich fields keep sanitized markup in `html` and derive `plain` by stripping tags;
    plain fields carry identical `html` and `plain` text.
    """

    def normalize(self, raw_value: Any, field_type: Optional[str]) -> NormalizedContent:
        try:
            return self._normalize(raw_value, field_type)
        except Exception as e:
            logger.warning(f"Normalization degraded to empty content | type={field_type} | error={e}")
            return NormalizedContent.empty()

    def normalize_outputs(
        self,
        outputs: Optional[Mapping[str, Any]],
        fields: Optional[List[OutputField]] = None,
    ) -> Dict[str, NormalizedContent]:
        """Normalize an id->value map; ids without a known field are plain text."""
        if not outputs:
            return {}
        field_types = {field.id: field.type for field in fields or []}
        return {
            field_id: self.normalize(value, field_types.get(field_id, "plainText"))
            for field_id, value in outputs.items()
        }

    def _normalize(self, raw_value: Any, field_type: Optional[str]) -> NormalizedContent:
        if isinstance(raw_value, NormalizedContent):
            return raw_value

        if isinstance(raw_value, Mapping):
            already = self._from_mapping(raw_value)
            if already is not None:
                return already
            raw_value = raw_value.get("html") or raw_value.get("plain") or ""

        text = raw_value if isinstance(raw_value, str) else ""
        text = strip_code_fences(text)

        if is_rich_type(field_type):
            return self._normalize_rich(extract_first_html_value(text))
        return self._normalize_plain(text)

    @staticmethod
    def _from_mapping(value: Mapping[str, Any]) -> Optional[NormalizedContent]:
        html = value.get("html")
        plain = value.get("plain")
        word_count = value.get("wordCount", value.get("word_count"))
        char_count = value.get("charCount", value.get("char_count"))
        if (
            isinstance(html, str)
            and isinstance(plain, str)
            and isinstance(word_count, int)
            and isinstance(char_count, int)
        ):
            return NormalizedContent(
                html=html, plain=plain, word_count=word_count, char_count=char_count
            )
        return None

    @staticmethod
    def _normalize_rich(text: str) -> NormalizedContent:
        trimmed = text.strip()
        if not trimmed:
            return NormalizedContent.empty()

        if looks_like_html(trimmed):
            markup = strip_html_wrappers(trimmed)
        else:
            markup = markdown_to_html(trimmed)
        markup = sanitize_html(markup)

        plain = html_to_plain(markup)
        return NormalizedContent(
            html=markup, plain=plain, word_count=count_words(plain), char_count=len(plain)
        )

    @staticmethod
    def _normalize_plain(text: str) -> NormalizedContent:
        plain = text.replace("\r\n", "\n").strip()
        if looks_like_html(plain):
            plain = html_to_plain(plain)
        return NormalizedContent(
            html=plain, plain=plain, word_count=count_words(plain), char_count=len(plain)
        )


__all__ = [
    "ContentNormalizer",
    "strip_code_fences",
    "is_rich_type",
    "html_to_plain",
    "markdown_to_html",
    "sanitize_html",
    "extract_first_html_value",
]
