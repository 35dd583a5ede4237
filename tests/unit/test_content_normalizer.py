"""
Unit Tests for ContentNormalizer
================================

Rich vs. plain normalization, markdown conversion, sanitization and degenerate inputs.
"""

import pytest

from core.models import NormalizedContent, OutputField
from execution.content_normalizer import (
    ContentNormalizer,
    extract_first_html_value,
    html_to_plain,
    markdown_to_html,
    sanitize_html,
    strip_code_fences,
)


@pytest.fixture
def normalizer():
    return ContentNormalizer()


class TestHelpers:
    def test_strip_wrapping_fence(self):
        assert strip_code_fences('```json\n{"a": "b"}\n```') == '{"a": "b"}'

    def test_strip_stray_fence_lines(self):
        assert strip_code_fences("```html\n<p>Hi</p>") == "<p>Hi</p>"

    def test_html_to_plain_drops_scripts_and_nbsp(self):
        markup = "<html><body><p>Fresh&nbsp;coffee</p><script>alert(1)</script></body></html>"
        assert html_to_plain(markup) == "Fresh coffee"

    def test_markdown_to_html(self):
        markdown = "## Why it works\n\n- **Bold** start\n- *Soft* finish\n\nRead [more](https://x.io)"
        assert markdown_to_html(markdown) == (
            "<h2>Why it works</h2>"
            "<ul><li><strong>Bold</strong> start</li><li><em>Soft</em> finish</li></ul>"
            '<p>Read <a href="https://x.io">more</a></p>'
        )

    def test_markdown_ordered_list(self):
        assert markdown_to_html("1. Grind\n2. Brew") == "<ol><li>Grind</li><li>Brew</li></ol>"

    def test_first_value_of_json_object(self):
        assert extract_first_html_value('{"a": "<p>One</p>", "b": "<p>Two</p>"}') == "<p>One</p>"

    def test_first_value_of_joined_json_strings(self):
        assert extract_first_html_value('"<p>One</p>", "<p>Two</p>"') == "<p>One</p>"

    def test_plain_html_passes_through(self):
        assert extract_first_html_value("<p>One</p>") == "<p>One</p>"


class TestRichFields:
    def test_html_kept_and_plain_derived(self, normalizer):
        content = normalizer.normalize("<p>Bold <strong>roast</strong> today</p>", "richText")
        assert content.html == "<p>Bold <strong>roast</strong> today</p>"
        assert content.plain == "Bold roast today"
        assert content.word_count == 3
        assert content.char_count == len("Bold roast today")

    def test_document_wrappers_stripped(self, normalizer):
        content = normalizer.normalize("<html><body><p>Hello</p></body></html>", "html")
        assert content.html == "<p>Hello</p>"

    def test_markdown_converted(self, normalizer):
        content = normalizer.normalize("# Title\n\nSome text", "richText")
        assert content.html == "<h1>Title</h1><p>Some text</p>"
        assert content.plain == "Title Some text"

    def test_bare_prose_wrapped_in_paragraphs(self, normalizer):
        content = normalizer.normalize("First paragraph.\n\nSecond paragraph.", "richText")
        assert content.html == "<p>First paragraph.</p><p>Second paragraph.</p>"
        assert content.word_count == 4

    def test_fenced_html(self, normalizer):
        content = normalizer.normalize("```html\n<p>Fenced</p>\n```", "richText")
        assert content.html == "<p>Fenced</p>"

    def test_link_with_parentheses_keeps_full_url(self, normalizer):
        content = normalizer.normalize(
            "See [the notes](https://example.com/wiki/Roast_(coffee)) first", "richText"
        )
        assert 'href="https://example.com/wiki/Roast_(coffee)"' in content.html
        assert content.plain == "See the notes first"


class TestSanitization:
    def test_script_and_event_handlers_removed(self, normalizer):
        markup = '<p>Hi</p><script>alert(1)</script><img src="x" onerror="alert(2)">'
        content = normalizer.normalize(markup, "richText")
        assert content.html == "<p>Hi</p>"
        assert content.plain == "Hi"

    def test_javascript_link_loses_href(self, normalizer):
        content = normalizer.normalize("Click [here](javascript:alert(1)) now", "richText")
        assert "javascript" not in content.html
        assert "<a>here</a>" in content.html
        assert content.plain == "Click here now"

    def test_safe_link_kept_without_handlers(self, normalizer):
        markup = '<p><a href="https://x.io" onclick="steal()">x</a></p>'
        assert sanitize_html(markup) == '<p><a href="https://x.io">x</a></p>'

    def test_unknown_tags_unwrapped(self):
        assert sanitize_html("<p><font>Keep</font> this</p>") == "<p>Keep this</p>"


class TestPlainFields:
    def test_html_equals_plain(self, normalizer):
        content = normalizer.normalize("  Order today  ", "plainText")
        assert content == NormalizedContent(
            html="Order today", plain="Order today", word_count=2, char_count=11
        )

    def test_tags_removed(self, normalizer):
        content = normalizer.normalize("<b>Order</b> today", "plainText")
        assert content.plain == "Order today"
        assert content.html == content.plain


class TestDegenerateInput:
    @pytest.mark.parametrize("raw", [None, "", "   ", 42, ["a", "b"]])
    def test_non_text_becomes_empty(self, normalizer, raw):
        content = normalizer.normalize(raw, "richText")
        assert content.is_empty
        assert content.word_count == 0

    def test_normalized_content_passes_through(self, normalizer):
        existing = NormalizedContent(html="<p>x</p>", plain="x", word_count=1, char_count=1)
        assert normalizer.normalize(existing, "richText") is existing

    def test_already_normalized_mapping(self, normalizer):
        content = normalizer.normalize(
            {"html": "<p>x y</p>", "plain": "x y", "wordCount": 2, "charCount": 3}, "richText"
        )
        assert content.word_count == 2


class TestNormalizeOutputs:
    def test_uses_field_types_and_defaults_to_plain(self, normalizer):
        fields = [OutputField(id="body", type="richText")]
        outputs = normalizer.normalize_outputs({"body": "Hello", "extra": "<i>x</i> y"}, fields)

        assert outputs["body"].html == "<p>Hello</p>"
        assert outputs["extra"].html == "x y"

    def test_empty_map(self, normalizer):
        assert normalizer.normalize_outputs(None, []) == {}
