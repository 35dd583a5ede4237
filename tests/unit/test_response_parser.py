"""
Unit Tests for ResponseParser
=============================

Strict JSON extraction and the marker and heading recovery stages.
"""

import pytest

from core.enums import GenerationMode
from core.models import OutputField
from execution.response_parser import (
    ResponseParser,
    extract_heading_sections,
    extract_json_object,
    extract_marked_sections,
    missing_keys,
)

REQUIRED = ["headline", "body", "cta"]


@pytest.fixture
def parser():
    return ResponseParser()


@pytest.fixture
def fields():
    return [
        OutputField(id="headline", name="Headline"),
        OutputField(id="body", name="Body", type="richText"),
        OutputField(id="cta", name="Call to action"),
    ]


class TestExtractJsonObject:
    def test_surrounding_prose_is_ignored(self):
        text = 'Sure! Here you go:\n{"headline": "Hi", "body": "<p>x</p>"}\nEnjoy.'
        assert extract_json_object(text) == {"headline": "Hi", "body": "<p>x</p>"}

    def test_non_string_values_are_coerced(self):
        values = extract_json_object('{"a": 3, "b": ["x", "y"], "c": null}')
        assert values == {"a": "3", "b": "x\ny"}

    @pytest.mark.parametrize("text", ["", "no braces", "{not json}", "[1, 2]", "} reversed {"])
    def test_unparseable(self, text):
        assert extract_json_object(text) is None


class TestParse:
    def test_json_mode(self, parser):
        raw = '```json\n{"headline": "Hi", "body": "B", "cta": "Go"}\n```'
        assert parser.parse(raw, REQUIRED, GenerationMode.MULTI_FIELD_JSON) == {
            "headline": "Hi",
            "body": "B",
            "cta": "Go",
        }

    def test_json_mode_without_object(self, parser):
        assert parser.parse("Just prose.", REQUIRED, GenerationMode.MULTI_FIELD_JSON) is None

    def test_html_mode_returns_cleaned_text(self, parser):
        raw = "```html\n<p>Article</p>\n```"
        assert parser.parse(raw, ["article"], GenerationMode.SINGLE_FIELD_HTML) == "<p>Article</p>"

    def test_missing_keys(self):
        assert missing_keys({"headline": "Hi"}, REQUIRED) == ["body", "cta"]
        assert missing_keys(None, REQUIRED) == REQUIRED


class TestMarkers:
    def test_extract_marked_sections(self):
        text = "##FIELD_ID:cta##\nBuy now\n##END_FIELD_ID##\n##FIELD_ID:body##  ##END_FIELD_ID##"
        assert extract_marked_sections(text, ["cta", "body"]) == {"cta": "Buy now"}

    def test_recover_only_fills_missing(self, parser):
        raw = (
            '{"headline": "Hi", "body": "B"}\n'
            "##FIELD_ID:headline##Other##END_FIELD_ID##\n"
            "##FIELD_ID:cta##Order today##END_FIELD_ID##"
        )
        values = parser.recover_markers(raw, {"headline": "Hi", "body": "B"}, REQUIRED)
        assert values == {"headline": "Hi", "body": "B", "cta": "Order today"}

    def test_nothing_missing_is_a_no_op(self, parser):
        values = {"headline": "a", "body": "b", "cta": "c"}
        assert parser.recover_markers("anything", values, REQUIRED) == values


class TestHeadings:
    def test_markdown_headings(self, fields):
        text = "## Headline\nFresh roast\n\n## Body\nRich and smooth.\n\n## Call to action\nOrder now"
        assert extract_heading_sections(text, fields) == {
            "headline": "Fresh roast",
            "body": "Rich and smooth.",
            "cta": "Order now",
        }

    def test_bold_label_with_colon_and_parenthetical(self, fields):
        text = "**Headline:** Fresh roast\n**Call to action (plain text):** Order now"
        assert extract_heading_sections(text, fields) == {
            "headline": "Fresh roast",
            "cta": "Order now",
        }

    def test_field_id_as_heading(self, fields):
        text = "cta: Order now"
        assert extract_heading_sections(text, fields) == {"cta": "Order now"}

    def test_no_headings(self, fields):
        assert extract_heading_sections("Nothing structured here.", fields) == {}

    def test_recover_headings_keeps_existing(self, parser, fields):
        text = "Headline: Other\nBody: Smooth\nCall to action: Order"
        values = parser.recover_headings(text, {"headline": "Hi"}, fields)
        assert values == {"headline": "Hi", "body": "Smooth", "cta": "Order"}


class TestSingleValue:
    def test_plain_reply(self, parser):
        assert parser.parse_single_value("```\nOrder now\n```", "cta") == "Order now"

    def test_json_wrapped_reply_keyed_by_field(self, parser):
        assert parser.parse_single_value('{"cta": "Order now", "x": "y"}', "cta") == "Order now"

    def test_json_wrapped_reply_with_single_other_key(self, parser):
        assert parser.parse_single_value('{"text": "Order now"}', "cta") == "Order now"
