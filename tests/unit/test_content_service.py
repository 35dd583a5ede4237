"""
Unit Tests for ContentService
=============================

Title and suggestion helpers plus delegation to the orchestrator.
"""

import json

import pytest

from core.exceptions import LLMInvalidResponseError, ValidationException
from core.models import BrandVoice
from services.content_service import ContentService


@pytest.fixture
def make_service(make_orchestrator, llm_settings):
    def _build(llm) -> ContentService:
        return ContentService(
            orchestrator=make_orchestrator(llm), llm_client=llm, llm_settings=llm_settings
        )

    return _build


class TestGenerateFromTemplate:
    @pytest.mark.asyncio
    async def test_delegates_to_orchestrator(self, scripted_llm, make_service, multi_field_request):
        body = " ".join(["smooth"] * 60)
        llm = scripted_llm(json.dumps({"headline": "Fresh roast", "body": body, "cta": "Order now"}))
        outcome = await make_service(llm).generate_from_template(multi_field_request)

        assert outcome.complete
        assert outcome.outputs["body"].html == f"<p>{body}</p>"
        assert llm.operations == ["generate_template"]


class TestGenerateTitle:
    @pytest.mark.asyncio
    async def test_title_is_cleaned(self, scripted_llm, make_service, brand):
        llm = scripted_llm('Title: "Frischer Kaffee für kalte Bergmorgen"')
        title = await make_service(llm).generate_title(
            "<p>Our new roast.</p>", brand, topic="Winter", keywords=["kaffee", "röstung"]
        )

        assert title == "Frischer Kaffee für kalte Bergmorgen"
        call = llm.calls[0]
        assert call["operation"] == "generate_title"
        assert call["max_tokens"] == 60
        assert "Write ALL content in German" in call["system"]
        assert "Content:\nOur new roast." in call["user"]
        assert "Keywords: kaffee, röstung" in call["user"]

    @pytest.mark.asyncio
    async def test_content_required(self, scripted_llm, make_service, brand):
        llm = scripted_llm()
        with pytest.raises(ValidationException) as exc_info:
            await make_service(llm).generate_title("   ", brand)
        assert exc_info.value.field == "content_body"
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_brand_locale_required(self, scripted_llm, make_service):
        llm = scripted_llm()
        with pytest.raises(ValidationException):
            await make_service(llm).generate_title("Body", BrandVoice(name="No Locale"))

    @pytest.mark.asyncio
    async def test_empty_title_reply(self, scripted_llm, make_service, brand):
        with pytest.raises(LLMInvalidResponseError):
            await make_service(scripted_llm('""')).generate_title("Body", brand)


class TestGenerateSuggestion:
    @pytest.mark.asyncio
    async def test_placeholders_resolved(self, scripted_llm, make_service, english_brand):
        llm = scripted_llm("Steep slowly, sip calmly.")
        result = await make_service(llm).generate_suggestion(
            "Suggest a slogan for {{ product }} by {{brand.name}} in a {{brand.tone}} voice {{missing}}",
            brand=english_brand,
            form_values={"Product": "Earl Grey", "tags": ["tea"]},
            field_type="text",
        )

        assert result.suggestion == "Steep slowly, sip calmly."
        assert not result.truncated
        call = llm.calls[0]
        assert call["user"] == "Suggest a slogan for Earl Grey by Harbor Tea in a Calm and clear. voice"
        assert call["operation"] == "suggest"
        assert call["max_tokens"] == 250
        assert "used in a text field" in call["system"]

    @pytest.mark.asyncio
    async def test_clamped_to_length(self, scripted_llm, make_service):
        llm = scripted_llm("A" * 80)
        result = await make_service(llm).generate_suggestion("Write a tagline", max_length=30)

        assert result.suggestion == "A" * 30
        assert result.truncated
        assert llm.calls[0]["max_tokens"] == 15
        assert "under 30 characters" in llm.calls[0]["system"]

    @pytest.mark.asyncio
    async def test_clamped_to_rows(self, scripted_llm, make_service):
        llm = scripted_llm("one\ntwo\nthree")
        result = await make_service(llm).generate_suggestion("List ideas", max_rows=2)

        assert result.suggestion == "one\ntwo"
        assert result.truncated

    @pytest.mark.asyncio
    async def test_prompt_empty_after_interpolation(self, scripted_llm, make_service):
        llm = scripted_llm()
        with pytest.raises(ValidationException):
            await make_service(llm).generate_suggestion("{{nothing}}")
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_empty_reply(self, scripted_llm, make_service):
        with pytest.raises(LLMInvalidResponseError):
            await make_service(scripted_llm("   ")).generate_suggestion("Write a tagline")


class TestHelpers:
    def test_brand_placeholder_without_brand(self):
        assert ContentService.interpolate("Hi {{brand.name}}!", None, None) == "Hi !"

    def test_clamp_untouched(self):
        assert ContentService.clamp("short", 10, 3) == ("short", False)
