"""
Pytest Configuration and Fixture Library

Shared test infrastructure:
- Sample brands and templates
- A scripted stand-in for the model client that records every call
- A fresh ActivityTracker per test driven by a controllable clock

Design Pattern: Test Data Builder + Fixture Factory
"""

import os
from typing import Any, Dict, List, Optional, Union

import pytest

# Set test environment variables before importing any modules
os.environ.update(
    {
        "AZURE_OPENAI_ENDPOINT": "https://test-resource.openai.azure.com/",
        "AZURE_OPENAI_API_KEY": "test-key",
        "AZURE_OPENAI_DEPLOYMENT": "gpt-4o-test",
        "ENVIRONMENT": "development",
    }
)

from config.settings import GenerationSettings, LLMSettings
from core.models import (
    BrandVoice,
    ContentTemplate,
    GenerationRequest,
    InputField,
    OutputField,
    ProductContext,
)
from execution.generation_orchestrator import GenerationOrchestrator
from infrastructure.activity_tracker import ActivityTracker
from infrastructure.llm_client import LLMResponse, TokenUsage
from infrastructure.monitoring import MetricsCollector

# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "unit: mark test as unit test (no external dependencies)")


# ============================================================================
# TEST DOUBLES
# ============================================================================


class FakeClock:
    """Epoch-seconds clock advanced by hand."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedLLMClient:
    """
    Stand-in for LLMClient.

    Each call to `complete` consumes the next scripted reply: a string is
    returned as the response content, an exception instance is raised.
    Every call is recorded, including the ones that raise.
    """

    def __init__(self, replies: Optional[List[Union[str, Exception]]] = None):
        self.replies: List[Union[str, Exception]] = list(replies or [])
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, messages, *, operation, max_tokens, temperature, top_p=None, response_format=None):
        self.calls.append(
            {
                "messages": messages,
                "system": messages[0]["content"],
                "user": messages[-1]["content"],
                "operation": operation,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "top_p": top_p,
            }
        )
        if not self.replies:
            raise AssertionError(f"Unexpected model call: operation={operation}")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return LLMResponse(
            content=reply,
            model="gpt-4o-test",
            usage=TokenUsage(prompt_tokens=10, completion_tokens=20, total_tokens=30),
            latency_ms=12.0,
            finish_reason="stop",
        )

    @property
    def operations(self) -> List[str]:
        return [call["operation"] for call in self.calls]

    async def close(self) -> None:
        return None


# ============================================================================
# SETTINGS & INFRASTRUCTURE FIXTURES
# ============================================================================


@pytest.fixture
def llm_settings() -> LLMSettings:
    return LLMSettings(
        endpoint="https://test-resource.openai.azure.com",
        api_key="test-key",
        deployment="gpt-4o-test",
        request_timeout=5.0,
        max_retries=2,
    )


@pytest.fixture
def generation_settings() -> GenerationSettings:
    return GenerationSettings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tracker(clock) -> ActivityTracker:
    """Fresh tracker per test; pruning is driven manually through cleanup()."""
    return ActivityTracker(clock=clock)


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def scripted_llm():
    """Factory: scripted_llm("reply 1", LLMTimeoutError(...), ...)."""

    def _build(*replies: Union[str, Exception]) -> ScriptedLLMClient:
        return ScriptedLLMClient(list(replies))

    return _build


@pytest.fixture
def make_orchestrator(llm_settings, generation_settings, metrics):
    def _build(llm: ScriptedLLMClient) -> GenerationOrchestrator:
        return GenerationOrchestrator(
            llm_client=llm,
            llm_settings=llm_settings,
            generation_settings=generation_settings,
            metrics_collector=metrics,
        )

    return _build


# ============================================================================
# TEST DATA FACTORIES
# ============================================================================


@pytest.fixture
def brand() -> BrandVoice:
    return BrandVoice(
        name="Alpine Brew",
        brand_identity="Small-batch coffee roaster from the mountains.",
        tone_of_voice="Warm, confident, never pushy.",
        guardrails="No health claims.",
        language="de",
        country="Germany",
    )


@pytest.fixture
def english_brand() -> BrandVoice:
    return BrandVoice(name="Harbor Tea", tone_of_voice="Calm and clear.", language="en", country="UK")


@pytest.fixture
def product_context() -> ProductContext:
    return ProductContext(
        product_name="Summit Roast",
        styled_claims={
            "mandatory": ["Roasted in small batches"],
            "allowed": ["Notes of dark chocolate"],
            "disallowed": ["Boosts energy"],
        },
    )


@pytest.fixture
def multi_field_template() -> ContentTemplate:
    """Headline, 50-100 word body and a plain call to action."""
    return ContentTemplate(
        id="tpl-product-page",
        name="Product page",
        input_fields=[
            InputField(id="product", name="Product", value="Summit Roast"),
            InputField(id="audience", name="Audience", value="home baristas"),
        ],
        output_fields=[
            OutputField(
                id="headline",
                name="Headline",
                type="plainText",
                ai_prompt="Write a short headline for {{Product}} aimed at {{audience}}.",
            ),
            OutputField(
                id="body",
                name="Body",
                type="richText",
                ai_prompt="Describe {{Product}} in 50-100 words. {{Rules}}",
            ),
            OutputField(
                id="cta",
                name="Call to action",
                type="plainText",
                ai_prompt="Write a call to action for {{Product}}.",
            ),
        ],
    )


@pytest.fixture
def single_rich_template() -> ContentTemplate:
    return ContentTemplate(
        id="tpl-article",
        name="Article",
        input_fields=[InputField(id="topic", name="Topic", value="Cold brew at home")],
        output_fields=[
            OutputField(
                id="article",
                name="Article",
                type="richText",
                ai_prompt="Write an article about {{topic}}.",
            )
        ],
    )


@pytest.fixture
def multi_field_request(brand, multi_field_template) -> GenerationRequest:
    return GenerationRequest(brand=brand, template=multi_field_template)


@pytest.fixture
def single_rich_request(brand, single_rich_template) -> GenerationRequest:
    return GenerationRequest(brand=brand, template=single_rich_template)