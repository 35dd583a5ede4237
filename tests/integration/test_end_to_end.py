"""
End-to-End Integration Tests

Exercises the HTTP surface with the real container wiring:
- Template generation through routes, service and orchestrator
- Domain error to HTTP status mapping (422, 429, 502, 504)
- System endpoints: health, activity and Prometheus metrics

Only the model client is replaced; every other component is the one the
container builds.
"""

import json

import pytest
from dependency_injector import providers
from fastapi.testclient import TestClient

from api.main import app
from container import container
from core.enums import RequestStatus
from core.exceptions import LLMRateLimitError, LLMTimeoutError, LLMTransportError

pytestmark = pytest.mark.integration

BRAND = {
    "name": "Alpine Brew",
    "toneOfVoice": "Warm, confident, never pushy.",
    "language": "de",
    "country": "Germany",
}

TEMPLATE = {
    "id": "tpl-product-page",
    "inputFields": [{"id": "product", "name": "Product", "value": "Summit Roast"}],
    "outputFields": [
        {
            "id": "headline",
            "name": "Headline",
            "type": "plainText",
            "aiPrompt": "Write a headline for {{Product}}.",
        },
        {
            "id": "body",
            "name": "Body",
            "type": "richText",
            "aiPrompt": "Describe {{Product}} in 50-100 words.",
            "useToneOfVoice": True,
        },
    ],
}


def words(count: int, word: str = "smooth") -> str:
    return " ".join([word] * count)


# ============================================================================
# INTEGRATION TEST FIXTURES
# ============================================================================


@pytest.fixture
def wired(tracker, metrics):
    """Route the container's process-wide singletons to per-test instances."""
    container.activity_tracker.override(providers.Object(tracker))
    container.metrics.override(providers.Object(metrics))
    yield
    container.llm_client.reset_override()
    container.metrics.reset_override()
    container.activity_tracker.reset_override()


@pytest.fixture
def api_client(wired, scripted_llm):
    """Factory: api_client("reply 1", ...) -> (TestClient, ScriptedLLMClient)."""

    def _build(*replies):
        llm = scripted_llm(*replies)
        container.llm_client.override(providers.Object(llm))
        return TestClient(app), llm

    return _build


# ============================================================================
# CONTENT ROUTES
# ============================================================================


class TestGenerateEndpoint:
    def test_generate_success(self, api_client):
        client, llm = api_client(json.dumps({"headline": "Frisch geröstet", "body": words(60)}))

        response = client.post("/content/generate", json={"brand": BRAND, "template": TEMPLATE})

        assert response.status_code == 200
        body = response.json()
        assert body["mode"] == "multi_field_json"
        assert body["modelCalls"] == 1
        assert body["complete"] is True
        assert body["emptyFieldIds"] == []
        assert body["outputs"]["headline"]["plain"] == "Frisch geröstet"
        assert body["outputs"]["body"]["wordCount"] == 60
        assert body["outputs"]["body"]["html"] == f"<p>{words(60)}</p>"
        assert "X-Request-ID" in response.headers

        assert "Warm, confident, never pushy." in llm.calls[0]["user"]
        assert "Do NOT write in English." in llm.calls[0]["system"]

    def test_generate_repairs_short_body(self, api_client):
        client, llm = api_client(
            json.dumps({"headline": "Frisch geröstet", "body": words(12)}),
            words(70, "rich"),
        )

        response = client.post("/content/generate", json={"brand": BRAND, "template": TEMPLATE})

        body = response.json()
        assert llm.operations == ["generate_template", "repair_field"]
        assert body["repairsAttempted"] == ["per_field_repair"]
        assert body["outputs"]["body"]["wordCount"] == 70
        assert body["violations"] == []

    def test_empty_fields_reported_not_raised(self, api_client):
        template = {
            "id": "tpl-article",
            "outputFields": [{"id": "article", "name": "Article", "type": "richText"}],
        }
        client, llm = api_client("", "", "")

        response = client.post("/content/generate", json={"brand": BRAND, "template": template})

        assert response.status_code == 200
        body = response.json()
        assert body["complete"] is False
        assert body["emptyFieldIds"] == ["article"]
        assert llm.operations == ["generate_template", "repair_field", "html_fallback"]

    def test_template_without_outputs_is_rejected(self, api_client):
        client, llm = api_client()

        response = client.post(
            "/content/generate", json={"brand": BRAND, "template": {"id": "empty"}}
        )

        assert response.status_code == 422
        assert response.json()["error"] == "Generation Error"
        assert llm.calls == []

    def test_malformed_request(self, api_client):
        client, _ = api_client()

        response = client.post("/content/generate", json={"template": TEMPLATE})

        assert response.status_code == 422
        assert response.json()["error"] == "Validation Error"


class TestErrorMapping:
    def test_rate_limit_maps_to_429(self, api_client):
        error = LLMRateLimitError(
            "Rate limit exceeded", retry_after=17, rate_limit_headers={"retry-after": "17"}
        )
        client, _ = api_client(error)

        response = client.post("/content/generate", json={"brand": BRAND, "template": TEMPLATE})

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "17"
        body = response.json()
        assert body["retry_after"] == 17
        assert body["rate_limit_headers"] == {"retry-after": "17"}

    def test_timeout_maps_to_504(self, api_client):
        client, _ = api_client(LLMTimeoutError("Request timeout", timeout_seconds=25.0))

        response = client.post("/content/generate", json={"brand": BRAND, "template": TEMPLATE})

        assert response.status_code == 504

    def test_transport_error_maps_to_502(self, api_client):
        client, _ = api_client(LLMTransportError("Provider error", status_code=500))

        response = client.post("/content/generate", json={"brand": BRAND, "template": TEMPLATE})

        assert response.status_code == 502
        assert response.json()["error"] == "Model Error"


class TestTitleAndSuggestion:
    def test_title(self, api_client):
        client, _ = api_client("„Summit Roast: Kaffee für klare Bergmorgen“")

        response = client.post(
            "/content/title",
            json={"contentBody": "<p>Unsere neue Röstung.</p>", "brand": BRAND, "topic": "Kaffee"},
        )

        assert response.status_code == 200
        assert response.json() == {"title": "Summit Roast: Kaffee für klare Bergmorgen"}

    def test_title_requires_brand_locale(self, api_client):
        client, llm = api_client()

        response = client.post(
            "/content/title", json={"contentBody": "Text", "brand": {"name": "No Locale"}}
        )

        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_FAILED"
        assert llm.calls == []

    def test_suggestion(self, api_client):
        client, llm = api_client("Bold mornings start here and keep going")

        response = client.post(
            "/content/suggest",
            json={
                "prompt": "Tagline for {{product}}",
                "formValues": {"product": "Summit Roast"},
                "maxLength": 20,
            },
        )

        assert response.status_code == 200
        assert response.json() == {"suggestion": "Bold mornings start", "truncated": True}
        assert llm.calls[0]["user"] == "Tagline for Summit Roast"

    def test_blank_suggestion_prompt(self, api_client):
        client, _ = api_client()

        response = client.post("/content/suggest", json={"prompt": "   "})

        assert response.status_code == 422


# ============================================================================
# SYSTEM ROUTES
# ============================================================================


class TestSystemEndpoints:
    def test_health(self, api_client):
        client, _ = api_client()

        with client:
            response = client.get("/system/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["dependencies"] == {
            "llm": "configured",
            "activity_tracker": "running",
            "rate_limit": "normal",
        }

    def test_health_degraded_when_rate_limited(self, api_client, tracker):
        client, _ = api_client()
        request_id = tracker.start_request("generate_template")
        tracker.complete_request(request_id, RequestStatus.RATE_LIMITED)

        body = client.get("/system/health").json()

        assert body["status"] == "degraded"
        assert body["dependencies"]["rate_limit"] == "critical"

    def test_activity(self, api_client, tracker, clock):
        client, _ = api_client()
        tracker.start_request("generate_template")
        finished = tracker.start_request("repair_field")
        clock.advance(0.8)
        tracker.complete_request(
            finished, RequestStatus.SUCCESS, {"x-ratelimit-remaining-requests": "150"}
        )

        body = client.get("/system/activity").json()

        assert body["activeRequests"] == 1
        assert body["requestsPerMinute"] == 1
        assert body["averageResponseTime"] == 800
        assert body["rateLimitStatus"] == "warning"
        assert body["rateLimitInfo"] == {"remaining": 150, "limit": 1000, "resetIn": 60}

    def test_metrics(self, api_client):
        client, _ = api_client(json.dumps({"headline": "Frisch", "body": words(12)}), words(60))
        client.post("/content/generate", json={"brand": BRAND, "template": TEMPLATE})

        response = client.get("/system/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert 'generation_repairs_total{stage="per_field_repair"} 1.0' in response.text

    def test_root_redirects_to_docs(self, api_client):
        client, _ = api_client()

        response = client.get("/", follow_redirects=False)

        assert response.status_code == 307
        assert response.headers["location"] == "/docs"
