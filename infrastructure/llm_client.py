"""
LLM Client: Chat Completions over an Azure OpenAI Deployment

Thin, observable wrapper around the OpenAI SDK's AsyncAzureOpenAI client:
- Per-call deadline, surfaced as LLMTimeoutError
- HTTP 429 surfaced as LLMRateLimitError with quota headers, never retried here
- Bounded retry with exponential backoff for connection failures only
- Every call recorded in the ActivityTracker and Prometheus metrics

Credentials are checked at call time, so a process without them can still
boot and answer health checks.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

import httpx
from loguru import logger
from openai import (
    APIConnectionError,
    APIError,
    APIStatusError,
    APITimeoutError,
    AsyncAzureOpenAI,
    RateLimitError,
)
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from config.constants import RATE_LIMIT_HEADER_ALIASES
from config.settings import LLMSettings
from core.enums import RequestStatus
from core.exceptions import (
    LLMInvalidResponseError,
    LLMRateLimitError,
    LLMTimeoutError,
    LLMTransportError,
)
from infrastructure.activity_tracker import ActivityTracker, parse_seconds
from infrastructure.monitoring import MetricsCollector

_KNOWN_RATE_LIMIT_HEADERS = frozenset(
    alias for aliases in RATE_LIMIT_HEADER_ALIASES.values() for alias in aliases
)


@dataclass(frozen=True)
class TokenUsage:
    """Immutable token usage record."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __post_init__(self):
        assert self.prompt_tokens >= 0, "Prompt tokens must be non-negative"
        assert self.completion_tokens >= 0, "Completion tokens must be non-negative"


@dataclass(frozen=True)
class LLMResponse:
    """Immutable model response with call metadata."""

    content: str
    model: str
    usage: TokenUsage
    latency_ms: float
    finish_reason: Optional[str] = None
    rate_limit_headers: Dict[str, str] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self):
        assert self.latency_ms >= 0, "Latency must be non-negative"


def build_messages(system_prompt: str, user_prompt: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]


def _rate_limit_subset(headers: Optional[Mapping[str, str]]) -> Dict[str, str]:
    if not headers:
        return {}
    return {
        str(key).lower(): str(value)
        for key, value in headers.items()
        if str(key).lower() in _KNOWN_RATE_LIMIT_HEADERS
    }


def _retry_after_seconds(headers: Mapping[str, str]) -> Optional[int]:
    if "retry-after" in headers:
        return parse_seconds(headers["retry-after"], default=0) or None
    for key in ("x-ms-retry-after-ms", "retry-after-ms"):
        if key in headers:
            return parse_seconds(f"{headers[key]}ms", default=0) or None
    return None


class LLMClient:
    """
    Chat-completions client with activity tracking.

    Usage:
        client = LLMClient(settings.llm, activity_tracker)
        response = await client.complete(
            build_messages(system, user),
            operation="generate_template",
            max_tokens=800,
            temperature=0.7,
        )
    """

    def __init__(
        self,
        settings: LLMSettings,
        activity_tracker: ActivityTracker,
        metrics_collector: Optional[MetricsCollector] = None,
        client: Optional[Any] = None,
    ):
        """
        Args:
            settings: Endpoint, credentials, deadline and retry settings
            activity_tracker: Receives start/complete for every call
            metrics_collector: Optional Prometheus recorder
            client: Preconstructed SDK client (created lazily when None)
        """
        self.settings = settings
        self.tracker = activity_tracker
        self.metrics = metrics_collector
        self._client = client

        logger.info(
            f"LLMClient initialized | deployment={settings.deployment} | "
            f"timeout={settings.request_timeout}s | max_retries={settings.max_retries}"
        )

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = AsyncAzureOpenAI(
                azure_endpoint=self.settings.endpoint,
                api_key=self.settings.api_key.get_secret_value(),
                api_version=self.settings.api_version,
                timeout=httpx.Timeout(self.settings.request_timeout),
                max_retries=0,  # Retries handled below
            )
        return self._client

    async def complete(
        self,
        messages: List[Dict[str, str]],
        *,
        operation: str,
        max_tokens: int,
        temperature: float,
        top_p: Optional[float] = None,
        response_format: Optional[Dict[str, Any]] = None,
    ) -> LLMResponse:
        """
        Issue one chat completion.

        Args:
            messages: Chat messages ({role, content})
            operation: Name recorded in telemetry (e.g. "generate_template")
            max_tokens: Completion token budget
            temperature: Sampling temperature
            top_p: Nucleus sampling parameter
            response_format: Passed through, e.g. {"type": "json_object"}

        Returns:
            LLMResponse; `content` may be empty when the model returned no text

        Raises:
            MissingConfigurationError: Endpoint, key or deployment not configured
            LLMRateLimitError: HTTP 429
            LLMTimeoutError: Deadline exceeded
            LLMTransportError: Connection failure, non-2xx status or unreadable response
            LLMInvalidResponseError: Response carried no choices
        """
        self.settings.require()
        client = self._get_client()

        params: Dict[str, Any] = {
            "model": self.settings.deployment,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "timeout": self.settings.request_timeout,
        }
        if top_p is not None:
            params["top_p"] = top_p
        if response_format is not None:
            params["response_format"] = response_format

        request_id = self.tracker.start_request(operation)
        start_time = time.perf_counter()

        try:
            raw = await self._create_with_retry(client, params)
            headers = _rate_limit_subset(raw.headers)
            completion = raw.parse()
        except RateLimitError as e:
            headers = _rate_limit_subset(e.response.headers if e.response is not None else None)
            self._finish(request_id, operation, RequestStatus.RATE_LIMITED, start_time, headers)
            logger.error(f"Model rate limited | operation={operation} | headers={headers}")
            raise LLMRateLimitError(
                f"Rate limit exceeded: {e}",
                retry_after=_retry_after_seconds(headers),
                rate_limit_headers=headers,
                operation=operation,
            ) from e
        except APITimeoutError as e:
            self._finish(request_id, operation, RequestStatus.ERROR, start_time, status_label="timeout")
            logger.error(
                f"Model request timed out | operation={operation} | "
                f"timeout={self.settings.request_timeout}s"
            )
            raise LLMTimeoutError(
                f"Request timeout: {e}",
                timeout_seconds=self.settings.request_timeout,
                operation=operation,
            ) from e
        except APIStatusError as e:
            headers = _rate_limit_subset(e.response.headers if e.response is not None else None)
            self._finish(request_id, operation, RequestStatus.ERROR, start_time, headers)
            logger.error(
                f"Model endpoint error | operation={operation} | status_code={e.status_code}"
            )
            raise LLMTransportError(
                f"Provider error: {e}", status_code=e.status_code, operation=operation
            ) from e
        except APIConnectionError as e:
            self._finish(request_id, operation, RequestStatus.ERROR, start_time)
            logger.error(f"Model endpoint unreachable | operation={operation} | error={e}")
            raise LLMTransportError(f"Connection error: {e}", operation=operation) from e
        except APIError as e:
            # Response validation failures and any other SDK error
            self._finish(request_id, operation, RequestStatus.ERROR, start_time)
            logger.error(f"Model call failed | operation={operation} | error={e}")
            raise LLMTransportError(f"Provider error: {e}", operation=operation) from e
        except asyncio.CancelledError:
            self._finish(request_id, operation, RequestStatus.ERROR, start_time, status_label="cancelled")
            logger.warning(f"Model request cancelled | operation={operation}")
            raise
        except Exception as e:
            self._finish(request_id, operation, RequestStatus.ERROR, start_time)
            logger.error(f"Model call failed unexpectedly | operation={operation} | error={e}")
            raise

        if not completion.choices:
            self._finish(request_id, operation, RequestStatus.ERROR, start_time, headers)
            raise LLMInvalidResponseError(
                "Model response contained no choices", expected_format="chat.completion"
            )

        choice = completion.choices[0]
        usage = TokenUsage(
            prompt_tokens=getattr(completion.usage, "prompt_tokens", 0) or 0,
            completion_tokens=getattr(completion.usage, "completion_tokens", 0) or 0,
            total_tokens=getattr(completion.usage, "total_tokens", 0) or 0,
        )
        latency_ms = self._finish(
            request_id, operation, RequestStatus.SUCCESS, start_time, headers, usage=usage
        )

        logger.debug(
            f"Model call complete | operation={operation} | latency_ms={latency_ms:.0f} | "
            f"tokens={usage.total_tokens} | finish_reason={choice.finish_reason}"
        )

        return LLMResponse(
            content=choice.message.content or "",
            model=completion.model or self.settings.deployment or "",
            usage=usage,
            latency_ms=latency_ms,
            finish_reason=choice.finish_reason,
            rate_limit_headers=headers,
        )

    async def _create_with_retry(self, client: Any, params: Dict[str, Any]) -> Any:
        """
        Retry connection failures with exponential backoff.

        Timeouts (an APIConnectionError subclass) and status errors are not retried.
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.settings.max_retries),
            wait=wait_exponential(multiplier=1, min=1, max=8),
            retry=(
                retry_if_exception_type(APIConnectionError)
                & retry_if_not_exception_type(APITimeoutError)
            ),
            before_sleep=before_sleep_log(logger, "WARNING"),
            reraise=True,
        ):
            with attempt:
                return await client.chat.completions.with_raw_response.create(**params)

    def _finish(
        self,
        request_id: str,
        operation: str,
        status: RequestStatus,
        start_time: float,
        headers: Optional[Dict[str, str]] = None,
        usage: Optional[TokenUsage] = None,
        status_label: Optional[str] = None,
    ) -> float:
        latency_ms = (time.perf_counter() - start_time) * 1000
        self.tracker.complete_request(request_id, status, headers)
        if self.metrics:
            self.metrics.record_llm_call(
                operation=operation,
                status=status_label or status.value,
                latency_seconds=latency_ms / 1000,
                prompt_tokens=usage.prompt_tokens if usage else 0,
                completion_tokens=usage.completion_tokens if usage else 0,
            )
        return latency_ms

    async def close(self) -> None:
        if self._client is not None and hasattr(self._client, "close"):
            await self._client.close()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit with cleanup."""
        await self.close()


__all__ = ["LLMClient", "LLMResponse", "TokenUsage", "build_messages"]
