"""
Monitoring Infrastructure: Structured Logging with Structlog

Provides JSON-based structured logging for production observability and a
Prometheus metrics collector for model calls and the generation repair
ladder.
"""

import logging
import sys
from typing import Optional

import structlog
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


def configure_structlog(log_level: str = "INFO", log_format: str = "json") -> None:
    """
    Configure structlog for production logging.

    Sets up processors for:
    - Timestamping (ISO 8601)
    - Log level formatting
    - Exception formatting with stack traces
    - JSON rendering (or console rendering when log_format is "text")
    """
    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structlog logger instance bound with a name context.

    Args:
        name: Logger name (typically module __name__)

    Returns:
        Configured structlog BoundLogger
    """
    return structlog.get_logger(name)


class MetricsCollector:
    """
    Prometheus metrics collector for system observability.

    Tracks:
    - Model requests by operation and outcome
    - Model latency and token consumption
    - Repair stages taken and fields left empty

    Each collector owns its registry, so separate instances (tests, workers)
    never collide on metric names.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        # LLM API metrics
        self.llm_requests_total = Counter(
            "llm_requests_total",
            "Total model requests",
            labelnames=["operation", "status"],
            registry=self.registry,
        )

        self.llm_request_latency_seconds = Histogram(
            "llm_request_latency_seconds",
            "Model request latency",
            buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 25.0, 60.0],
            labelnames=["operation"],
            registry=self.registry,
        )

        self.llm_tokens_total = Counter(
            "llm_tokens_total",
            "Total tokens consumed",
            labelnames=["operation", "token_type"],
            registry=self.registry,
        )

        # Generation metrics
        self.generation_repairs_total = Counter(
            "generation_repairs_total",
            "Repair stages executed",
            labelnames=["stage"],
            registry=self.registry,
        )

        self.generation_empty_fields_total = Counter(
            "generation_empty_fields_total",
            "Output fields still empty after all repair stages",
            registry=self.registry,
        )

        log = get_logger(__name__)
        log.info("metrics_collector_initialized", metrics_type="prometheus")

    def record_llm_call(
        self,
        operation: str,
        status: str,
        latency_seconds: float,
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
    ) -> None:
        """
        Record model call metrics.

        Args:
            operation: Pipeline operation that issued the call
            status: Request status ("success", "error", "rate_limited", "timeout")
            latency_seconds: Request latency
            prompt_tokens: Prompt tokens reported by the endpoint
            completion_tokens: Completion tokens reported by the endpoint
        """
        self.llm_requests_total.labels(operation=operation, status=status).inc()
        self.llm_request_latency_seconds.labels(operation=operation).observe(latency_seconds)

        if prompt_tokens:
            self.llm_tokens_total.labels(operation=operation, token_type="prompt").inc(
                prompt_tokens
            )
        if completion_tokens:
            self.llm_tokens_total.labels(operation=operation, token_type="completion").inc(
                completion_tokens
            )

    def record_repair(self, stage: str) -> None:
        """Record one repair stage execution."""
        self.generation_repairs_total.labels(stage=stage).inc()

    def record_empty_fields(self, count: int) -> None:
        """Record fields returned empty."""
        if count:
            self.generation_empty_fields_total.inc(count)

    def export_metrics(self) -> bytes:
        """
        Export metrics in Prometheus format.

        Returns:
            Prometheus-formatted metrics payload
        """
        return generate_latest(self.registry)

    def get_content_type(self) -> str:
        """Get content type for metrics endpoint."""
        return CONTENT_TYPE_LATEST
