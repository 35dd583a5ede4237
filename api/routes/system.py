"""
System Routes: Health Check and Monitoring Endpoints

Provides system-level endpoints for health monitoring, request activity,
and Prometheus metrics collection.
"""

from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from api.schemas import HealthCheckResponse
from config.settings import Settings
from container import container
from core.enums import RateLimitStatus
from core.models import ActivityStats
from infrastructure.activity_tracker import ActivityTracker
from infrastructure.monitoring import MetricsCollector

router = APIRouter(prefix="/system", tags=["System"])


# Simple dependency functions for FastAPI
def get_settings_dependency() -> Settings:
    """Get Settings instance for FastAPI dependency injection."""
    return container.config()


def get_tracker_dependency() -> ActivityTracker:
    """Get ActivityTracker instance for FastAPI dependency injection."""
    return container.activity_tracker()


def get_metrics_dependency() -> MetricsCollector:
    """Get MetricsCollector instance for FastAPI dependency injection."""
    return container.metrics()


@router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check endpoint",
    description="System health check with dependency status",
)
async def health_check(
    settings: Settings = Depends(get_settings_dependency),
    tracker: ActivityTracker = Depends(get_tracker_dependency),
) -> HealthCheckResponse:
    """
    Report whether the service can reach a usable model configuration.

    Missing model credentials degrade the status; they do not fail the check.
    """
    dependencies: Dict[str, str] = {}

    llm = settings.llm
    if llm.endpoint and llm.api_key and llm.deployment:
        dependencies["llm"] = "configured"
    else:
        dependencies["llm"] = "unconfigured"

    dependencies["activity_tracker"] = "running" if tracker.running else "stopped"

    stats = tracker.get_stats()
    dependencies["rate_limit"] = stats.rate_limit_status.value

    healthy = (
        dependencies["llm"] == "configured"
        and stats.rate_limit_status is not RateLimitStatus.CRITICAL
    )

    return HealthCheckResponse(
        status="healthy" if healthy else "degraded",
        timestamp=datetime.now(timezone.utc),
        version=settings.app_version,
        dependencies=dependencies,
    )


@router.get(
    "/activity",
    response_model=ActivityStats,
    summary="Model request activity",
    description="Pending requests, throughput, latency and quota status over the trailing window",
)
async def get_activity(
    tracker: ActivityTracker = Depends(get_tracker_dependency),
) -> ActivityStats:
    return tracker.get_stats()


@router.get(
    "/metrics",
    summary="System metrics (Prometheus format)",
    description="Export metrics in Prometheus format for monitoring systems",
)
async def get_system_metrics(
    settings: Settings = Depends(get_settings_dependency),
    metrics: MetricsCollector = Depends(get_metrics_dependency),
) -> Response:
    """Export metrics in Prometheus text format."""
    if not settings.monitoring.enable_prometheus:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Metrics export disabled")
    return Response(content=metrics.export_metrics(), media_type=metrics.get_content_type())
