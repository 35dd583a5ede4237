"""
Activity Tracker: In-Memory Model Request Telemetry

Records the lifecycle of every model request (pending -> success / error /
rate_limited) and derives a trailing-window view: pending count, requests
per minute, average latency and a tiered quota status.

State lives only in process memory. A background task prunes completed
requests older than the window; restarting the process resets everything.
"""

import asyncio
import re
import time
import uuid
from threading import Lock
from typing import Callable, Dict, List, Mapping, Optional

from loguru import logger

from config.constants import ACTIVITY_WINDOW, RATE_LIMIT_HEADER_ALIASES
from core.enums import RateLimitStatus, RequestStatus
from core.models import ActivityRequest, ActivityStats, RateLimitHeaders, RateLimitInfo

_LEADING_NUMBER = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s)?", re.IGNORECASE)


def extract_rate_limit_headers(headers: Optional[Mapping[str, str]]) -> Optional[RateLimitHeaders]:
    """
    Pick quota headers out of a response header map.

    Header names are matched case-insensitively against the OpenAI and
    x-ms- prefixed variants; the first alias present wins.
    """
    if not headers:
        return None
    lowered = {str(key).lower(): str(value) for key, value in headers.items()}
    found: Dict[str, str] = {}
    for name, aliases in RATE_LIMIT_HEADER_ALIASES.items():
        for alias in aliases:
            if alias in lowered:
                found[name] = lowered[alias]
                break
    return RateLimitHeaders(**found) if found else None


def parse_seconds(value: Optional[str], default: int) -> int:
    """'12', '12s', '1500ms' -> whole seconds; unparseable values give the default."""
    if not value:
        return default
    match = _LEADING_NUMBER.match(value)
    if not match:
        return default
    number = float(match.group(1))
    if (match.group(2) or "").lower() == "ms":
        number /= 1000.0
    return int(round(number))


def _to_int(value: Optional[str]) -> Optional[int]:
    match = _LEADING_NUMBER.match(value or "")
    return int(float(match.group(1))) if match else None


class ActivityTracker:
    """
    Process-wide request telemetry with a sliding window.

    Construct one per process and pass it to whatever issues model calls.
    `clock` returns epoch seconds and is injectable for tests.
    """

    def __init__(
        self,
        window_seconds: float = ACTIVITY_WINDOW.WINDOW_SECONDS,
        cleanup_interval_seconds: float = ACTIVITY_WINDOW.CLEANUP_INTERVAL_SECONDS,
        assumed_request_limit: int = ACTIVITY_WINDOW.ASSUMED_REQUEST_LIMIT,
        warning_threshold_pct: float = ACTIVITY_WINDOW.WARNING_THRESHOLD_PCT,
        critical_threshold_pct: float = ACTIVITY_WINDOW.CRITICAL_THRESHOLD_PCT,
        clock: Callable[[], float] = time.time,
    ):
        self.window_seconds = window_seconds
        self.cleanup_interval_seconds = cleanup_interval_seconds
        self.assumed_request_limit = assumed_request_limit
        self.warning_threshold_pct = warning_threshold_pct
        self.critical_threshold_pct = critical_threshold_pct
        self._clock = clock

        self._pending: Dict[str, ActivityRequest] = {}
        self._completed: List[ActivityRequest] = []
        self._lock = Lock()
        self._cleanup_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start periodic pruning on the running event loop."""
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        logger.info(
            f"ActivityTracker started | window={self.window_seconds}s | "
            f"cleanup_interval={self.cleanup_interval_seconds}s"
        )

    async def stop(self) -> None:
        task, self._cleanup_task = self._cleanup_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("ActivityTracker stopped")

    @property
    def running(self) -> bool:
        return self._cleanup_task is not None and not self._cleanup_task.done()

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval_seconds)
            self.cleanup()

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def start_request(self, endpoint: str) -> str:
        request_id = f"{int(self._clock() * 1000)}-{uuid.uuid4().hex[:9]}"
        with self._lock:
            self._pending[request_id] = ActivityRequest(
                id=request_id, timestamp=self._clock(), endpoint=endpoint
            )
        return request_id

    def complete_request(
        self,
        request_id: str,
        status: RequestStatus,
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Move a pending request to the completed list; unknown ids are ignored."""
        with self._lock:
            request = self._pending.pop(request_id, None)
            if request is None:
                return
            now = self._clock()
            request.status = status
            request.completed_at = now
            request.duration = max(0.0, (now - request.timestamp) * 1000.0)
            request.rate_limit_headers = extract_rate_limit_headers(headers)
            self._completed.append(request)

        if status is RequestStatus.RATE_LIMITED:
            logger.warning(f"Model request rate limited | endpoint={request.endpoint}")

    def cleanup(self) -> int:
        """Drop completed requests that left the window; returns how many were dropped."""
        cutoff = self._clock() - self.window_seconds
        with self._lock:
            before = len(self._completed)
            self._completed = [r for r in self._completed if self._finished_at(r) > cutoff]
            return before - len(self._completed)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_stats(self) -> ActivityStats:
        now = self._clock()
        cutoff = now - self.window_seconds

        with self._lock:
            pending = list(self._pending.values())
            recent = [r for r in self._completed if self._finished_at(r) > cutoff]
            every = [*self._completed, *pending]

        average = sum(r.duration or 0.0 for r in recent) / len(recent) if recent else 0.0

        status = RateLimitStatus.NORMAL
        info: Optional[RateLimitInfo] = None
        last_updated: Optional[float] = None

        with_quota = [
            r for r in every if r.rate_limit_headers and r.rate_limit_headers.remaining
        ]
        latest = max(with_quota, key=lambda r: r.timestamp, default=None)
        if latest is not None:
            remaining = _to_int(latest.rate_limit_headers.remaining)
            if remaining is not None:
                limit = self.assumed_request_limit
                percentage = remaining / limit * 100.0
                if percentage < self.critical_threshold_pct:
                    status = RateLimitStatus.CRITICAL
                elif percentage < self.warning_threshold_pct:
                    status = RateLimitStatus.WARNING
                info = RateLimitInfo(
                    remaining=remaining,
                    limit=limit,
                    reset_in=parse_seconds(
                        latest.rate_limit_headers.reset, ACTIVITY_WINDOW.DEFAULT_RESET_SECONDS
                    ),
                )
                last_updated = latest.timestamp

        if any(r.status is RequestStatus.RATE_LIMITED for r in recent):
            status = RateLimitStatus.CRITICAL

        return ActivityStats(
            active_requests=len(pending),
            requests_per_minute=len(recent),
            average_response_time=int(round(average)),
            rate_limit_status=status,
            rate_limit_info=info,
            last_updated=last_updated,
        )

    @staticmethod
    def _finished_at(request: ActivityRequest) -> float:
        return request.completed_at if request.completed_at is not None else request.timestamp


__all__ = ["ActivityTracker", "extract_rate_limit_headers", "parse_seconds"]
