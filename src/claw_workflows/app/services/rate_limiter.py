"""Fixed-window rate limiter for workflow executions.

One window per workflow ID. The first check opens a window of
``window_seconds``; up to ``max_per_window`` executions are allowed until the
window expires, after which the next check starts a fresh window.
"""

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from claw_workflows.app import config
from claw_workflows.app.models.workflow import RateLimitResult
from claw_workflows.app.services.logging_service import get_logger

logger = get_logger(__name__)


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    """Per-workflow fixed-window execution counter."""

    def __init__(
        self,
        window_seconds: float = config.RATE_LIMIT_WINDOW_SECONDS,
        max_per_window: int = config.RATE_LIMIT_MAX,
        clock: Callable[[], float] = time.time,
        cleanup_interval_seconds: float = config.RATE_LIMIT_CLEANUP_INTERVAL_SECONDS,
    ) -> None:
        self.window_seconds = window_seconds
        self.max_per_window = max_per_window
        self._clock = clock
        self._cleanup_interval = cleanup_interval_seconds
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._last_cleanup = clock()

    def check_rate_limit(self, workflow_id: str) -> RateLimitResult:
        """Count one execution attempt against the workflow's window."""
        with self._lock:
            now = self._clock()
            self._cleanup_stale(now)

            window = self._windows.get(workflow_id)
            if window is None or now >= window.reset_at:
                window = _Window(count=1, reset_at=now + self.window_seconds)
                self._windows[workflow_id] = window
                return RateLimitResult(
                    allowed=True,
                    remaining=self.max_per_window - 1,
                    reset_at=window.reset_at,
                )

            if window.count >= self.max_per_window:
                retry_after = math.ceil(window.reset_at - now)
                logger.info(f"Rate limit hit for workflow {workflow_id}, retry in {retry_after}s")
                return RateLimitResult(
                    allowed=False,
                    retry_after=retry_after,
                    remaining=0,
                    reset_at=window.reset_at,
                )

            window.count += 1
            return RateLimitResult(
                allowed=True,
                remaining=self.max_per_window - window.count,
                reset_at=window.reset_at,
            )

    def _cleanup_stale(self, now: float) -> None:
        """Drop expired windows every few minutes so the table stays small."""
        if now - self._last_cleanup < self._cleanup_interval:
            return
        self._last_cleanup = now
        expired = [key for key, w in self._windows.items() if now >= w.reset_at]
        for key in expired:
            del self._windows[key]

    def reset(self, workflow_id: str | None = None) -> None:
        """Clear one workflow's window, or all windows."""
        with self._lock:
            if workflow_id is None:
                self._windows.clear()
            else:
                self._windows.pop(workflow_id, None)


# Singleton instance
rate_limiter = RateLimiter()
