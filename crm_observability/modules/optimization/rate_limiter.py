"""
Per-caller request rate limiting with fixed, epoch-aligned windows.

Windows are aligned to the wall clock (``floor(now / window) * window``) rather
than sliding from a caller's first request, so a caller can burst up to twice
its limit across a window boundary.
"""

import asyncio
from datetime import datetime
from threading import Lock
from typing import Any, Callable, Dict, Optional

from crm_observability.logger import logger
from crm_observability.modules.observability.metrics import ErrorSeverity, MetricStore, utc_now
from crm_observability.types import ConfiguredBaseModel


class RateLimitWindow(ConfiguredBaseModel):
    """Request count for one ``ip:endpoint`` key inside one window."""

    ip: str
    endpoint: str
    count: int
    window_start: int  # epoch ms
    limit: int


class RateLimitResult(ConfiguredBaseModel):
    """Outcome of a rate-limit check."""

    allowed: bool
    remaining: int
    reset_time: int  # epoch ms at which the current window ends


class RateLimiterMetrics:
    """Counters for rate limiter decisions."""

    def __init__(self):
        self.allowed_count = 0
        self.blocked_count = 0
        self.cleaned_count = 0

    def record_allowed(self) -> None:
        """Record an allowed request."""
        self.allowed_count += 1

    def record_blocked(self) -> None:
        """Record a rejected request."""
        self.blocked_count += 1

    def record_cleanup(self, removed: int) -> None:
        """Record stale windows removed by cleanup."""
        self.cleaned_count += removed

    def get_stats(self) -> Dict[str, Any]:
        """Get metrics summary."""
        total = self.allowed_count + self.blocked_count
        return {
            "allowed_count": self.allowed_count,
            "blocked_count": self.blocked_count,
            "cleaned_count": self.cleaned_count,
            "block_rate": (self.blocked_count / total * 100) if total > 0 else 0.0,
        }


class RateLimitMonitor:
    """
    Fixed-window request counter keyed by (caller ip, endpoint).

    Rejected requests are reported into the metric store as medium-severity
    errors. The monitor never reads from the store.
    """

    def __init__(
        self,
        metrics_store: Optional[MetricStore] = None,
        window_seconds: float = 60,
        default_limit: int = 100,
        cleanup_interval_seconds: float = 300,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize rate limit monitor.

        Args:
            metrics_store: Store receiving rate-limit violations
            window_seconds: Window size
            default_limit: Limit used when a check passes none
            cleanup_interval_seconds: Interval between stale-window sweeps
            clock: Returns the current aware datetime (default: UTC now)
        """
        self.metrics_store = metrics_store
        self.window_size_ms = int(window_seconds * 1000)
        self.default_limit = default_limit
        self.cleanup_interval = cleanup_interval_seconds
        self._clock = clock or utc_now
        self._windows: Dict[str, RateLimitWindow] = {}
        self._lock = Lock()
        self._cleanup_task: Optional[asyncio.Task] = None
        self.metrics = RateLimiterMetrics()

        logger.info(
            f"RateLimitMonitor initialized: window={window_seconds}s, "
            f"default_limit={default_limit}"
        )

    def _now_ms(self) -> int:
        return int(self._clock().timestamp() * 1000)

    def check_rate_limit(
        self,
        ip: str,
        endpoint: str,
        limit: Optional[int] = None,
    ) -> RateLimitResult:
        """
        Count a request and decide whether it is allowed.

        Args:
            ip: Caller address
            endpoint: Request path
            limit: Maximum requests per window (default: monitor default)

        Returns:
            RateLimitResult with allowed flag, remaining quota and window end
        """
        limit = self.default_limit if limit is None else limit
        key = f"{ip}:{endpoint}"
        window_start = (self._now_ms() // self.window_size_ms) * self.window_size_ms

        with self._lock:
            window = self._windows.get(key)
            if window is None or window.window_start != window_start:
                window = RateLimitWindow(
                    ip=ip,
                    endpoint=endpoint,
                    count=0,
                    window_start=window_start,
                    limit=limit,
                )
                self._windows[key] = window

            window.count += 1
            window.limit = limit
            count = window.count

        allowed = count <= limit

        if allowed:
            self.metrics.record_allowed()
        else:
            self.metrics.record_blocked()
            logger.debug(f"Rate limit exceeded: {key} ({count}/{limit})")
            if self.metrics_store is not None:
                self.metrics_store.track_error(
                    f"Rate limit exceeded for {ip} on {endpoint}",
                    ErrorSeverity.MEDIUM,
                    endpoint=endpoint,
                )

        return RateLimitResult(
            allowed=allowed,
            remaining=max(0, limit - count),
            reset_time=window_start + self.window_size_ms,
        )

    def get_window(self, ip: str, endpoint: str) -> Optional[RateLimitWindow]:
        """Copy of the tracked window for a key, if any."""
        with self._lock:
            window = self._windows.get(f"{ip}:{endpoint}")
            return window.model_copy() if window else None

    def cleanup(self) -> int:
        """
        Remove windows that started more than two window lengths ago.

        Returns:
            Number of windows removed
        """
        cutoff = self._now_ms() - self.window_size_ms * 2

        with self._lock:
            stale = [key for key, w in self._windows.items() if w.window_start < cutoff]
            for key in stale:
                del self._windows[key]

        if stale:
            self.metrics.record_cleanup(len(stale))
            logger.debug(f"Removed {len(stale)} stale rate limit windows")
        return len(stale)

    def start(self) -> None:
        """Start the periodic cleanup task (requires a running event loop)."""
        if self._cleanup_task is not None:
            logger.warning("Rate limit cleanup task already running")
            return
        self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())

    async def stop(self) -> None:
        """Stop the periodic cleanup task."""
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None

    async def _cleanup_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.cleanup_interval)
                self.cleanup()
            except asyncio.CancelledError:
                logger.info("Rate limit cleanup task cancelled")
                break
            except Exception as e:
                logger.error(f"Error in rate limit cleanup task: {e}")

    def get_stats(self) -> Dict[str, Any]:
        """
        Get rate limiter statistics.

        Returns:
            Dictionary with metrics and current state
        """
        with self._lock:
            tracked = len(self._windows)
        return {
            "window_size_ms": self.window_size_ms,
            "default_limit": self.default_limit,
            "tracked_keys": tracked,
            "metrics": self.metrics.get_stats(),
        }
