"""Bounded in-memory store for performance, API, cache and error events.

Each category keeps its events in append order inside an independent buffer.
When a buffer grows past its cap it is cut back to the most recent half in one
batch, so a buffer never holds more than ``max_size`` entries after an append.
Aggregations are computed on demand over the events inside a trailing window.
"""

import uuid
from collections import defaultdict
from datetime import datetime, timedelta
from enum import Enum
from threading import Lock
from typing import Callable, Dict, List, Optional

from crm_observability.logger import logger

from .host_probe import get_memory_usage_percent
from .metrics_aggregator import MetricsAggregator
from .schemas import (
    APIMetric,
    APIStats,
    CacheMetric,
    CacheOperation,
    CacheStats,
    EndpointStats,
    ErrorMetric,
    ErrorSeverity,
    HealthStatus,
    PerformanceMetric,
    SystemHealth,
    utc_now,
)

ONE_HOUR_MS = 3_600_000


class MetricCategory(str, Enum):
    """Buffer categories held by the store."""

    PERFORMANCE = "performance"
    API = "api"
    CACHE = "cache"
    ERROR = "error"


class MetricStore:
    """In-memory metric buffers with windowed aggregation.

    Appends never fail and never validate beyond the model shape. Reads take a
    snapshot of a buffer under its lock, so aggregation can interleave with
    ingestion from request handlers running in worker threads.

    Example:
        store = MetricStore()

        store.track_api_call("/api/leads", "GET", 200, 84.2)
        store.track_cache_operation("leads-page-1", "hit")
        store.track_error("Database timeout", "critical", endpoint="/api/leads")

        stats = store.get_api_stats(window_ms=3_600_000)
        health = store.get_system_health()
    """

    def __init__(
        self,
        max_size: int = 10_000,
        clock: Optional[Callable[[], datetime]] = None,
        memory_probe: Optional[Callable[[], Optional[float]]] = get_memory_usage_percent,
    ):
        """Initialize metric store.

        Args:
            max_size: Per-category buffer cap
            clock: Returns the current aware datetime (default: UTC now)
            memory_probe: Returns host memory usage percent or None
        """
        self.max_size = max_size
        self._clock = clock or utc_now
        self._memory_probe = memory_probe
        self._aggregator = MetricsAggregator()
        self._started_at = self._clock()
        self._buffers: Dict[MetricCategory, list] = {category: [] for category in MetricCategory}
        self._locks: Dict[MetricCategory, Lock] = {category: Lock() for category in MetricCategory}

        logger.info(f"MetricStore initialized: max_size={max_size} per category")

    # Ingestion

    def append_performance_metric(self, metric: PerformanceMetric) -> None:
        """Append a performance sample."""
        self._append(MetricCategory.PERFORMANCE, metric)

    def append_api_metric(self, metric: APIMetric) -> None:
        """Append a completed API call."""
        self._append(MetricCategory.API, metric)

    def append_cache_metric(self, metric: CacheMetric) -> None:
        """Append a cache operation."""
        self._append(MetricCategory.CACHE, metric)

    def append_error_metric(self, metric: ErrorMetric) -> None:
        """Append an error event."""
        self._append(MetricCategory.ERROR, metric)

    def _append(self, category: MetricCategory, metric) -> None:
        with self._locks[category]:
            buffer = self._buffers[category]
            buffer.append(metric)
            if len(buffer) > self.max_size:
                keep = self.max_size // 2
                del buffer[: len(buffer) - keep]
                logger.debug(f"Trimmed {category.value} buffer to {keep} entries")

    def track_performance(
        self,
        name: str,
        value: float,
        unit: str,
        tags: Optional[Dict[str, str]] = None,
    ) -> PerformanceMetric:
        """Record a named performance sample.

        Args:
            name: Sample name
            value: Measured value
            unit: Value unit (e.g., "ms")
            tags: Optional dimensions

        Returns:
            The stored PerformanceMetric
        """
        now = self._clock()
        metric = PerformanceMetric(
            id=f"perf_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:9]}",
            name=name,
            value=value,
            unit=unit,
            timestamp=now,
            tags=tags,
        )
        self.append_performance_metric(metric)
        return metric

    def track_api_call(
        self,
        endpoint: str,
        method: str,
        status_code: int,
        response_time_ms: float,
        user_agent: Optional[str] = None,
        ip: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> APIMetric:
        """Record a completed API call.

        Args:
            endpoint: Request path
            method: HTTP method (or pseudo-method such as "DB")
            status_code: Response status
            response_time_ms: Handler duration in milliseconds
            user_agent: Optional client user agent
            ip: Optional client address
            user_id: Optional authenticated user

        Returns:
            The stored APIMetric
        """
        metric = APIMetric(
            endpoint=endpoint,
            method=method,
            status_code=status_code,
            response_time_ms=response_time_ms,
            timestamp=self._clock(),
            user_agent=user_agent,
            ip=ip,
            user_id=user_id,
        )
        self.append_api_metric(metric)
        return metric

    def track_cache_operation(
        self,
        key: str,
        operation: CacheOperation,
        ttl: Optional[float] = None,
        size: Optional[int] = None,
    ) -> CacheMetric:
        """Record a cache operation (hit, miss, set or delete)."""
        metric = CacheMetric(
            key=key,
            operation=operation,
            timestamp=self._clock(),
            ttl=ttl,
            size=size,
        )
        self.append_cache_metric(metric)
        return metric

    def track_error(
        self,
        error: str,
        severity: ErrorSeverity,
        endpoint: Optional[str] = None,
        user_id: Optional[str] = None,
        stack: Optional[str] = None,
    ) -> ErrorMetric:
        """Record an error event."""
        metric = ErrorMetric(
            error=error,
            severity=severity,
            timestamp=self._clock(),
            endpoint=endpoint,
            user_id=user_id,
            stack=stack,
        )
        self.append_error_metric(metric)
        return metric

    # Raw reads

    def get_recent_performance_metrics(self, limit: int = 100) -> List[PerformanceMetric]:
        """Last ``limit`` performance samples in append order."""
        return self._recent(MetricCategory.PERFORMANCE, limit)

    def get_recent_api_metrics(self, limit: int = 100) -> List[APIMetric]:
        """Last ``limit`` API calls in append order."""
        return self._recent(MetricCategory.API, limit)

    def get_recent_cache_metrics(self, limit: int = 100) -> List[CacheMetric]:
        """Last ``limit`` cache operations in append order."""
        return self._recent(MetricCategory.CACHE, limit)

    def get_recent_error_metrics(self, limit: int = 100) -> List[ErrorMetric]:
        """Last ``limit`` errors in append order."""
        return self._recent(MetricCategory.ERROR, limit)

    def get_buffer_sizes(self) -> Dict[str, int]:
        """Current length of every buffer."""
        sizes = {}
        for category in MetricCategory:
            with self._locks[category]:
                sizes[category.value] = len(self._buffers[category])
        return sizes

    def _recent(self, category: MetricCategory, limit: int) -> list:
        if limit <= 0:
            return []
        with self._locks[category]:
            return list(self._buffers[category][-limit:])

    def _window(self, category: MetricCategory, window_ms: float) -> list:
        cutoff = self._clock() - timedelta(milliseconds=window_ms)
        with self._locks[category]:
            return [m for m in self._buffers[category] if m.timestamp > cutoff]

    # Aggregates

    def get_api_stats(self, window_ms: float = ONE_HOUR_MS) -> APIStats:
        """Aggregate API calls inside the trailing window.

        Any status >= 400 counts as an error, client and server errors alike.
        Averages and rates are rounded to whole numbers.

        Args:
            window_ms: Window length in milliseconds

        Returns:
            APIStats snapshot
        """
        recent: List[APIMetric] = self._window(MetricCategory.API, window_ms)
        agg = self._aggregator

        response_times = [m.response_time_ms for m in recent]
        error_count = sum(1 for m in recent if m.status_code >= 400)

        grouped: Dict[str, List[APIMetric]] = defaultdict(list)
        for metric in recent:
            grouped[f"{metric.method} {metric.endpoint}"].append(metric)

        endpoint_stats = [
            EndpointStats(
                endpoint=key,
                count=len(calls),
                avg_response_time=agg.round_half_up(agg.mean([c.response_time_ms for c in calls])),
                error_rate=agg.round_half_up(
                    agg.calculate_error_rate(sum(1 for c in calls if c.status_code >= 400), len(calls))
                ),
            )
            for key, calls in grouped.items()
        ]

        return APIStats(
            total_requests=len(recent),
            avg_response_time=agg.round_half_up(agg.mean(response_times)),
            error_rate=agg.round_half_up(agg.calculate_error_rate(error_count, len(recent))),
            p95_response_time=agg.round_half_up(agg.percentile(response_times, 95)),
            endpoint_stats=endpoint_stats,
        )

    def get_cache_stats(self, window_ms: float = ONE_HOUR_MS) -> CacheStats:
        """Aggregate cache operations inside the trailing window.

        Only hits and misses feed the hit rate; sets and deletes are counted
        in ``operations``.

        Args:
            window_ms: Window length in milliseconds

        Returns:
            CacheStats snapshot
        """
        recent: List[CacheMetric] = self._window(MetricCategory.CACHE, window_ms)

        operations: Dict[str, int] = defaultdict(int)
        for metric in recent:
            operations[metric.operation] += 1

        hits = operations.get(CacheOperation.HIT.value, 0)
        misses = operations.get(CacheOperation.MISS.value, 0)

        return CacheStats(
            hits=hits,
            misses=misses,
            total=hits + misses,
            hit_rate=self._aggregator.round_half_up(self._aggregator.calculate_hit_rate(hits, misses)),
            operations=dict(operations),
        )

    def get_system_health(self) -> SystemHealth:
        """Derive a healthy/warning/critical status from the last hour.

        Critical when any critical error occurred or the average response time
        exceeds 5000ms; warning when more than 10 errors occurred or the
        average exceeds 2000ms.

        Returns:
            SystemHealth snapshot
        """
        recent_errors: List[ErrorMetric] = self._window(MetricCategory.ERROR, ONE_HOUR_MS)
        recent_api: List[APIMetric] = self._window(MetricCategory.API, ONE_HOUR_MS)

        critical_errors = sum(1 for e in recent_errors if e.severity == ErrorSeverity.CRITICAL)
        avg_response_time = self._aggregator.mean([m.response_time_ms for m in recent_api])

        if critical_errors > 0 or avg_response_time > 5000:
            status = HealthStatus.CRITICAL
        elif len(recent_errors) > 10 or avg_response_time > 2000:
            status = HealthStatus.WARNING
        else:
            status = HealthStatus.HEALTHY

        return SystemHealth(
            status=status,
            avg_response_time=self._aggregator.round_half_up(avg_response_time),
            error_count=len(recent_errors),
            critical_errors=critical_errors,
            uptime_seconds=(self._clock() - self._started_at).total_seconds(),
            memory_percent=self._memory_probe() if self._memory_probe else None,
        )

    def clear(self) -> None:
        """Drop every buffered event."""
        for category in MetricCategory:
            with self._locks[category]:
                self._buffers[category].clear()
