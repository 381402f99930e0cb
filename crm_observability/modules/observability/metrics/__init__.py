"""Metric ingestion and windowed aggregation.

Components:
    - MetricStore: Bounded per-category buffers with windowed aggregates
    - MetricsAggregator: Mean, percentile and rate helpers
    - instrumentation: Decorators feeding handler and timing events into a store
    - host_probe: Host memory introspection

Example:
    from crm_observability.modules.observability.metrics import MetricStore

    store = MetricStore(max_size=10_000)
    store.track_api_call("/api/clients", "GET", 200, 112.0)
    store.track_cache_operation("clients-list", "miss")

    api = store.get_api_stats(window_ms=3_600_000)
    cache = store.get_cache_stats()
"""

from .host_probe import get_memory_usage_percent, get_system_metrics
from .instrumentation import (
    classify_error_severity,
    measure_async_time,
    measure_time,
    monitor_database_operation,
    monitored,
    track_api_error,
)
from .metrics_aggregator import MetricsAggregator
from .metrics_store import MetricCategory, MetricStore
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

__all__ = [
    "MetricStore",
    "MetricCategory",
    "MetricsAggregator",
    "PerformanceMetric",
    "APIMetric",
    "CacheMetric",
    "ErrorMetric",
    "CacheOperation",
    "ErrorSeverity",
    "HealthStatus",
    "APIStats",
    "EndpointStats",
    "CacheStats",
    "SystemHealth",
    "utc_now",
    "get_memory_usage_percent",
    "get_system_metrics",
    "measure_time",
    "measure_async_time",
    "monitored",
    "monitor_database_operation",
    "classify_error_severity",
    "track_api_error",
]
