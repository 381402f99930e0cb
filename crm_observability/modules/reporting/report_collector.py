"""Snapshot collection for scheduled report runs."""

from collections import Counter
from datetime import datetime
from typing import Dict, List

from crm_observability.modules.observability.dashboard.alert_manager import AlertManager
from crm_observability.modules.observability.metrics import MetricStore, PerformanceMetric

from .schedule import DAY_MS
from .schemas import (
    ReportAlertsSection,
    ReportAPISection,
    ReportCacheSection,
    ReportConfig,
    ReportData,
    ReportErrorsSection,
    ReportFormat,
    ReportMetadata,
    ReportOverview,
    ReportPerformanceSection,
)

RECENT_LIMIT = 100
SECTION_ITEM_LIMIT = 50
WEB_VITALS = ("lcp", "fid", "cls")


def _latest_web_vitals(metrics: List[PerformanceMetric]) -> Dict[str, float]:
    vitals = {name: 0.0 for name in WEB_VITALS}
    for metric in metrics:
        if metric.name in vitals:
            vitals[metric.name] = metric.value
    return vitals


def collect_report_data(
    metrics_store: MetricStore,
    alert_manager: AlertManager,
    window_ms: int,
    now: datetime,
) -> ReportData:
    """Pull aggregates and recent samples into a report snapshot.

    Aggregates cover the trailing ``window_ms``; the recent sample lists are
    the last 100 events per category regardless of the window.

    Args:
        metrics_store: Source of aggregates and samples
        alert_manager: Source of the alert lists
        window_ms: Lookback window in milliseconds
        now: Generation time recorded in the metadata

    Returns:
        ReportData snapshot
    """
    api_stats = metrics_store.get_api_stats(window_ms)
    cache_stats = metrics_store.get_cache_stats(window_ms)
    health = metrics_store.get_system_health()

    alerts = alert_manager.get_alerts()
    critical_alerts = alert_manager.get_critical_alerts()

    recent_api = metrics_store.get_recent_api_metrics(RECENT_LIMIT)
    recent_cache = metrics_store.get_recent_cache_metrics(RECENT_LIMIT)
    recent_performance = metrics_store.get_recent_performance_metrics(RECENT_LIMIT)
    recent_errors = metrics_store.get_recent_error_metrics(RECENT_LIMIT)

    total_data_points = len(recent_api) + len(recent_cache) + len(recent_performance) + len(recent_errors)

    return ReportData(
        overview=ReportOverview(
            total_requests=api_stats.total_requests,
            avg_response_time=api_stats.avg_response_time,
            error_rate=api_stats.error_rate,
            cache_hit_rate=cache_stats.hit_rate,
            uptime=health.uptime_seconds,
            critical_alerts=len(critical_alerts),
        ),
        api=ReportAPISection(
            stats=api_stats,
            endpoints=api_stats.endpoint_stats,
            recent=recent_api[:SECTION_ITEM_LIMIT],
        ),
        cache=ReportCacheSection(stats=cache_stats, operations=cache_stats.operations),
        performance=ReportPerformanceSection(
            metrics=recent_performance,
            web_vitals=_latest_web_vitals(recent_performance),
        ),
        alerts=ReportAlertsSection(
            total=len(alerts),
            critical=len(critical_alerts),
            recent=alerts[:SECTION_ITEM_LIMIT],
        ),
        errors=ReportErrorsSection(
            total=len(recent_errors),
            recent=recent_errors[:SECTION_ITEM_LIMIT],
            by_type=dict(Counter(error.severity for error in recent_errors)),
        ),
        health=health,
        metadata=ReportMetadata(
            generated_at=now,
            period=f"{round(window_ms / DAY_MS)} days",
            total_data_points=total_data_points,
        ),
    )


def estimate_file_size(config: ReportConfig, data: ReportData) -> int:
    """Rough output size in bytes from enabled sections and data points."""
    sections = config.sections.enabled_count()
    points = data.metadata.total_data_points

    if config.format == ReportFormat.PDF.value:
        return max(500_000, sections * points * 100)
    return max(200_000, sections * points * 50)
