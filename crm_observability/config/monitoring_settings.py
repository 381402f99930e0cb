"""
Monitoring Settings

Thresholds, buffer sizes and background-task cadences for the observability
engine. Values default to the behaviour the CRM dashboards were built against.

Usage:
    from crm_observability.config import get_monitoring_settings

    settings = get_monitoring_settings(profile="production")
    settings = get_monitoring_settings(metrics_buffer_size=2_000)
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class AlertThresholds(BaseModel):
    """
    Fixed threshold table used by the alert evaluation pass.

    Response time and error rate alert when the live value is above the
    threshold, cache hit rate alerts when it is below. Memory thresholds are
    percentages of host memory in use.
    """

    response_time_warning: float = Field(default=2000, ge=0, description="Average response time warning (ms)")
    response_time_critical: float = Field(default=5000, ge=0, description="Average response time critical (ms)")
    error_rate_warning: float = Field(default=5, ge=0, le=100, description="Error rate warning (%)")
    error_rate_critical: float = Field(default=10, ge=0, le=100, description="Error rate critical (%)")
    memory_warning: float = Field(default=80, ge=0, le=100, description="Memory usage warning (%)")
    memory_critical: float = Field(default=90, ge=0, le=100, description="Memory usage critical (%)")
    cache_hit_rate_warning: float = Field(default=70, ge=0, le=100, description="Cache hit rate warning (%)")
    cache_hit_rate_critical: float = Field(default=50, ge=0, le=100, description="Cache hit rate critical (%)")


class MonitoringSettings(BaseModel):
    """
    Engine-wide settings.

    Intervals are expressed in seconds; windows handed to the metric store are
    expressed in milliseconds, matching the aggregation API.
    """

    metrics_buffer_size: int = Field(
        default=10_000,
        ge=2,
        description="Per-category buffer cap; exceeding it trims the buffer to half",
    )

    thresholds: AlertThresholds = Field(default_factory=AlertThresholds)

    alert_check_interval_seconds: float = Field(default=60, gt=0)
    alert_cleanup_interval_seconds: float = Field(default=3600, gt=0)
    resolved_alert_retention: int = Field(
        default=100,
        ge=0,
        description="Number of most-recently-resolved alerts kept by cleanup",
    )

    rate_limit_window_seconds: float = Field(default=60, gt=0)
    rate_limit_default_limit: int = Field(default=100, ge=1)
    rate_limit_cleanup_interval_seconds: float = Field(default=300, gt=0)

    report_run_retention_days: int = Field(default=30, ge=1)
    report_cleanup_interval_seconds: float = Field(default=86_400, gt=0)
    report_output_dir: str = Field(
        default="./data/reports",
        description="Directory the default renderer writes report snapshots into",
    )
    scheduled_reports_path: Optional[str] = Field(
        default="./data/scheduled_reports.json",
        description="JSON file holding scheduled report definitions (None keeps them in memory)",
    )

    log_level: str = Field(default="INFO")


# Pre-configured profiles
MONITORING_PROFILES: Dict[str, MonitoringSettings] = {
    "default": MonitoringSettings(),
    # Development: tighter buffers, chatty logs, nothing written to disk
    "development": MonitoringSettings(
        metrics_buffer_size=2_000,
        scheduled_reports_path=None,
        log_level="DEBUG",
    ),
    # Production: faster alert feedback
    "production": MonitoringSettings(
        alert_check_interval_seconds=30,
        log_level="WARNING",
    ),
}


def get_monitoring_settings(
    profile: Optional[str] = None,
    thresholds: Optional[AlertThresholds] = None,
    **overrides: Any,
) -> MonitoringSettings:
    """
    Get monitoring settings from a profile with optional overrides.

    Args:
        profile: Profile name (default, development, production)
        thresholds: Replacement threshold table
        **overrides: Field overrides applied on top of the profile

    Returns:
        MonitoringSettings instance

    Examples:
        settings = get_monitoring_settings(profile="development")
        settings = get_monitoring_settings(alert_check_interval_seconds=5)
    """
    if profile and profile in MONITORING_PROFILES:
        base = MONITORING_PROFILES[profile]
    else:
        base = MONITORING_PROFILES["default"]

    data = base.model_dump()
    if thresholds is not None:
        data["thresholds"] = thresholds.model_dump()
    data.update(overrides)

    return MonitoringSettings(**data)
