"""
Engine Configuration Module

Provides thresholds, buffer sizes and task cadences for the observability engine.
"""

from crm_observability.config.monitoring_settings import (
    MONITORING_PROFILES,
    AlertThresholds,
    MonitoringSettings,
    get_monitoring_settings,
)

__all__ = [
    "AlertThresholds",
    "MonitoringSettings",
    "MONITORING_PROFILES",
    "get_monitoring_settings",
]
