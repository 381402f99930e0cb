"""Alerting and the monitoring dashboard API.

Components:
    - AlertManager: Threshold evaluation, deduplication and alert lifecycle
    - metrics_api: FastAPI router serving aggregates, alerts and reports

The router is imported from its module so the alert manager can be used
without FastAPI's application wiring:

Example:
    from fastapi import FastAPI
    from crm_observability.modules.observability.dashboard.metrics_api import router

    app = FastAPI()
    app.include_router(router, prefix="/api")

    # Endpoints:
    # GET  /api/monitoring/metrics?type=all
    # GET  /api/monitoring/alerts
    # POST /api/monitoring/alerts/{alert_id}/acknowledge
    # GET  /api/monitoring/reports/scheduled
"""

from .alert_manager import (
    Alert,
    AlertBreach,
    AlertManager,
    AlertMetric,
    AlertType,
    check_alert_thresholds,
    get_alert_title,
)

__all__ = [
    "Alert",
    "AlertBreach",
    "AlertManager",
    "AlertMetric",
    "AlertType",
    "check_alert_thresholds",
    "get_alert_title",
]
