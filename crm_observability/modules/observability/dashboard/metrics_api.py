"""FastAPI endpoints for the monitoring dashboard.

Read-only aggregates, alert operator actions, scheduled report management and
manual metric ingestion. Every handler resolves the engine from
``request.app.state.monitoring``.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from crm_observability.engine import MonitoringEngine
from crm_observability.modules.reporting import (
    DEFAULT_SCHEDULED_REPORT_TEMPLATES,
    ScheduledReport,
    ScheduledReportCreate,
    ScheduledReportRun,
    ScheduledReportUpdate,
)

from ..metrics import ErrorSeverity, get_system_metrics
from ..metrics.metrics_store import ONE_HOUR_MS
from .alert_manager import Alert, check_alert_thresholds

router = APIRouter(prefix="/monitoring", tags=["monitoring"])

RECENT_LIMIT_ALL = 20


class MetricsView(str, Enum):
    """Slices served by GET /monitoring/metrics."""

    ALL = "all"
    API = "api"
    CACHE = "cache"
    PERFORMANCE = "performance"
    ERRORS = "errors"
    HEALTH = "health"
    ALERTS = "alerts"


class PerformanceSample(BaseModel):
    """Performance sample posted by a client."""

    model_config = ConfigDict(use_enum_values=True)

    name: str
    value: float
    unit: str = "ms"
    tags: Optional[Dict[str, str]] = None


class ErrorSample(BaseModel):
    """Error event posted by a client."""

    model_config = ConfigDict(use_enum_values=True)

    error: str
    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    endpoint: Optional[str] = None
    user_id: Optional[str] = None
    stack: Optional[str] = None


class MetricIngestRequest(BaseModel):
    """Manual ingestion payload: ``type`` selects which metric shape applies."""

    model_config = ConfigDict(use_enum_values=True)

    type: str = Field(..., description="performance or error")
    metric: Dict[str, Any]


class ActionResult(BaseModel):
    """Result of an operator action."""

    success: bool
    id: Optional[str] = None


def get_engine(request: Request) -> MonitoringEngine:
    """Resolve the engine owned by the application."""
    engine = getattr(request.app.state, "monitoring", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Monitoring engine not configured")
    return engine


def _dump(items: List[BaseModel]) -> List[Dict[str, Any]]:
    return [item.model_dump(mode="json") for item in items]


@router.get("/metrics")
async def get_metrics(
    view: MetricsView = Query(MetricsView.ALL, alias="type", description="Slice of metrics to return"),
    time_range: int = Query(ONE_HOUR_MS, alias="timeRange", gt=0, description="Window in ms"),
    engine: MonitoringEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """Get windowed aggregates and recent samples.

    Args:
        view: all, api, cache, performance, errors, health or alerts
        time_range: Aggregation window in milliseconds (default: 1 hour)

    Returns:
        Timestamped payload with the requested slice
    """
    store = engine.metrics_store
    payload: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "timeRange": time_range,
    }

    if view == MetricsView.API:
        payload["api"] = store.get_api_stats(time_range).model_dump(mode="json")
        payload["recent"] = _dump(store.get_recent_api_metrics(50))
    elif view == MetricsView.CACHE:
        payload["cache"] = store.get_cache_stats(time_range).model_dump(mode="json")
        payload["recent"] = _dump(store.get_recent_cache_metrics(50))
    elif view == MetricsView.PERFORMANCE:
        payload["performance"] = _dump(store.get_recent_performance_metrics(100))
    elif view == MetricsView.ERRORS:
        payload["errors"] = _dump(store.get_recent_error_metrics(100))
    elif view == MetricsView.HEALTH:
        payload["health"] = store.get_system_health().model_dump(mode="json")
        payload["system"] = get_system_metrics()
    elif view == MetricsView.ALERTS:
        breaches = check_alert_thresholds(
            store.get_api_stats(time_range),
            store.get_cache_stats(time_range),
            thresholds=engine.alert_manager.thresholds,
        )
        payload["alerts"] = _dump(breaches)
    else:
        api_stats = store.get_api_stats(time_range)
        cache_stats = store.get_cache_stats(time_range)
        payload.update(
            {
                "api": api_stats.model_dump(mode="json"),
                "cache": cache_stats.model_dump(mode="json"),
                "health": store.get_system_health().model_dump(mode="json"),
                "system": get_system_metrics(),
                "alerts": _dump(
                    check_alert_thresholds(
                        api_stats, cache_stats, thresholds=engine.alert_manager.thresholds
                    )
                ),
                "recent": {
                    "api": _dump(store.get_recent_api_metrics(RECENT_LIMIT_ALL)),
                    "cache": _dump(store.get_recent_cache_metrics(RECENT_LIMIT_ALL)),
                    "errors": _dump(store.get_recent_error_metrics(RECENT_LIMIT_ALL)),
                    "performance": _dump(store.get_recent_performance_metrics(RECENT_LIMIT_ALL)),
                },
            }
        )

    return payload


@router.post("/metrics", response_model=ActionResult)
async def add_metric(
    body: MetricIngestRequest,
    engine: MonitoringEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """Manually record a performance sample or an error event."""
    store = engine.metrics_store

    try:
        if body.type == "performance":
            sample = PerformanceSample(**body.metric)
        elif body.type == "error":
            sample = ErrorSample(**body.metric)
        else:
            raise HTTPException(status_code=400, detail=f"Invalid metric type: {body.type}")
    except ValidationError as e:
        raise HTTPException(
            status_code=422, detail=e.errors(include_url=False, include_context=False)
        )

    if isinstance(sample, PerformanceSample):
        metric = store.track_performance(sample.name, sample.value, sample.unit, sample.tags)
        return {"success": True, "id": metric.id}

    store.track_error(
        sample.error,
        sample.severity,
        endpoint=sample.endpoint,
        user_id=sample.user_id,
        stack=sample.stack,
    )
    return {"success": True}


@router.delete("/metrics", response_model=ActionResult)
async def clear_metrics(engine: MonitoringEngine = Depends(get_engine)) -> Dict[str, Any]:
    """Drop every buffered metric event."""
    engine.metrics_store.clear()
    return {"success": True}


@router.get("/alerts", response_model=List[Alert])
async def list_alerts(
    active_only: bool = Query(False, description="Only return open alerts"),
    engine: MonitoringEngine = Depends(get_engine),
) -> List[Alert]:
    """List alerts, newest first."""
    if active_only:
        return engine.alert_manager.get_active_alerts()
    return engine.alert_manager.get_alerts()


@router.get("/alerts/stats")
async def alert_stats(engine: MonitoringEngine = Depends(get_engine)) -> Dict[str, int]:
    return engine.alert_manager.get_stats()


@router.post("/alerts/{alert_id}/acknowledge", response_model=ActionResult)
async def acknowledge_alert(
    alert_id: str,
    engine: MonitoringEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """Flag an alert as seen."""
    if not engine.alert_manager.acknowledge_alert(alert_id):
        raise HTTPException(status_code=404, detail=f"Alert not found: {alert_id}")
    return {"success": True, "id": alert_id}


@router.post("/alerts/{alert_id}/resolve", response_model=ActionResult)
async def resolve_alert(
    alert_id: str,
    engine: MonitoringEngine = Depends(get_engine),
) -> Dict[str, Any]:
    """Resolve an alert regardless of the live metric."""
    if not engine.alert_manager.resolve_alert(alert_id):
        raise HTTPException(status_code=404, detail=f"Alert not found: {alert_id}")
    return {"success": True, "id": alert_id}


@router.get("/reports/templates")
async def list_report_templates() -> List[Dict[str, Any]]:
    """Built-in scheduled report templates."""
    return DEFAULT_SCHEDULED_REPORT_TEMPLATES


@router.get("/reports/scheduled", response_model=List[ScheduledReport])
async def list_scheduled_reports(
    engine: MonitoringEngine = Depends(get_engine),
) -> List[ScheduledReport]:
    return engine.report_runner.get_scheduled_reports()


@router.post("/reports/scheduled", response_model=ScheduledReport, status_code=201)
async def create_scheduled_report(
    body: ScheduledReportCreate,
    engine: MonitoringEngine = Depends(get_engine),
) -> ScheduledReport:
    """Create a scheduled report job."""
    return engine.report_runner.add_scheduled_report(body)


@router.patch("/reports/scheduled/{report_id}", response_model=ScheduledReport)
async def update_scheduled_report(
    report_id: str,
    body: ScheduledReportUpdate,
    engine: MonitoringEngine = Depends(get_engine),
) -> ScheduledReport:
    """Partially update a job; its next run is recomputed."""
    updated = engine.report_runner.update_scheduled_report(report_id, body)
    if updated is None:
        raise HTTPException(status_code=404, detail=f"Scheduled report not found: {report_id}")
    return updated


@router.delete("/reports/scheduled/{report_id}", response_model=ActionResult)
async def delete_scheduled_report(
    report_id: str,
    engine: MonitoringEngine = Depends(get_engine),
) -> Dict[str, Any]:
    if not engine.report_runner.delete_scheduled_report(report_id):
        raise HTTPException(status_code=404, detail=f"Scheduled report not found: {report_id}")
    return {"success": True, "id": report_id}


@router.post("/reports/scheduled/{report_id}/run", response_model=ScheduledReportRun)
async def run_scheduled_report(
    report_id: str,
    engine: MonitoringEngine = Depends(get_engine),
) -> ScheduledReportRun:
    """Execute a job now; a failed run is returned with status "failed"."""
    run = await engine.report_runner.run_report_now(report_id)
    if run is None:
        raise HTTPException(status_code=404, detail=f"Scheduled report not found: {report_id}")
    return run


@router.get("/reports/runs", response_model=List[ScheduledReportRun])
async def list_report_runs(
    report_id: Optional[str] = Query(None, alias="reportId"),
    engine: MonitoringEngine = Depends(get_engine),
) -> List[ScheduledReportRun]:
    return engine.report_runner.get_report_runs(report_id)


@router.get("/health")
async def health_check(engine: MonitoringEngine = Depends(get_engine)) -> Dict[str, Any]:
    """Health of the monitored system and of the engine itself.

    Returns:
        Status from the last-hour health snapshot plus component statistics
    """
    health = engine.metrics_store.get_system_health()
    return {
        "status": health.status,
        "service": "crm-observability",
        "running": engine.is_running,
        "health": health.model_dump(mode="json"),
        "components": engine.get_stats(),
    }
