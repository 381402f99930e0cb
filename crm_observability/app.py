"""
Monitoring FastAPI application.

Usage:
    uvicorn crm_observability.app:create_app --factory
"""

import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from crm_observability import __version__
from crm_observability.config import MonitoringSettings, get_monitoring_settings
from crm_observability.engine import MonitoringEngine
from crm_observability.modules.observability.dashboard.metrics_api import router as monitoring_router
from crm_observability.modules.observability.dashboard.middleware import APIMonitoringMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start the engine's background tasks for the lifetime of the app."""
    engine: MonitoringEngine = app.state.monitoring
    engine.start()
    try:
        yield
    finally:
        await engine.stop()


def create_app(
    settings: Optional[MonitoringSettings] = None,
    engine: Optional[MonitoringEngine] = None,
    monitor_requests: bool = True,
) -> FastAPI:
    """
    Create the monitoring application.

    Args:
        settings: Engine settings (default: profile from MONITORING_PROFILE)
        engine: Pre-built engine; takes precedence over ``settings``
        monitor_requests: Install the rate-limiting and API-metrics middleware

    Returns:
        FastAPI app with the engine on ``app.state.monitoring``
    """
    if engine is None:
        engine = MonitoringEngine(settings or get_monitoring_settings(profile=os.getenv("MONITORING_PROFILE")))

    app = FastAPI(
        title="CRM Observability",
        description="Metrics, alerting and scheduled reports for the CRM",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.monitoring = engine

    if monitor_requests:
        app.add_middleware(APIMonitoringMiddleware)

    app.include_router(monitoring_router)
    return app
