"""
Composition root for the observability engine.

Builds one instance of every component from MonitoringSettings and owns their
background tasks. Hosts keep a single engine per process (for the HTTP app it
lives on ``app.state.monitoring``) instead of module-level singletons.
"""

from datetime import datetime
from typing import Any, Callable, Dict, Optional

from crm_observability.config import MonitoringSettings, get_monitoring_settings
from crm_observability.logger import logger
from crm_observability.modules.cache import MonitoredMemoryCache
from crm_observability.modules.observability.dashboard.alert_manager import AlertManager
from crm_observability.modules.observability.metrics import MetricStore, get_memory_usage_percent
from crm_observability.modules.optimization import RateLimitMonitor
from crm_observability.modules.reporting import (
    JsonReportRenderer,
    ReportRenderer,
    ScheduledReportRepository,
    ScheduledReportRunner,
)


class MonitoringEngine:
    """
    Metric store, rate monitor, alert manager and report runner wired together.

    Example:
        engine = MonitoringEngine(get_monitoring_settings(profile="production"))
        engine.start()                      # inside a running event loop
        engine.metrics_store.track_api_call("/api/leads", "GET", 200, 95.0)
        ...
        await engine.stop()
    """

    def __init__(
        self,
        settings: Optional[MonitoringSettings] = None,
        renderer: Optional[ReportRenderer] = None,
        memory_probe: Optional[Callable[[], Optional[float]]] = get_memory_usage_percent,
        clock: Optional[Callable[[], datetime]] = None,
        report_clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the engine.

        Args:
            settings: Engine settings (default: "default" profile)
            renderer: Report rendering collaborator (default: JSON renderer)
            memory_probe: Host memory probe shared by health and alerts
            clock: UTC clock for metrics, rate limits and alerts
            report_clock: Local clock for report schedules
        """
        self.settings = settings or get_monitoring_settings()
        logger.setLevel(self.settings.log_level.upper())

        self.metrics_store = MetricStore(
            max_size=self.settings.metrics_buffer_size,
            clock=clock,
            memory_probe=memory_probe,
        )
        self.rate_limiter = RateLimitMonitor(
            metrics_store=self.metrics_store,
            window_seconds=self.settings.rate_limit_window_seconds,
            default_limit=self.settings.rate_limit_default_limit,
            cleanup_interval_seconds=self.settings.rate_limit_cleanup_interval_seconds,
            clock=clock,
        )
        self.alert_manager = AlertManager(
            metrics_store=self.metrics_store,
            thresholds=self.settings.thresholds,
            memory_probe=memory_probe,
            check_interval_seconds=self.settings.alert_check_interval_seconds,
            cleanup_interval_seconds=self.settings.alert_cleanup_interval_seconds,
            resolved_retention=self.settings.resolved_alert_retention,
            clock=clock,
        )

        repository = None
        if self.settings.scheduled_reports_path:
            repository = ScheduledReportRepository(self.settings.scheduled_reports_path)

        self.report_runner = ScheduledReportRunner(
            metrics_store=self.metrics_store,
            alert_manager=self.alert_manager,
            renderer=renderer or JsonReportRenderer(self.settings.report_output_dir),
            repository=repository,
            run_retention_days=self.settings.report_run_retention_days,
            cleanup_interval_seconds=self.settings.report_cleanup_interval_seconds,
            clock=report_clock,
        )
        self.cache = MonitoredMemoryCache(self.metrics_store)
        self._started = False

    def start(self) -> None:
        """Start every background task (requires a running event loop)."""
        if self._started:
            return
        self.rate_limiter.start()
        self.alert_manager.start()
        self.report_runner.start()
        self._started = True
        logger.info("Monitoring engine started")

    async def stop(self) -> None:
        """Cancel every background task."""
        if not self._started:
            return
        await self.report_runner.stop()
        await self.alert_manager.stop()
        await self.rate_limiter.stop()
        self._started = False
        logger.info("Monitoring engine stopped")

    @property
    def is_running(self) -> bool:
        return self._started

    def get_stats(self) -> Dict[str, Any]:
        """Component statistics for the health endpoint."""
        return {
            "buffers": self.metrics_store.get_buffer_sizes(),
            "alerts": self.alert_manager.get_stats(),
            "rate_limiter": self.rate_limiter.get_stats(),
            "reports": self.report_runner.get_stats(),
            "cache_entries": len(self.cache),
        }
