"""Scheduled report jobs with one deferred timer per enabled job.

Each enabled job owns exactly one asyncio task that sleeps until the job's
``next_run``. When it fires, the job executes, ``last_run`` is persisted, and
the next run is computed and armed. A failed run is recorded in the run
history and the job stays scheduled.

Timers are only armed while the runner is started; jobs added before
``start()`` are armed by it.
"""

import asyncio
import uuid
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from crm_observability.logger import logger
from crm_observability.modules.observability.dashboard.alert_manager import AlertManager
from crm_observability.modules.observability.metrics import MetricStore

from .report_collector import collect_report_data, estimate_file_size
from .report_store import JsonReportRenderer, ScheduledReportRepository
from .schedule import (
    calculate_next_run,
    end_of_day,
    get_lookback_days,
    get_lookback_window_ms,
    local_now,
    start_of_day,
)
from .schemas import (
    DateRange,
    ReportConfig,
    ReportData,
    RunStatus,
    ScheduledReport,
    ScheduledReportCreate,
    ScheduledReportRun,
    ScheduledReportUpdate,
)

ReportRenderer = Callable[[ReportConfig, ReportData], Awaitable[Any]]


DEFAULT_SCHEDULED_REPORT_TEMPLATES: List[Dict[str, Any]] = [
    {
        "name": "Daily Performance Report",
        "description": "Automatic daily report with performance metrics",
        "schedule": {"frequency": "daily", "time": "08:00"},
        "config": {
            "title": "Daily Performance Report",
            "format": "pdf",
            "include_charts": True,
            "include_details": False,
            "sections": {
                "overview": True,
                "api": True,
                "cache": True,
                "performance": False,
                "alerts": True,
                "errors": True,
            },
        },
    },
    {
        "name": "Weekly Executive Report",
        "description": "Weekly summary for management",
        "schedule": {"frequency": "weekly", "time": "09:00", "day_of_week": 1},
        "config": {
            "title": "Weekly Executive Report",
            "format": "pdf",
            "include_charts": True,
            "include_details": False,
            "sections": {
                "overview": True,
                "api": True,
                "cache": False,
                "performance": True,
                "alerts": True,
                "errors": False,
            },
        },
    },
]


def _generate_id(prefix: str, now: datetime) -> str:
    return f"{prefix}_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:9]}"


class ScheduledReportRunner:
    """Owns scheduled report jobs, their timers and their run history.

    Example:
        runner = ScheduledReportRunner(store, alert_manager, renderer=render_pdf)
        runner.start()

        job = runner.add_scheduled_report(ScheduledReportCreate(
            name="Daily ops",
            config=ReportConfig(title="Daily ops"),
            schedule=ReportSchedule(frequency="daily", time="08:00"),
            created_by="admin",
        ))
        run = await runner.run_report_now(job.id)
    """

    def __init__(
        self,
        metrics_store: MetricStore,
        alert_manager: AlertManager,
        renderer: Optional[ReportRenderer] = None,
        repository: Optional[ScheduledReportRepository] = None,
        run_retention_days: int = 30,
        cleanup_interval_seconds: float = 86400,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the runner.

        Args:
            metrics_store: Source of report aggregates
            alert_manager: Source of report alert lists
            renderer: Async callable materializing a report (default: JSON renderer)
            repository: Job persistence (default: in-memory only)
            run_retention_days: Age after which run records are pruned
            cleanup_interval_seconds: Cadence of run-history pruning
            clock: Returns the current aware local datetime
        """
        self.metrics_store = metrics_store
        self.alert_manager = alert_manager
        self.renderer = renderer or JsonReportRenderer()
        self.repository = repository
        self.run_retention_days = run_retention_days
        self.cleanup_interval = cleanup_interval_seconds
        self._clock = clock or local_now

        self._reports: List[ScheduledReport] = []
        self._runs: List[ScheduledReportRun] = []
        self._timers: Dict[str, asyncio.Task] = {}
        self._cleanup_task: Optional[asyncio.Task] = None
        self._running = False

    # Lifecycle

    def start(self) -> None:
        """Load persisted jobs, recompute their next runs and arm timers.

        Persisted ``next_run`` values are ignored. Requires a running event loop.
        """
        if self._running:
            return

        if self.repository is not None:
            loaded = self.repository.load()
            known = {report.id for report in loaded}
            self._reports = loaded + [r for r in self._reports if r.id not in known]

        now = self._clock()
        self._reports = [
            report.model_copy(update={"next_run": calculate_next_run(report.schedule, now)})
            for report in self._reports
        ]
        self._save()

        self._running = True
        for report in self._reports:
            if report.enabled:
                self._arm(report)

        self._cleanup_task = asyncio.get_running_loop().create_task(self._cleanup_loop())
        logger.info(f"Scheduled report runner started: {len(self._timers)} jobs armed")

    async def stop(self) -> None:
        """Cancel every pending timer and the cleanup loop."""
        self._running = False
        tasks = list(self._timers.values())
        self._timers.clear()
        if self._cleanup_task is not None:
            tasks.append(self._cleanup_task)
            self._cleanup_task = None

        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def armed_report_ids(self) -> List[str]:
        return list(self._timers)

    async def _cleanup_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.cleanup_interval)
                self.cleanup()
            except asyncio.CancelledError:
                logger.info("Report run cleanup task cancelled")
                break
            except Exception as e:
                logger.error(f"Error in report run cleanup task: {e}")

    # Job CRUD

    def add_scheduled_report(self, report: ScheduledReportCreate) -> ScheduledReport:
        """Create a job and arm it if enabled.

        Returns:
            The stored job, with id, created_at and next_run filled in
        """
        now = self._clock()
        fields = {name: getattr(report, name) for name in ScheduledReportCreate.model_fields}
        new_report = ScheduledReport(
            id=_generate_id("scheduled", now),
            created_at=now,
            next_run=calculate_next_run(report.schedule, now),
            **fields,
        )

        self._reports.append(new_report)
        self._save()
        if new_report.enabled:
            self._arm(new_report)

        logger.info(f"Scheduled report added: {new_report.name} (next run {new_report.next_run})")
        return new_report.model_copy()

    def update_scheduled_report(
        self, report_id: str, updates: ScheduledReportUpdate
    ) -> Optional[ScheduledReport]:
        """Apply a partial update, recompute next_run and re-arm the timer.

        Returns:
            The updated job, or None if no job has this id
        """
        index = self._index(report_id)
        if index is None:
            return None

        changes = {
            name: getattr(updates, name)
            for name in updates.model_fields_set
            if getattr(updates, name) is not None
        }
        updated = self._reports[index].model_copy(update=changes)
        updated = updated.model_copy(
            update={"next_run": calculate_next_run(updated.schedule, self._clock())}
        )
        self._reports[index] = updated
        self._save()

        self._disarm(report_id)
        if updated.enabled:
            self._arm(updated)

        return updated.model_copy()

    def delete_scheduled_report(self, report_id: str) -> bool:
        """Remove a job and cancel its timer."""
        index = self._index(report_id)
        if index is None:
            return False

        self._disarm(report_id)
        del self._reports[index]
        self._save()
        return True

    def get_scheduled_reports(self) -> List[ScheduledReport]:
        return [report.model_copy() for report in self._reports]

    def get_scheduled_report(self, report_id: str) -> Optional[ScheduledReport]:
        index = self._index(report_id)
        return self._reports[index].model_copy() if index is not None else None

    def get_report_runs(self, report_id: Optional[str] = None) -> List[ScheduledReportRun]:
        """Run history in start order, optionally for a single job."""
        return [
            run.model_copy()
            for run in self._runs
            if report_id is None or run.report_id == report_id
        ]

    def _index(self, report_id: str) -> Optional[int]:
        return next((i for i, r in enumerate(self._reports) if r.id == report_id), None)

    def _save(self) -> None:
        if self.repository is not None:
            self.repository.save(self._reports)

    # Timers

    def _arm(self, report: ScheduledReport) -> None:
        if not self._running or report.next_run is None:
            return
        delay = max(0.0, (report.next_run - self._clock()).total_seconds())
        task = asyncio.get_running_loop().create_task(self._fire_after(report.id, delay))
        self._timers[report.id] = task
        logger.debug(f"Armed scheduled report {report.id} in {delay:.0f}s")

    def _disarm(self, report_id: str) -> None:
        task = self._timers.pop(report_id, None)
        if task is not None:
            task.cancel()

    async def _fire_after(self, report_id: str, delay: float) -> None:
        await asyncio.sleep(delay)

        # The timer is consumed; an update during the run arms a fresh one.
        if self._timers.get(report_id) is asyncio.current_task():
            del self._timers[report_id]

        report = self.get_scheduled_report(report_id)
        if report is None:
            return

        await self._execute_report(report)

        index = self._index(report_id)
        if index is None or report_id in self._timers or not self._running:
            return

        # Schedule past the slot that fired even if the wall clock still reads before it.
        now = self._clock()
        if report.next_run is not None and report.next_run > now:
            now = report.next_run

        current = self._reports[index]
        current = current.model_copy(
            update={"next_run": calculate_next_run(current.schedule, now)}
        )
        self._reports[index] = current
        self._save()
        if current.enabled:
            self._arm(current)

    # Execution

    async def run_report_now(self, report_id: str) -> Optional[ScheduledReportRun]:
        """Execute a job immediately, outside its schedule.

        Returns:
            The finished run record, or None if no job has this id
        """
        report = self.get_scheduled_report(report_id)
        if report is None:
            return None
        return await self._execute_report(report)

    async def _execute_report(self, report: ScheduledReport) -> ScheduledReportRun:
        now = self._clock()
        run = ScheduledReportRun(id=_generate_id("run", now), report_id=report.id, start_time=now)
        self._runs.append(run)

        try:
            frequency = report.schedule.frequency
            data = collect_report_data(
                self.metrics_store,
                self.alert_manager,
                get_lookback_window_ms(frequency),
                now,
            )
            config = report.config.model_copy(
                update={
                    "date_range": DateRange(
                        start=start_of_day(now - timedelta(days=get_lookback_days(frequency))),
                        end=end_of_day(now),
                    )
                }
            )

            result = await self.renderer(config, data)

            run.status = RunStatus.COMPLETED.value
            run.end_time = self._clock()
            run.file_size = estimate_file_size(config, data)
            if isinstance(result, str):
                run.file_path = result

            self._set_last_run(report.id, run.end_time)
            logger.info(f'Scheduled report "{report.name}" completed successfully')
        except Exception as e:
            run.status = RunStatus.FAILED.value
            run.end_time = self._clock()
            run.error = str(e) or type(e).__name__
            logger.error(f'Scheduled report "{report.name}" failed: {run.error}')

        return run.model_copy()

    def _set_last_run(self, report_id: str, when: datetime) -> None:
        index = self._index(report_id)
        if index is None:
            return
        self._reports[index] = self._reports[index].model_copy(update={"last_run": when})
        self._save()

    # Retention

    def cleanup(self) -> int:
        """Drop run records that started more than ``run_retention_days`` ago.

        Returns:
            Number of runs removed
        """
        cutoff = self._clock() - timedelta(days=self.run_retention_days)
        before = len(self._runs)
        self._runs = [run for run in self._runs if run.start_time > cutoff]
        removed = before - len(self._runs)
        if removed:
            logger.info(f"Removed {removed} old report runs")
        return removed

    def get_stats(self) -> Dict[str, int]:
        """Job and run counts for the dashboard."""
        return {
            "scheduled": len(self._reports),
            "enabled": sum(1 for r in self._reports if r.enabled),
            "armed": len(self._timers),
            "runs": len(self._runs),
            "failed_runs": sum(1 for r in self._runs if r.status == RunStatus.FAILED.value),
        }
