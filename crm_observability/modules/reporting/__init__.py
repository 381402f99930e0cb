"""Scheduled monitoring reports.

Components:
    - ScheduledReportRunner: Job CRUD, per-job timers, execution and run history
    - calculate_next_run: Next occurrence of a daily/weekly/monthly schedule
    - collect_report_data: Snapshot of aggregates, samples and alerts
    - ScheduledReportRepository: JSON persistence for job definitions
    - JsonReportRenderer: Default renderer writing snapshots as JSON
"""

from .report_collector import collect_report_data, estimate_file_size
from .report_store import JsonReportRenderer, ScheduledReportRepository
from .schedule import calculate_next_run, get_lookback_days, local_now
from .scheduled_reports import (
    DEFAULT_SCHEDULED_REPORT_TEMPLATES,
    ReportRenderer,
    ScheduledReportRunner,
)
from .schemas import (
    DateRange,
    ReportConfig,
    ReportData,
    ReportFormat,
    ReportFrequency,
    ReportSchedule,
    ReportSections,
    RunStatus,
    ScheduledReport,
    ScheduledReportCreate,
    ScheduledReportRun,
    ScheduledReportUpdate,
)

__all__ = [
    "ScheduledReportRunner",
    "ReportRenderer",
    "DEFAULT_SCHEDULED_REPORT_TEMPLATES",
    "ScheduledReportRepository",
    "JsonReportRenderer",
    "calculate_next_run",
    "get_lookback_days",
    "local_now",
    "collect_report_data",
    "estimate_file_size",
    "DateRange",
    "ReportConfig",
    "ReportData",
    "ReportFormat",
    "ReportFrequency",
    "ReportSchedule",
    "ReportSections",
    "RunStatus",
    "ScheduledReport",
    "ScheduledReportCreate",
    "ScheduledReportRun",
    "ScheduledReportUpdate",
]
