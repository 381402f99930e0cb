"""Schemas for scheduled report jobs, their runs and the collected report data."""

import re
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import Field, field_validator

from crm_observability.modules.observability.dashboard.alert_manager import Alert
from crm_observability.modules.observability.metrics.schemas import (
    APIMetric,
    APIStats,
    CacheStats,
    EndpointStats,
    ErrorMetric,
    PerformanceMetric,
    SystemHealth,
)
from crm_observability.types import ConfiguredBaseModel

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class ReportFrequency(str, Enum):
    """How often a scheduled report runs."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class ReportFormat(str, Enum):
    """Output format requested from the renderer."""

    PDF = "pdf"
    EXCEL = "excel"


class RunStatus(str, Enum):
    """Scheduled report run states."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class DateRange(ConfiguredBaseModel):
    """Inclusive reporting period."""

    start: datetime
    end: datetime


class ReportSections(ConfiguredBaseModel):
    """Sections included in a rendered report."""

    overview: bool = True
    api: bool = True
    cache: bool = True
    performance: bool = True
    alerts: bool = True
    errors: bool = True

    def enabled_count(self) -> int:
        return sum(1 for enabled in self.model_dump().values() if enabled)


class ReportConfig(ConfiguredBaseModel):
    """Rendering options handed to the report renderer.

    Attributes:
        title: Report title
        date_range: Reporting period, filled in at execution time
        include_charts: Whether the renderer should draw charts
        include_details: Whether to include raw event tables
        format: pdf or excel
        sections: Sections to include
    """

    title: str
    date_range: Optional[DateRange] = None
    include_charts: bool = True
    include_details: bool = False
    format: ReportFormat = ReportFormat.PDF
    sections: ReportSections = Field(default_factory=ReportSections)


class ReportSchedule(ConfiguredBaseModel):
    """Recurrence of a scheduled report.

    Attributes:
        frequency: daily, weekly or monthly
        time: Local time of day as "HH:mm"
        day_of_week: 0-6 with 0 = Sunday, used by weekly schedules (default Sunday)
        day_of_month: 1-31, used by monthly schedules (default 1); clamps to
            the last day of shorter months
    """

    frequency: ReportFrequency
    time: str
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)

    @field_validator("time")
    @classmethod
    def _validate_time(cls, value: str) -> str:
        if not TIME_PATTERN.match(value):
            raise ValueError(f"time must be HH:mm, got {value!r}")
        return value

    @property
    def hour_minute(self) -> Tuple[int, int]:
        hours, minutes = self.time.split(":")
        return int(hours), int(minutes)


class ScheduledReportCreate(ConfiguredBaseModel):
    """Fields supplied by an operator when creating a scheduled report."""

    name: str
    description: str = ""
    config: ReportConfig
    schedule: ReportSchedule
    recipients: List[str] = Field(default_factory=list)
    enabled: bool = True
    created_by: str


class ScheduledReportUpdate(ConfiguredBaseModel):
    """Partial update of a scheduled report; unset fields are left unchanged."""

    name: Optional[str] = None
    description: Optional[str] = None
    config: Optional[ReportConfig] = None
    schedule: Optional[ReportSchedule] = None
    recipients: Optional[List[str]] = None
    enabled: Optional[bool] = None


class ScheduledReport(ConfiguredBaseModel):
    """Recurring report job definition. ``next_run`` is always derived."""

    id: str
    name: str
    description: str = ""
    config: ReportConfig
    schedule: ReportSchedule
    recipients: List[str] = Field(default_factory=list)
    enabled: bool = True
    last_run: Optional[datetime] = None
    next_run: Optional[datetime] = None
    created_at: datetime
    created_by: str


class ScheduledReportRun(ConfiguredBaseModel):
    """One execution of a scheduled report."""

    id: str
    report_id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    status: RunStatus = RunStatus.RUNNING
    error: Optional[str] = None
    file_path: Optional[str] = None
    file_size: Optional[int] = None


class ReportOverview(ConfiguredBaseModel):
    total_requests: int = 0
    avg_response_time: float = 0.0
    error_rate: float = 0.0
    cache_hit_rate: float = 0.0
    uptime: float = 0.0
    critical_alerts: int = 0


class ReportAPISection(ConfiguredBaseModel):
    stats: APIStats
    endpoints: List[EndpointStats] = Field(default_factory=list)
    recent: List[APIMetric] = Field(default_factory=list)


class ReportCacheSection(ConfiguredBaseModel):
    stats: CacheStats
    operations: Dict[str, int] = Field(default_factory=dict)


class ReportPerformanceSection(ConfiguredBaseModel):
    metrics: List[PerformanceMetric] = Field(default_factory=list)
    web_vitals: Dict[str, float] = Field(default_factory=dict)


class ReportAlertsSection(ConfiguredBaseModel):
    total: int = 0
    critical: int = 0
    recent: List[Alert] = Field(default_factory=list)


class ReportErrorsSection(ConfiguredBaseModel):
    total: int = 0
    recent: List[ErrorMetric] = Field(default_factory=list)
    by_type: Dict[str, int] = Field(default_factory=dict)


class ReportMetadata(ConfiguredBaseModel):
    generated_at: datetime
    period: str
    total_data_points: int = 0


class ReportData(ConfiguredBaseModel):
    """Point-in-time snapshot handed to the renderer."""

    overview: ReportOverview
    api: ReportAPISection
    cache: ReportCacheSection
    performance: ReportPerformanceSection
    alerts: ReportAlertsSection
    errors: ReportErrorsSection
    health: SystemHealth
    metadata: ReportMetadata
