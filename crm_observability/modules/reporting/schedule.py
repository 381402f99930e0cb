"""Next-run computation for report schedules.

All functions are pure: ``now`` is always passed in and candidates keep its
timezone, so a schedule's "HH:mm" is interpreted in the caller's local time.
"""

import calendar
from datetime import datetime, timedelta
from typing import Dict

from .schemas import ReportFrequency, ReportSchedule

LOOKBACK_DAYS: Dict[str, int] = {
    ReportFrequency.DAILY.value: 1,
    ReportFrequency.WEEKLY.value: 7,
    ReportFrequency.MONTHLY.value: 30,
}

DAY_MS = 86_400_000


def local_now() -> datetime:
    """Current local time as an aware datetime."""
    return datetime.now().astimezone()


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(value: datetime) -> datetime:
    return value.replace(hour=23, minute=59, second=59, microsecond=999999)


def get_lookback_days(frequency: str) -> int:
    """Days of data covered by a run of the given frequency (default 1)."""
    return LOOKBACK_DAYS.get(frequency, 1)


def get_lookback_window_ms(frequency: str) -> int:
    return get_lookback_days(frequency) * DAY_MS


def _weekday_sunday_first(value: datetime) -> int:
    # datetime.weekday() is Monday=0; schedules use Sunday=0
    return (value.weekday() + 1) % 7


def _on_day_of_month(value: datetime, year: int, month: int, day: int) -> datetime:
    last_day = calendar.monthrange(year, month)[1]
    return value.replace(year=year, month=month, day=min(day, last_day))


def calculate_next_run(schedule: ReportSchedule, now: datetime) -> datetime:
    """Compute the next occurrence of a schedule strictly after ``now``.

    Args:
        schedule: Report schedule
        now: Reference time

    Returns:
        Next run time, in the timezone of ``now``

    Example:
        >>> monday_9am = datetime(2026, 10, 19, 9, 0)
        >>> calculate_next_run(ReportSchedule(frequency="weekly", time="08:00", day_of_week=1), monday_9am)
        datetime.datetime(2026, 10, 26, 8, 0)
    """
    hour, minute = schedule.hour_minute
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    frequency = schedule.frequency

    if frequency == ReportFrequency.WEEKLY.value:
        target = schedule.day_of_week if schedule.day_of_week is not None else 0
        days_ahead = (target - _weekday_sunday_first(candidate)) % 7
        if days_ahead == 0 and candidate <= now:
            days_ahead = 7
        return candidate + timedelta(days=days_ahead)

    if frequency == ReportFrequency.MONTHLY.value:
        day = schedule.day_of_month or 1
        candidate = _on_day_of_month(candidate, candidate.year, candidate.month, day)
        if candidate <= now:
            year, month = (candidate.year + 1, 1) if candidate.month == 12 else (candidate.year, candidate.month + 1)
            candidate = _on_day_of_month(candidate, year, month, day)
        return candidate

    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate
