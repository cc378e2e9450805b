"""
Next-run computation for report schedules.

``next_run_at`` is a pure function of its arguments: it never reads the
clock, so callers pass ``now`` explicitly.
"""

import calendar
import re
from datetime import datetime, timedelta
from typing import Optional, Tuple, Union

from backend.modules.reports.report_errors import ScheduleValidationError
from backend.modules.reports.report_models import ScheduleFrequency

_TIME_PATTERN = re.compile(r"^(\d{2}):(\d{2})$")


def parse_time(value: str) -> Tuple[int, int]:
    """Parse "HH:MM" into (hour, minute)."""
    match = _TIME_PATTERN.match(value or "") if isinstance(value, str) else None
    if not match:
        raise ScheduleValidationError(f"Invalid time '{value}', expected HH:MM", field="time")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ScheduleValidationError(f"Invalid time '{value}', expected HH:MM", field="time")
    return hour, minute


def _frequency(value: Union[str, ScheduleFrequency]) -> ScheduleFrequency:
    try:
        return ScheduleFrequency(value)
    except ValueError:
        raise ScheduleValidationError(f"Unsupported frequency '{value}'", field="frequency")


def _clamped(year: int, month: int, day: int, hour: int, minute: int, tzinfo=None) -> datetime:
    last_day = calendar.monthrange(year, month)[1]
    return datetime(year, month, min(day, last_day), hour, minute, tzinfo=tzinfo)


def next_run_at(
    frequency: Union[str, ScheduleFrequency],
    day_of_week: Optional[int],
    day_of_month: Optional[int],
    time: str,
    now: datetime,
) -> datetime:
    """
    Return the first run time strictly after ``now``.

    day_of_week counts from 0=Sunday to 6=Saturday. A monthly day past the
    end of a short month runs on that month's last day.
    """
    freq = _frequency(frequency)
    hour, minute = parse_time(time)

    if freq is ScheduleFrequency.DAILY:
        candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    if freq is ScheduleFrequency.WEEKLY:
        if day_of_week is None:
            raise ScheduleValidationError("dayOfWeek is required for weekly schedules", field="dayOfWeek")
        if isinstance(day_of_week, bool) or not isinstance(day_of_week, int) or not 0 <= day_of_week <= 6:
            raise ScheduleValidationError("dayOfWeek must be between 0 (Sunday) and 6 (Saturday)", field="dayOfWeek")
        # datetime.weekday() is 0=Monday, shift to 0=Sunday
        today = (now.weekday() + 1) % 7
        days_ahead = (day_of_week - today) % 7
        candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0) + timedelta(days=days_ahead)
        if candidate <= now:
            candidate += timedelta(days=7)
        return candidate

    if day_of_month is None:
        raise ScheduleValidationError("dayOfMonth is required for monthly schedules", field="dayOfMonth")
    if isinstance(day_of_month, bool) or not isinstance(day_of_month, int) or not 1 <= day_of_month <= 31:
        raise ScheduleValidationError("dayOfMonth must be between 1 and 31", field="dayOfMonth")

    candidate = _clamped(now.year, now.month, day_of_month, hour, minute, now.tzinfo)
    if candidate <= now:
        year, month = (now.year + 1, 1) if now.month == 12 else (now.year, now.month + 1)
        candidate = _clamped(year, month, day_of_month, hour, minute, now.tzinfo)
    return candidate
