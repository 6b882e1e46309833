"""Day and week boundary arithmetic shared by rollups and the timeline.

Instants are naive local datetimes. The week convention comes from one
process-wide :class:`~session_tracker.config.CalendarSettings`, so every
caller buckets with the same calendar.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Union

from .config import CalendarSettings

DayLike = Union[date, datetime]

_settings = CalendarSettings()


def get_calendar_settings() -> CalendarSettings:
    return _settings


def configure_calendar(settings: CalendarSettings) -> CalendarSettings:
    """Replace the process-wide calendar settings. Returns the previous value."""
    global _settings
    previous = _settings
    _settings = settings
    return previous


def _as_datetime(value: DayLike) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime(value.year, value.month, value.day)


def start_of_day(instant: DayLike) -> datetime:
    return _as_datetime(instant).replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(instant: DayLike) -> datetime:
    """Exclusive end of the day, i.e. midnight of the following day."""
    return start_of_day(instant) + timedelta(days=1)


def add_days(instant: DayLike, days: int) -> datetime:
    return _as_datetime(instant) + timedelta(days=days)


def start_of_week(instant: DayLike) -> datetime:
    day = start_of_day(instant)
    offset = (day.weekday() - _settings.week_start) % 7
    return day - timedelta(days=offset)


def day_bucket(instant: DayLike) -> date:
    if isinstance(instant, datetime):
        return instant.date()
    return instant


def days_between(a: DayLike, b: DayLike) -> int:
    """Signed number of calendar days from ``a`` to ``b``, ignoring time of day."""
    return (day_bucket(b) - day_bucket(a)).days


def minutes_between(a: datetime, b: datetime) -> float:
    return (b - a).total_seconds() / 60.0


def week_days(now: DayLike) -> list[date]:
    """The seven days of the week containing ``now``."""
    first = start_of_week(now)
    return [(first + timedelta(days=offset)).date() for offset in range(7)]


def days_around(day: DayLike, radius: int = 3) -> list[date]:
    center = day_bucket(day)
    return [center + timedelta(days=offset) for offset in range(-radius, radius + 1)]
