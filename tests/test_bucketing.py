"""Tests for session_tracker.bucketing: day and week boundaries."""

from datetime import date, datetime

import pytest

from session_tracker.bucketing import (
    add_days,
    configure_calendar,
    day_bucket,
    days_around,
    days_between,
    end_of_day,
    get_calendar_settings,
    minutes_between,
    start_of_day,
    start_of_week,
    week_days,
)
from session_tracker.config import CalendarSettings


def test_start_and_end_of_day():
    instant = datetime(2026, 2, 18, 15, 30, 12, 500)
    assert start_of_day(instant) == datetime(2026, 2, 18)
    assert end_of_day(instant) == datetime(2026, 2, 19)
    assert start_of_day(date(2026, 2, 18)) == datetime(2026, 2, 18)


def test_end_of_day_crosses_month():
    assert end_of_day(datetime(2026, 2, 28, 23, 59)) == datetime(2026, 3, 1)


def test_start_of_week_is_monday_by_default():
    assert get_calendar_settings().week_start == 0
    assert start_of_week(datetime(2026, 2, 18, 15, 30)) == datetime(2026, 2, 16)
    assert start_of_week(datetime(2026, 2, 16, 0, 0)) == datetime(2026, 2, 16)
    assert start_of_week(datetime(2026, 2, 22, 23, 59)) == datetime(2026, 2, 16)


def test_start_of_week_follows_configured_calendar():
    configure_calendar(CalendarSettings.from_name("sun"))
    assert start_of_week(datetime(2026, 2, 18, 15, 30)) == datetime(2026, 2, 15)
    assert start_of_week(datetime(2026, 2, 15, 8, 0)) == datetime(2026, 2, 15)


def test_calendar_settings_rejects_unknown_weekday():
    with pytest.raises(ValueError):
        CalendarSettings.from_name("someday")
    with pytest.raises(ValueError):
        CalendarSettings(week_start=7)


def test_day_bucket_ignores_time_of_day():
    assert day_bucket(datetime(2026, 2, 18, 0, 0)) == day_bucket(datetime(2026, 2, 18, 23, 59))
    assert day_bucket(date(2026, 2, 18)) == date(2026, 2, 18)


def test_days_between_is_signed_and_calendar_based():
    late = datetime(2026, 2, 17, 23, 59)
    early = datetime(2026, 2, 18, 0, 1)
    assert days_between(late, early) == 1
    assert days_between(early, late) == -1
    assert days_between(early, datetime(2026, 2, 18, 22, 0)) == 0


def test_minutes_between():
    assert minutes_between(datetime(2026, 2, 18, 9, 0), datetime(2026, 2, 18, 9, 5)) == 5
    assert minutes_between(datetime(2026, 2, 18, 9, 0), datetime(2026, 2, 18, 9, 0, 30)) == 0.5


def test_add_days():
    assert add_days(date(2026, 3, 1), -1) == datetime(2026, 2, 28)


def test_week_days():
    days = week_days(datetime(2026, 2, 18, 12, 0))
    assert days[0] == date(2026, 2, 16)
    assert days[-1] == date(2026, 2, 22)
    assert len(days) == 7


def test_days_around():
    assert days_around(datetime(2026, 2, 18, 12, 0)) == [
        date(2026, 2, 15),
        date(2026, 2, 16),
        date(2026, 2, 17),
        date(2026, 2, 18),
        date(2026, 2, 19),
        date(2026, 2, 20),
        date(2026, 2, 21),
    ]
