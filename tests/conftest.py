"""Shared test fixtures for session tracker tests."""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterator, Optional

import pytest

from session_tracker.bucketing import configure_calendar
from session_tracker.config import CalendarSettings
from session_tracker.db import database_connection
from session_tracker.lifecycle import SessionManager
from session_tracker.models import Activity, SessionGoal, TimeSession

# Wednesday; the Monday-anchored week starts on 2026-02-16.
NOW = datetime(2026, 2, 18, 15, 30)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = NOW) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current

    def set(self, value: datetime) -> datetime:
        self.current = value
        return value


def make_session(
    start: datetime,
    end: Optional[datetime] = None,
    *,
    activity: Optional[Activity] = None,
    name: str = "Reading",
    color: str = "#FF9500",
    goals: Optional[list[SessionGoal]] = None,
    notes: str = "",
) -> TimeSession:
    return TimeSession(
        start_time=start,
        end_time=end,
        activity=activity,
        saved_activity_name=activity.name if activity else name,
        saved_activity_color=activity.color if activity else color,
        goals=goals or [],
        notes=notes,
    )


@pytest.fixture(autouse=True)
def monday_calendar() -> Iterator[None]:
    previous = configure_calendar(CalendarSettings(week_start=0))
    yield
    configure_calendar(previous)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "sessions.sqlite3"


@pytest.fixture
def conn(db_path: Path):
    with database_connection(db_path) as connection:
        yield connection


@pytest.fixture
def manager(conn, clock: FakeClock) -> SessionManager:
    return SessionManager(conn, clock=clock)


@pytest.fixture
def reading(manager: SessionManager) -> Activity:
    return manager.create_activity("Reading", "#ff9500")


@pytest.fixture
def coding(manager: SessionManager) -> Activity:
    return manager.create_activity("Coding", "#34C759")
