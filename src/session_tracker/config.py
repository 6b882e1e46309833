"""Configuration models and helpers for the session tracker."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


@dataclass(slots=True, frozen=True)
class CalendarSettings:
    """Process-wide calendar convention used for day and week bucketing."""

    week_start: int = 0  # datetime.weekday(): Monday == 0

    def __post_init__(self) -> None:
        if not 0 <= self.week_start <= 6:
            raise ValueError(f"week_start must be between 0 and 6, got {self.week_start}")

    @classmethod
    def from_name(cls, name: str) -> "CalendarSettings":
        key = name.strip().lower()
        for index, weekday in enumerate(WEEKDAY_NAMES):
            if key and weekday.startswith(key):
                return cls(week_start=index)
        raise ValueError(f"Unknown weekday: {name!r}")


@dataclass(slots=True)
class DashboardSettings:
    """Refresh cadence and sizing for dashboard consumers."""

    elapsed_tick: timedelta = timedelta(seconds=1)
    timeline_tick: timedelta = timedelta(seconds=10)
    recent_limit: int = 8

    @classmethod
    def from_seconds(
        cls,
        elapsed_seconds: float,
        timeline_seconds: float | None = None,
        recent_limit: int | None = None,
    ) -> "DashboardSettings":
        timeline = timeline_seconds if timeline_seconds is not None else max(elapsed_seconds * 10, 10.0)
        return cls(
            elapsed_tick=timedelta(seconds=elapsed_seconds),
            timeline_tick=timedelta(seconds=timeline),
            recent_limit=recent_limit if recent_limit is not None else 8,
        )
