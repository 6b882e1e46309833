"""Lay out a day's sessions on a 1440-minute vertical axis.

Offsets and heights are minutes from midnight of the displayed day. A
session's interval is clipped to the day, and a running session ends at
``now``. Sessions that overlap each other are laid out independently.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable

from .bucketing import DayLike, days_around, end_of_day, minutes_between, start_of_day
from .models import TimeSession

MINUTES_PER_DAY = 24 * 60
# Keeps zero-length and very short sessions visible and selectable.
MIN_BLOCK_MINUTES = 2


@dataclass(slots=True, frozen=True)
class BlockLayout:
    offset_minutes: float
    height_minutes: float

    @property
    def bottom_minutes(self) -> float:
        return self.offset_minutes + self.height_minutes


@dataclass(slots=True, frozen=True)
class TimelineBlock:
    session: TimeSession
    layout: BlockLayout


def overlaps_day(session: TimeSession, day: DayLike, now: datetime) -> bool:
    return session.start_time < end_of_day(day) and session.effective_end(now) > start_of_day(day)


def sessions_overlapping_day(
    sessions: Iterable[TimeSession], day: DayLike, now: datetime
) -> list[TimeSession]:
    """Sessions with any time inside ``day``, ordered by start time."""
    overlapping = [session for session in sessions if overlaps_day(session, day, now)]
    overlapping.sort(key=lambda session: session.start_time)
    return overlapping


def layout(session: TimeSession, day: DayLike, now: datetime) -> BlockLayout:
    day_start = start_of_day(day)
    clipped_start = max(session.start_time, day_start)
    clipped_end = min(session.effective_end(now), end_of_day(day))
    return BlockLayout(
        offset_minutes=minutes_between(day_start, clipped_start),
        height_minutes=max(minutes_between(clipped_start, clipped_end), MIN_BLOCK_MINUTES),
    )


def layout_day(
    sessions: Iterable[TimeSession], day: DayLike, now: datetime
) -> list[TimelineBlock]:
    return [
        TimelineBlock(session=session, layout=layout(session, day, now))
        for session in sessions_overlapping_day(sessions, day, now)
    ]


def hour_marks() -> list[tuple[str, int]]:
    """Axis labels for every hour boundary, including the closing midnight."""
    return [(f"{hour % 24:02d}:00", hour * 60) for hour in range(25)]


def timeline_payload(
    sessions: Iterable[TimeSession], day: DayLike, now: datetime
) -> dict[str, Any]:
    return {
        "date": start_of_day(day).date().isoformat(),
        "minutes_per_day": MINUTES_PER_DAY,
        "hours": [{"label": label, "offset_minutes": offset} for label, offset in hour_marks()],
        "week_strip": [strip_day.isoformat() for strip_day in days_around(day)],
        "blocks": [
            {
                "session_id": block.session.id,
                "title": block.session.display_title,
                "color": block.session.display_color,
                "is_running": block.session.is_running,
                "offset_minutes": block.layout.offset_minutes,
                "height_minutes": block.layout.height_minutes,
            }
            for block in layout_day(sessions, day, now)
        ],
    }
