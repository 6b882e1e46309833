"""Domain models for activities and tracked sessions."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

from .errors import ValidationError

DEFAULT_COLOR = "#007AFF"
DEFAULT_RATING = 5
RATING_RANGE = range(1, 11)

_HEX_PATTERN = re.compile(r"^#?([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


def normalize_color(value: str) -> str:
    """Return ``value`` as an upper-case ``#RRGGBB`` string."""
    match = _HEX_PATTERN.match(value.strip()) if value else None
    if not match:
        raise ValidationError(f"Invalid color {value!r}; expected #RRGGBB")
    digits = match.group(1)
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    return f"#{digits.upper()}"


def hex_to_rgb(value: str) -> tuple[int, int, int]:
    digits = normalize_color(value)[1:]
    return (int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16))


@dataclass(slots=True)
class Activity:
    """A named, colored category that time is tracked against."""

    name: str
    color: str = DEFAULT_COLOR
    id: Optional[int] = None

    @property
    def rgb(self) -> tuple[int, int, int]:
        return hex_to_rgb(self.color)


@dataclass(slots=True)
class SessionGoal:
    """A short objective attached to a session."""

    text: str
    is_completed: bool = False
    position: int = 0
    id: Optional[int] = None
    session_id: Optional[int] = None


@dataclass(slots=True)
class TimeSession:
    """One interval of tracked time.

    ``activity`` is a lookup reference only; the session keeps its own copy of
    the activity's name and color in the ``saved_activity_*`` fields so it can
    still be displayed after the activity is deleted.
    """

    start_time: datetime
    saved_activity_name: str
    saved_activity_color: str
    activity: Optional[Activity] = None
    end_time: Optional[datetime] = None
    goals: list[SessionGoal] = field(default_factory=list)
    productivity_rating: int = DEFAULT_RATING
    distraction_rating: int = DEFAULT_RATING
    notes: str = ""
    id: Optional[int] = None

    @property
    def is_running(self) -> bool:
        return self.end_time is None

    @property
    def display_title(self) -> str:
        if self.activity is not None:
            return self.activity.name
        return self.saved_activity_name

    @property
    def display_color(self) -> str:
        if self.activity is not None:
            return self.activity.color
        return self.saved_activity_color

    @property
    def goal_progress(self) -> tuple[int, int]:
        completed = sum(1 for goal in self.goals if goal.is_completed)
        return completed, len(self.goals)

    def effective_end(self, now: datetime) -> datetime:
        return self.end_time if self.end_time is not None else now

    def duration(self, now: datetime) -> timedelta:
        return self.effective_end(now) - self.start_time
