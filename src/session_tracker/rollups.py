"""Streaks, weekly counts and history grouping over a set of sessions.

Every function here is a pure function of the sessions it is given and the
``now`` supplied by the caller. Input order is not assumed unless stated.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Optional, Sequence

from .bucketing import (
    DayLike,
    add_days,
    day_bucket,
    days_between,
    end_of_day,
    start_of_day,
    start_of_week,
    week_days,
)
from .models import Activity, TimeSession

RECENT_LIMIT = 8


def has_session_on_day(sessions: Iterable[TimeSession], day: DayLike) -> bool:
    """True if any session started within ``day``."""
    start = start_of_day(day)
    end = end_of_day(day)
    return any(start <= session.start_time < end for session in sessions)


def active_session(sessions: Iterable[TimeSession]) -> Optional[TimeSession]:
    return next((session for session in sessions if session.is_running), None)


def current_streak(sessions: Sequence[TimeSession], now: datetime) -> int:
    """Count consecutive days with a session, walking back from today.

    When today has no session and nothing is running, the walk starts from
    yesterday so an unfinished day does not break the streak. Returns 0 if
    the first day checked has no session.
    """
    started_days = {day_bucket(session.start_time) for session in sessions}
    check = day_bucket(now)
    if check not in started_days and active_session(sessions) is None:
        check = day_bucket(add_days(check, -1))
    streak = 0
    while check in started_days:
        streak += 1
        check = day_bucket(add_days(check, -1))
    return streak


def days_tracked_this_week(sessions: Sequence[TimeSession], now: datetime) -> int:
    today = day_bucket(now)
    started_days = {day_bucket(session.start_time) for session in sessions}
    return sum(1 for day in week_days(now) if day <= today and day in started_days)


def total_sessions_this_week(sessions: Iterable[TimeSession], now: datetime) -> int:
    start = start_of_week(now)
    end = end_of_day(now)
    return sum(1 for session in sessions if start <= session.start_time < end)


def day_label(instant: datetime, now: datetime) -> str:
    offset = days_between(instant, now)
    if offset == 0:
        return "Today"
    if offset == 1:
        return "Yesterday"
    day = day_bucket(instant)
    return f"{day:%A}, {day:%b} {day.day}"


def group_by_day(
    sessions: Sequence[TimeSession], now: datetime
) -> list[tuple[str, list[TimeSession]]]:
    """Split already-sorted sessions into consecutive runs sharing a day label.

    Runs are never merged, so a label can repeat if the input is not sorted.
    """
    groups: list[tuple[str, list[TimeSession]]] = []
    for session in sessions:
        label = day_label(session.start_time, now)
        if groups and groups[-1][0] == label:
            groups[-1][1].append(session)
        else:
            groups.append((label, [session]))
    return groups


def recent_sessions(sessions: Iterable[TimeSession], limit: int = RECENT_LIMIT) -> list[TimeSession]:
    """Closed sessions, newest first."""
    closed = [session for session in sessions if not session.is_running]
    closed.sort(key=lambda session: session.start_time, reverse=True)
    return closed[:limit]


@dataclass(slots=True)
class WeekDay:
    day: date
    has_session: bool
    is_today: bool


def week_grid(sessions: Sequence[TimeSession], now: datetime) -> list[WeekDay]:
    started_days = {day_bucket(session.start_time) for session in sessions}
    today = day_bucket(now)
    return [
        WeekDay(day=day, has_session=day in started_days, is_today=day == today)
        for day in week_days(now)
    ]


def previous_notes(sessions: Iterable[TimeSession], activity: Activity) -> Optional[str]:
    """Notes left on the activity's most recent session, if any."""
    own = [
        session
        for session in sessions
        if session.activity is not None and session.activity.id == activity.id
    ]
    if not own:
        return None
    latest = max(own, key=lambda session: session.start_time)
    cleaned = latest.notes.strip()
    return cleaned or None


def rating_band(rating: int) -> str:
    if rating < 4:
        return "low"
    if rating < 7:
        return "medium"
    return "high"


def format_elapsed(seconds: float) -> str:
    total_seconds = max(int(seconds), 0)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def format_duration(seconds: float) -> str:
    total_seconds = max(int(seconds), 0)
    hours, remainder = divmod(total_seconds, 3600)
    minutes = remainder // 60
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def session_payload(session: TimeSession, now: datetime) -> dict[str, Any]:
    completed, total = session.goal_progress
    duration = session.duration(now).total_seconds()
    return {
        "id": session.id,
        "activity_id": session.activity.id if session.activity is not None else None,
        "title": session.display_title,
        "color": session.display_color,
        "start_time": session.start_time.isoformat(),
        "end_time": session.end_time.isoformat() if session.end_time else None,
        "is_running": session.is_running,
        "duration_seconds": duration,
        "duration": format_duration(duration),
        "productivity_rating": session.productivity_rating,
        "distraction_rating": session.distraction_rating,
        "productivity_band": rating_band(session.productivity_rating),
        "distraction_band": rating_band(session.distraction_rating),
        "notes": session.notes,
        "goals": [
            {"id": goal.id, "text": goal.text, "is_completed": goal.is_completed}
            for goal in session.goals
        ],
        "goals_completed": completed,
        "goals_total": total,
    }


def dashboard_summary(
    sessions: Sequence[TimeSession], now: datetime, recent_limit: int = RECENT_LIMIT
) -> dict[str, Any]:
    """Everything the dashboard shows, computed for ``now``."""
    active = active_session(sessions)
    active_payload: Optional[dict[str, Any]] = None
    if active is not None:
        active_payload = session_payload(active, now)
        active_payload["elapsed"] = format_elapsed(active.duration(now).total_seconds())
    return {
        "now": now.isoformat(),
        "active_session": active_payload,
        "streak": current_streak(sessions, now),
        "days_tracked_this_week": days_tracked_this_week(sessions, now),
        "sessions_this_week": total_sessions_this_week(sessions, now),
        "week": [
            {
                "date": entry.day.isoformat(),
                "weekday": f"{entry.day:%a}",
                "has_session": entry.has_session,
                "is_today": entry.is_today,
            }
            for entry in week_grid(sessions, now)
        ],
        "recent": [
            {
                "label": label,
                "sessions": [session_payload(session, now) for session in group],
            }
            for label, group in group_by_day(recent_sessions(sessions, recent_limit), now)
        ],
    }
