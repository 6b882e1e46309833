"""Command-line interface for the session tracker."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, List, Optional

import typer

from .bucketing import configure_calendar
from .config import CalendarSettings, DashboardSettings
from .db import database_connection
from .errors import InvalidStateError, TrackerError
from .lifecycle import SessionManager
from .models import DEFAULT_COLOR, Activity
from .paths import resolve_db_path
from .rollups import (
    active_session,
    current_streak,
    days_tracked_this_week,
    format_duration,
    format_elapsed,
    group_by_day,
    previous_notes,
    recent_sessions,
    total_sessions_this_week,
    week_grid,
)
from .server_runner import run_dashboard
from .timeline import layout_day

app = typer.Typer(help="Track focused sessions against your activities.")
activity_app = typer.Typer(help="Manage activities.")
app.add_typer(activity_app, name="activity")


def _db_option() -> Any:
    return typer.Option(
        None,
        "--db",
        path_type=Path,
        help="Location of the session SQLite database.",
    )


@app.callback(no_args_is_help=True)
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs."),
    week_start: str = typer.Option(
        "monday", "--week-start", help="First day of the week for weekly stats."
    ),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    try:
        configure_calendar(CalendarSettings.from_name(week_start))
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--week-start") from exc


@contextmanager
def _session_manager(db_path: Optional[Path]) -> Iterator[SessionManager]:
    with database_connection(resolve_db_path(db_path)) as conn:
        try:
            yield SessionManager(conn)
        except TrackerError as exc:
            typer.echo(f"Error: {exc}", err=True)
            raise typer.Exit(code=1) from exc


def _resolve_activity(manager: SessionManager, ref: str) -> Activity:
    if ref.isdigit():
        return manager.get_activity(int(ref))
    matches = [a for a in manager.list_activities() if a.name.casefold() == ref.strip().casefold()]
    if not matches:
        raise InvalidStateError(f"No activity named {ref!r}")
    if len(matches) > 1:
        ids = ", ".join(str(a.id) for a in matches)
        raise InvalidStateError(f"Several activities are named {ref!r}; use an id ({ids})")
    return matches[0]


@activity_app.command("add")
def activity_add(
    name: str = typer.Argument(..., help="Activity name."),
    color: str = typer.Option(DEFAULT_COLOR, "--color", "-c", help="Hex color, e.g. #FF9500."),
    db_path: Optional[Path] = _db_option(),
) -> None:
    """Create a new activity."""
    with _session_manager(db_path) as manager:
        existing = {a.name.casefold() for a in manager.list_activities()}
        activity = manager.create_activity(name, color)
        if activity.name.casefold() in existing:
            typer.echo(f"Note: another activity is already named {activity.name!r}.")
        typer.echo(f"Created activity {activity.id}: {activity.name} ({activity.color})")


@activity_app.command("list")
def activity_list(db_path: Optional[Path] = _db_option()) -> None:
    """List activities."""
    with _session_manager(db_path) as manager:
        activities = manager.list_activities()
        if not activities:
            typer.echo("No activities yet. Add one with `activity add`.")
            return
        for activity in activities:
            typer.echo(f"{activity.id:>4}  {activity.color}  {activity.name}")


@activity_app.command("rename")
def activity_rename(
    activity_ref: str = typer.Argument(..., help="Activity id or name."),
    new_name: str = typer.Argument(..., help="New activity name."),
    color: Optional[str] = typer.Option(None, "--color", "-c", help="New hex color."),
    db_path: Optional[Path] = _db_option(),
) -> None:
    """Rename or recolor an activity, updating its past sessions."""
    with _session_manager(db_path) as manager:
        activity = _resolve_activity(manager, activity_ref)
        manager.rename_activity(activity, new_name, color or activity.color)
        typer.echo(f"Activity {activity.id} is now {activity.name} ({activity.color})")


@activity_app.command("delete")
def activity_delete(
    activity_ref: str = typer.Argument(..., help="Activity id or name."),
    db_path: Optional[Path] = _db_option(),
) -> None:
    """Delete an activity. Its sessions are kept."""
    with _session_manager(db_path) as manager:
        activity = _resolve_activity(manager, activity_ref)
        detached = manager.delete_activity(activity)
        typer.echo(f"Deleted {activity.name}; kept {detached} sessions in history.")


@activity_app.command("clear-history")
def activity_clear_history(
    activity_ref: str = typer.Argument(..., help="Activity id or name."),
    db_path: Optional[Path] = _db_option(),
) -> None:
    """Delete every session recorded for an activity."""
    with _session_manager(db_path) as manager:
        activity = _resolve_activity(manager, activity_ref)
        deleted = manager.delete_session_history(activity)
        typer.echo(f"Deleted {deleted} sessions of {activity.name}.")


@app.command()
def start(
    activity_ref: str = typer.Argument(..., help="Activity id or name."),
    goals: Optional[List[str]] = typer.Option(
        None, "--goal", "-g", help="Goal for this session; repeat for several."
    ),
    db_path: Optional[Path] = _db_option(),
) -> None:
    """Start a session. Fails while another session is running."""
    with _session_manager(db_path) as manager:
        activity = _resolve_activity(manager, activity_ref)
        notes = previous_notes(manager.list_sessions(), activity)
        session = manager.start_session(activity, goals or [])
        typer.echo(f"Started {session.display_title} at {session.start_time:%H:%M}.")
        if notes:
            typer.echo(f"Notes from last time: {notes}")
        for goal in session.goals:
            typer.echo(f"  [ ] {goal.text}")


@app.command()
def stop(
    productivity: Optional[int] = typer.Option(
        None, "--productivity", "-p", min=1, max=10, help="Productivity rating (1-10)."
    ),
    distraction: Optional[int] = typer.Option(
        None, "--distraction", "-d", min=1, max=10, help="Distraction rating (1-10)."
    ),
    notes: Optional[str] = typer.Option(None, "--notes", "-n", help="Notes for next time."),
    done: Optional[List[str]] = typer.Option(
        None, "--done", help="Something else you accomplished; repeat for several."
    ),
    db_path: Optional[Path] = _db_option(),
) -> None:
    """End the running session and record the review."""
    with _session_manager(db_path) as manager:
        session = manager.active_session()
        if session is None:
            raise InvalidStateError("No session is running")
        manager.finish_session(
            session,
            done or [],
            productivity_rating=productivity,
            distraction_rating=distraction,
            notes=notes,
        )
        completed, total = session.goal_progress
        duration = session.duration(session.end_time).total_seconds()
        typer.echo(f"Stopped {session.display_title} after {format_duration(duration)}.")
        if total:
            typer.echo(f"Goals: {completed}/{total}")


@app.command()
def check(
    goal_id: int = typer.Argument(..., help="Goal id as shown by `status`."),
    db_path: Optional[Path] = _db_option(),
) -> None:
    """Toggle a goal between done and not done."""
    with _session_manager(db_path) as manager:
        goal = manager.toggle_goal(manager.get_goal(goal_id))
        mark = "x" if goal.is_completed else " "
        typer.echo(f"[{mark}] {goal.text}")


@app.command()
def status(db_path: Optional[Path] = _db_option()) -> None:
    """Show the running session."""
    now = datetime.now()
    with _session_manager(db_path) as manager:
        session = active_session(manager.list_sessions())
        if session is None:
            typer.echo("No session is running.")
            return
        elapsed = format_elapsed(session.duration(now).total_seconds())
        typer.echo(f"{session.display_title}: in progress, {elapsed}")
        for goal in session.goals:
            mark = "x" if goal.is_completed else " "
            typer.echo(f"  {goal.id:>4} [{mark}] {goal.text}")


@app.command()
def stats(db_path: Optional[Path] = _db_option()) -> None:
    """Print the streak and this week's activity."""
    now = datetime.now()
    with _session_manager(db_path) as manager:
        sessions = manager.list_sessions()
    typer.echo(f"Day streak:  {current_streak(sessions, now)}")
    typer.echo(f"This week:   {days_tracked_this_week(sessions, now)}/7 days")
    typer.echo(f"Sessions:    {total_sessions_this_week(sessions, now)}")
    cells = []
    for entry in week_grid(sessions, now):
        cell = "#" if entry.has_session else "."
        cells.append(f"{entry.day:%a}[{cell}]" if entry.is_today else f"{entry.day:%a} {cell} ")
    typer.echo(" ".join(cells))


@app.command()
def history(
    limit: int = typer.Option(
        DashboardSettings().recent_limit, "--limit", min=1, help="Number of sessions to show."
    ),
    db_path: Optional[Path] = _db_option(),
) -> None:
    """Show recent sessions grouped by day."""
    now = datetime.now()
    with _session_manager(db_path) as manager:
        sessions = recent_sessions(manager.list_sessions(), limit)
    if not sessions:
        typer.echo("No sessions yet.")
        return
    for label, group in group_by_day(sessions, now):
        typer.echo(label)
        for session in group:
            completed, total = session.goal_progress
            goals = f"  {completed}/{total} goals" if total else ""
            duration = format_duration(session.duration(now).total_seconds())
            typer.echo(
                f"  {session.start_time:%H:%M}  {session.display_title:<24} {duration:>8}{goals}"
            )


@app.command()
def timeline(
    date: Optional[str] = typer.Option(
        None,
        "--date",
        help="Date (YYYY-MM-DD) to lay out. Defaults to today.",
    ),
    db_path: Optional[Path] = _db_option(),
) -> None:
    """Print the sessions of a day with their position on the 24h axis."""
    now = datetime.now()
    day = datetime.strptime(date, "%Y-%m-%d") if date else now
    with _session_manager(db_path) as manager:
        blocks = layout_day(manager.list_sessions(), day, now)
    typer.echo(f"Timeline for {day:%Y-%m-%d}")
    if not blocks:
        typer.echo("No sessions on this day.")
        return
    for block in blocks:
        start = int(block.layout.offset_minutes)
        end = int(block.layout.bottom_minutes)
        running = " (running)" if block.session.is_running else ""
        typer.echo(
            f"  {start // 60:02d}:{start % 60:02d}-{end // 60:02d}:{end % 60:02d}"
            f"  {block.session.display_title}{running}"
        )


@app.command()
def web(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the API."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the API."
    ),
    db_path: Optional[Path] = _db_option(),
    elapsed_interval: float = typer.Option(
        1.0,
        "--elapsed-interval",
        min=0.1,
        help="Seconds between elapsed-time refreshes advertised to clients.",
    ),
    timeline_interval: Optional[float] = typer.Option(
        None,
        "--timeline-interval",
        min=1.0,
        help="Seconds between timeline refreshes (default: 10x the elapsed interval).",
    ),
    recent_limit: int = typer.Option(
        8, "--recent-limit", min=1, help="Recent sessions included in the dashboard."
    ),
    open_browser: bool = typer.Option(
        False,
        "--open-browser/--no-open-browser",
        help="Open the API docs in your default browser.",
    ),
) -> None:
    """Serve the JSON API."""
    run_dashboard(
        host=host,
        port=port,
        db_path=db_path,
        settings=DashboardSettings.from_seconds(
            elapsed_interval, timeline_interval, recent_limit
        ),
        open_browser=open_browser,
    )
