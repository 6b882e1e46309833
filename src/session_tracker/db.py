"""SQLite database layer for activities, sessions and goals."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterable, Iterator, Optional

from .models import Activity, SessionGoal, TimeSession


DATETIME_FMT = "%Y-%m-%d %H:%M:%S.%f"

_UNSET = object()


def open_database(path: Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    enable_foreign_keys(conn)
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Path, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run the enclosed statements as one write transaction."""
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


def enable_foreign_keys(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA foreign_keys = ON;")


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS activities (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            color TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS time_sessions (
            id INTEGER PRIMARY KEY,
            activity_id INTEGER REFERENCES activities(id) ON DELETE SET NULL,
            start_time TEXT NOT NULL,
            end_time TEXT,
            saved_activity_name TEXT NOT NULL,
            saved_activity_color TEXT NOT NULL,
            productivity_rating INTEGER NOT NULL DEFAULT 5,
            distraction_rating INTEGER NOT NULL DEFAULT 5,
            notes TEXT NOT NULL DEFAULT ''
        );

        CREATE TABLE IF NOT EXISTS session_goals (
            id INTEGER PRIMARY KEY,
            session_id INTEGER NOT NULL REFERENCES time_sessions(id) ON DELETE CASCADE,
            position INTEGER NOT NULL,
            text TEXT NOT NULL,
            is_completed INTEGER NOT NULL DEFAULT 0
        );

        CREATE INDEX IF NOT EXISTS idx_sessions_start_time
            ON time_sessions(start_time);
        CREATE INDEX IF NOT EXISTS idx_sessions_activity
            ON time_sessions(activity_id);
        CREATE INDEX IF NOT EXISTS idx_goals_session
            ON session_goals(session_id, position);
        """
    )


def format_datetime(value: datetime) -> str:
    return value.strftime(DATETIME_FMT)


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.strptime(value, DATETIME_FMT)


# Activities


def insert_activity(conn: sqlite3.Connection, name: str, color: str) -> int:
    cur = conn.execute(
        "INSERT INTO activities (name, color) VALUES (?, ?)",
        (name, color),
    )
    return int(cur.lastrowid)


def update_activity(
    conn: sqlite3.Connection, activity_id: int, *, name: str, color: str
) -> None:
    cur = conn.execute(
        "UPDATE activities SET name = ?, color = ? WHERE id = ?",
        (name, color, activity_id),
    )
    if cur.rowcount == 0:
        raise ValueError(f"No activity found for id={activity_id}")


def delete_activity(conn: sqlite3.Connection, activity_id: int) -> None:
    cur = conn.execute("DELETE FROM activities WHERE id = ?", (activity_id,))
    if cur.rowcount == 0:
        raise ValueError(f"No activity found for id={activity_id}")


def fetch_activity(conn: sqlite3.Connection, activity_id: int) -> Optional[sqlite3.Row]:
    return conn.execute(
        "SELECT id, name, color FROM activities WHERE id = ?", (activity_id,)
    ).fetchone()


def fetch_activities(conn: sqlite3.Connection) -> list[sqlite3.Row]:
    return list(conn.execute("SELECT id, name, color FROM activities ORDER BY id"))


# Sessions


def insert_session(
    conn: sqlite3.Connection,
    *,
    activity_id: int,
    start_time: datetime,
    saved_activity_name: str,
    saved_activity_color: str,
) -> int:
    cur = conn.execute(
        """
        INSERT INTO time_sessions (
            activity_id,
            start_time,
            saved_activity_name,
            saved_activity_color
        ) VALUES (?, ?, ?, ?)
        """,
        (
            activity_id,
            format_datetime(start_time),
            saved_activity_name,
            saved_activity_color,
        ),
    )
    return int(cur.lastrowid)


def fetch_running_session_ids(conn: sqlite3.Connection) -> list[int]:
    return [
        row["id"]
        for row in conn.execute("SELECT id FROM time_sessions WHERE end_time IS NULL")
    ]


def fetch_session(conn: sqlite3.Connection, session_id: int) -> Optional[sqlite3.Row]:
    return conn.execute(
        """
        SELECT
            id,
            activity_id,
            start_time,
            end_time,
            saved_activity_name,
            saved_activity_color,
            productivity_rating,
            distraction_rating,
            notes
        FROM time_sessions
        WHERE id = ?
        """,
        (session_id,),
    ).fetchone()


def close_session(conn: sqlite3.Connection, session_id: int, end_time: datetime) -> bool:
    """Set ``end_time`` on a running session. Returns False if it was not running."""
    cur = conn.execute(
        "UPDATE time_sessions SET end_time = ? WHERE id = ? AND end_time IS NULL",
        (format_datetime(end_time), session_id),
    )
    return cur.rowcount > 0


def update_session_review(
    conn: sqlite3.Connection,
    session_id: int,
    *,
    productivity_rating: Optional[int] = None,
    distraction_rating: Optional[int] = None,
    notes: object = _UNSET,
) -> None:
    """Update the review fields of a single session."""
    fields: list[str] = []
    params: list[object] = []

    if productivity_rating is not None:
        fields.append("productivity_rating = ?")
        params.append(productivity_rating)
    if distraction_rating is not None:
        fields.append("distraction_rating = ?")
        params.append(distraction_rating)
    if notes is not _UNSET:
        fields.append("notes = ?")
        params.append(notes)

    if not fields:
        return

    params.append(session_id)
    cur = conn.execute(
        f"UPDATE time_sessions SET {', '.join(fields)} WHERE id = ?",
        params,
    )
    if cur.rowcount == 0:
        raise ValueError(f"No session found for id={session_id}")


def sync_session_snapshots(
    conn: sqlite3.Connection, activity_id: int, *, name: str, color: str
) -> int:
    """Copy an activity's name and color onto every session still linked to it."""
    cur = conn.execute(
        """
        UPDATE time_sessions
        SET saved_activity_name = ?, saved_activity_color = ?
        WHERE activity_id = ?
        """,
        (name, color, activity_id),
    )
    return cur.rowcount


def detach_sessions(conn: sqlite3.Connection, activity_id: int) -> int:
    cur = conn.execute(
        "UPDATE time_sessions SET activity_id = NULL WHERE activity_id = ?",
        (activity_id,),
    )
    return cur.rowcount


def fetch_session_ids_for_activity(conn: sqlite3.Connection, activity_id: int) -> list[int]:
    return [
        row["id"]
        for row in conn.execute(
            "SELECT id FROM time_sessions WHERE activity_id = ?", (activity_id,)
        )
    ]


def delete_sessions(conn: sqlite3.Connection, session_ids: Iterable[int]) -> int:
    """Delete sessions and the goals they own."""
    ids = [(session_id,) for session_id in session_ids]
    if not ids:
        return 0
    conn.executemany("DELETE FROM session_goals WHERE session_id = ?", ids)
    cur = conn.executemany("DELETE FROM time_sessions WHERE id = ?", ids)
    return cur.rowcount


# Goals


def insert_goals(
    conn: sqlite3.Connection,
    session_id: int,
    goals: Iterable[tuple[str, bool]],
) -> list[int]:
    """Append goals to a session, preserving order. Returns the new ids."""
    row = conn.execute(
        "SELECT COALESCE(MAX(position), -1) AS last FROM session_goals WHERE session_id = ?",
        (session_id,),
    ).fetchone()
    position = int(row["last"]) + 1
    ids: list[int] = []
    for text, is_completed in goals:
        cur = conn.execute(
            """
            INSERT INTO session_goals (session_id, position, text, is_completed)
            VALUES (?, ?, ?, ?)
            """,
            (session_id, position, text, 1 if is_completed else 0),
        )
        ids.append(int(cur.lastrowid))
        position += 1
    return ids


def fetch_goal(conn: sqlite3.Connection, goal_id: int) -> Optional[sqlite3.Row]:
    return conn.execute(
        "SELECT id, session_id, position, text, is_completed FROM session_goals WHERE id = ?",
        (goal_id,),
    ).fetchone()


def fetch_goals(conn: sqlite3.Connection, session_id: Optional[int] = None) -> list[sqlite3.Row]:
    if session_id is None:
        return list(
            conn.execute(
                """
                SELECT id, session_id, position, text, is_completed
                FROM session_goals
                ORDER BY session_id, position
                """
            )
        )
    return list(
        conn.execute(
            """
            SELECT id, session_id, position, text, is_completed
            FROM session_goals
            WHERE session_id = ?
            ORDER BY position
            """,
            (session_id,),
        )
    )


def update_goal_completed(conn: sqlite3.Connection, goal_id: int, is_completed: bool) -> None:
    cur = conn.execute(
        "UPDATE session_goals SET is_completed = ? WHERE id = ?",
        (1 if is_completed else 0, goal_id),
    )
    if cur.rowcount == 0:
        raise ValueError(f"No goal found for id={goal_id}")


# Row conversion


def row_to_activity(row: sqlite3.Row) -> Activity:
    return Activity(id=row["id"], name=row["name"], color=row["color"])


def row_to_goal(row: sqlite3.Row) -> SessionGoal:
    return SessionGoal(
        id=row["id"],
        session_id=row["session_id"],
        position=row["position"],
        text=row["text"],
        is_completed=bool(row["is_completed"]),
    )


def row_to_session(
    row: sqlite3.Row,
    activities: dict[int, Activity],
    goals: Iterable[SessionGoal] = (),
) -> TimeSession:
    activity_id = row["activity_id"]
    return TimeSession(
        id=row["id"],
        activity=activities.get(activity_id) if activity_id is not None else None,
        start_time=parse_datetime(row["start_time"]),
        end_time=parse_datetime(row["end_time"]),
        saved_activity_name=row["saved_activity_name"],
        saved_activity_color=row["saved_activity_color"],
        productivity_rating=row["productivity_rating"],
        distraction_rating=row["distraction_rating"],
        notes=row["notes"],
        goals=list(goals),
    )


def load_activities(conn: sqlite3.Connection) -> list[Activity]:
    return [row_to_activity(row) for row in fetch_activities(conn)]


def load_sessions(conn: sqlite3.Connection) -> list[TimeSession]:
    """Load every session with its activity reference and goals resolved."""
    activities = {activity.id: activity for activity in load_activities(conn)}
    goals_by_session: dict[int, list[SessionGoal]] = {}
    for goal_row in fetch_goals(conn):
        goal = row_to_goal(goal_row)
        goals_by_session.setdefault(goal.session_id, []).append(goal)
    rows = conn.execute(
        """
        SELECT
            id,
            activity_id,
            start_time,
            end_time,
            saved_activity_name,
            saved_activity_color,
            productivity_rating,
            distraction_rating,
            notes
        FROM time_sessions
        ORDER BY id
        """
    )
    return [
        row_to_session(row, activities, goals_by_session.get(row["id"], ()))
        for row in rows
    ]
