"""Session lifecycle manager: the single writer of activities and sessions."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Callable, Iterable, Optional, Sequence

from . import db
from .errors import ConflictError, InvalidStateError, ValidationError
from .models import DEFAULT_COLOR, RATING_RANGE, Activity, SessionGoal, TimeSession, normalize_color

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _require_text(value: Optional[str], what: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(f"{what} must not be empty")
    return cleaned


def _require_rating(value: int, what: str) -> int:
    if value not in RATING_RANGE:
        raise ValidationError(
            f"{what} must be between {RATING_RANGE.start} and {RATING_RANGE.stop - 1}, got {value}"
        )
    return value


class SessionManager:
    """Applies lifecycle operations to the session store.

    Every mutating call runs in one SQLite transaction and either applies all
    of its effect or raises and applies nothing. At most one session is ever
    running: :meth:`start_session` checks for a running session inside the
    same transaction that inserts the new one.
    """

    def __init__(self, conn: sqlite3.Connection, clock: Clock = datetime.now) -> None:
        self._conn = conn
        self._clock = clock

    # Queries

    def list_activities(self) -> list[Activity]:
        return sorted(db.load_activities(self._conn), key=lambda a: (a.name.casefold(), a.id))

    def list_sessions(self) -> list[TimeSession]:
        return db.load_sessions(self._conn)

    def get_activity(self, activity_id: int) -> Activity:
        row = db.fetch_activity(self._conn, activity_id)
        if row is None:
            raise InvalidStateError(f"Activity {activity_id} does not exist")
        return db.row_to_activity(row)

    def get_session(self, session_id: int) -> TimeSession:
        row = db.fetch_session(self._conn, session_id)
        if row is None:
            raise InvalidStateError(f"Session {session_id} does not exist")
        activities: dict[int, Activity] = {}
        if row["activity_id"] is not None:
            activities[row["activity_id"]] = self.get_activity(row["activity_id"])
        goals = [db.row_to_goal(goal) for goal in db.fetch_goals(self._conn, session_id)]
        return db.row_to_session(row, activities, goals)

    def get_goal(self, goal_id: int) -> SessionGoal:
        row = db.fetch_goal(self._conn, goal_id)
        if row is None:
            raise InvalidStateError(f"Goal {goal_id} does not exist")
        return db.row_to_goal(row)

    def active_session(self) -> Optional[TimeSession]:
        running = db.fetch_running_session_ids(self._conn)
        if not running:
            return None
        return self.get_session(running[0])

    # Activities

    def create_activity(self, name: str, color: str = DEFAULT_COLOR) -> Activity:
        cleaned = _require_text(name, "Activity name")
        hex_color = normalize_color(color)
        with db.transaction(self._conn):
            activity_id = db.insert_activity(self._conn, cleaned, hex_color)
        logger.info("Created activity %d (%s)", activity_id, cleaned)
        return Activity(id=activity_id, name=cleaned, color=hex_color)

    def rename_activity(self, activity: Activity, new_name: str, new_color: str) -> Activity:
        """Update an activity and resync the snapshot fields of its sessions."""
        cleaned = _require_text(new_name, "Activity name")
        hex_color = normalize_color(new_color)
        activity_id = self._saved_id(activity, "Activity")
        with db.transaction(self._conn):
            try:
                db.update_activity(self._conn, activity_id, name=cleaned, color=hex_color)
            except ValueError as exc:
                raise InvalidStateError(f"Activity {activity_id} was deleted") from exc
            synced = self._sync_dependents(activity_id, cleaned, hex_color)
        activity.name = cleaned
        activity.color = hex_color
        logger.info("Renamed activity %d to %s; synced %d sessions", activity_id, cleaned, synced)
        return activity

    def delete_activity(self, activity: Activity) -> int:
        """Delete an activity, keeping its sessions with the reference cleared.

        Returns the number of sessions that were detached.
        """
        activity_id = self._saved_id(activity, "Activity")
        with db.transaction(self._conn):
            detached = db.detach_sessions(self._conn, activity_id)
            try:
                db.delete_activity(self._conn, activity_id)
            except ValueError as exc:
                raise InvalidStateError(f"Activity {activity_id} was already deleted") from exc
        logger.info("Deleted activity %d; detached %d sessions", activity_id, detached)
        return detached

    def delete_session_history(self, activity: Activity) -> int:
        """Delete every session referencing ``activity``. The activity is kept."""
        activity_id = self._saved_id(activity, "Activity")
        with db.transaction(self._conn):
            session_ids = db.fetch_session_ids_for_activity(self._conn, activity_id)
            deleted = db.delete_sessions(self._conn, session_ids)
        logger.info("Deleted %d sessions of activity %d", deleted, activity_id)
        return deleted

    def _sync_dependents(self, activity_id: int, name: str, color: str) -> int:
        return db.sync_session_snapshots(self._conn, activity_id, name=name, color=color)

    # Sessions

    def start_session(self, activity: Activity, goal_texts: Sequence[str] = ()) -> TimeSession:
        activity_id = self._saved_id(activity, "Activity")
        texts = [_require_text(text, "Goal text") for text in goal_texts]
        with db.transaction(self._conn):
            running = db.fetch_running_session_ids(self._conn)
            if running:
                raise ConflictError(
                    f"Session {running[0]} is still running; stop the current session first"
                )
            row = db.fetch_activity(self._conn, activity_id)
            if row is None:
                raise InvalidStateError(f"Activity {activity_id} was deleted")
            current = db.row_to_activity(row)
            start_time = self._clock()
            session_id = db.insert_session(
                self._conn,
                activity_id=activity_id,
                start_time=start_time,
                saved_activity_name=current.name,
                saved_activity_color=current.color,
            )
            goal_ids = db.insert_goals(self._conn, session_id, ((text, False) for text in texts))
        activity.name = current.name
        activity.color = current.color
        logger.info("Started session %d for %s", session_id, current.name)
        goals = [
            SessionGoal(id=goal_id, session_id=session_id, text=text, position=index)
            for index, (goal_id, text) in enumerate(zip(goal_ids, texts))
        ]
        return TimeSession(
            id=session_id,
            activity=activity,
            start_time=start_time,
            saved_activity_name=current.name,
            saved_activity_color=current.color,
            goals=goals,
        )

    def end_session(self, session: TimeSession) -> TimeSession:
        session_id = self._saved_id(session, "Session")
        with db.transaction(self._conn):
            if db.fetch_session(self._conn, session_id) is None:
                raise InvalidStateError(f"Session {session_id} was deleted")
            end_time = self._clock()
            if not db.close_session(self._conn, session_id, end_time):
                raise InvalidStateError(f"Session {session_id} has already ended")
        session.end_time = end_time
        logger.info("Ended session %d", session_id)
        return session

    def finish_session(
        self,
        session: TimeSession,
        accomplishments: Sequence[str] = (),
        *,
        productivity_rating: Optional[int] = None,
        distraction_rating: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> TimeSession:
        """End a session together with its accomplishments and review.

        Everything is written in one transaction, so a failure leaves the
        session running and untouched.
        """
        session_id = self._saved_id(session, "Session")
        texts = [_require_text(text, "Accomplishment") for text in accomplishments]
        if productivity_rating is not None:
            _require_rating(productivity_rating, "Productivity rating")
        if distraction_rating is not None:
            _require_rating(distraction_rating, "Distraction rating")
        review: dict[str, object] = {
            "productivity_rating": productivity_rating,
            "distraction_rating": distraction_rating,
        }
        if notes is not None:
            review["notes"] = notes
        with db.transaction(self._conn):
            if db.fetch_session(self._conn, session_id) is None:
                raise InvalidStateError(f"Session {session_id} was deleted")
            goal_ids = db.insert_goals(self._conn, session_id, ((text, True) for text in texts))
            end_time = self._clock()
            if not db.close_session(self._conn, session_id, end_time):
                raise InvalidStateError(f"Session {session_id} has already ended")
            db.update_session_review(self._conn, session_id, **review)
            added = [db.row_to_goal(db.fetch_goal(self._conn, goal_id)) for goal_id in goal_ids]
        session.goals.extend(added)
        session.end_time = end_time
        if productivity_rating is not None:
            session.productivity_rating = productivity_rating
        if distraction_rating is not None:
            session.distraction_rating = distraction_rating
        if notes is not None:
            session.notes = notes
        logger.info("Finished session %d with %d accomplishments", session_id, len(added))
        return session

    def add_accomplishment(self, session: TimeSession, text: str) -> SessionGoal:
        cleaned = _require_text(text, "Accomplishment")
        session_id = self._saved_id(session, "Session")
        with db.transaction(self._conn):
            if db.fetch_session(self._conn, session_id) is None:
                raise InvalidStateError(f"Session {session_id} was deleted")
            (goal_id,) = db.insert_goals(self._conn, session_id, [(cleaned, True)])
            goal = db.row_to_goal(db.fetch_goal(self._conn, goal_id))
        session.goals.append(goal)
        logger.debug("Added accomplishment %d to session %d", goal_id, session_id)
        return goal

    def set_goal_completed(self, goal: SessionGoal, completed: bool) -> SessionGoal:
        goal_id = self._saved_id(goal, "Goal")
        with db.transaction(self._conn):
            try:
                db.update_goal_completed(self._conn, goal_id, completed)
            except ValueError as exc:
                raise InvalidStateError(f"Goal {goal_id} was deleted") from exc
        goal.is_completed = completed
        logger.debug("Goal %d completed=%s", goal_id, completed)
        return goal

    def toggle_goal(self, goal: SessionGoal) -> SessionGoal:
        return self.set_goal_completed(goal, not goal.is_completed)

    def update_review(
        self,
        session: TimeSession,
        *,
        productivity_rating: Optional[int] = None,
        distraction_rating: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> TimeSession:
        """Record the close-out ratings and notes; legal before or after ending."""
        session_id = self._saved_id(session, "Session")
        if productivity_rating is not None:
            _require_rating(productivity_rating, "Productivity rating")
        if distraction_rating is not None:
            _require_rating(distraction_rating, "Distraction rating")
        updates: dict[str, object] = {
            "productivity_rating": productivity_rating,
            "distraction_rating": distraction_rating,
        }
        if notes is not None:
            updates["notes"] = notes
        with db.transaction(self._conn):
            try:
                db.update_session_review(self._conn, session_id, **updates)
            except ValueError as exc:
                raise InvalidStateError(f"Session {session_id} was deleted") from exc
        if productivity_rating is not None:
            session.productivity_rating = productivity_rating
        if distraction_rating is not None:
            session.distraction_rating = distraction_rating
        if notes is not None:
            session.notes = notes
        return session

    def delete_session(self, session: TimeSession) -> None:
        self.delete_sessions([session])

    def delete_sessions(self, sessions: Iterable[TimeSession]) -> int:
        session_ids = [self._saved_id(session, "Session") for session in sessions]
        with db.transaction(self._conn):
            deleted = db.delete_sessions(self._conn, session_ids)
            if deleted != len(set(session_ids)):
                raise InvalidStateError("One or more sessions were already deleted")
        logger.info("Deleted %d sessions", deleted)
        return deleted

    @staticmethod
    def _saved_id(entity: Activity | TimeSession | SessionGoal, what: str) -> int:
        if entity.id is None:
            raise InvalidStateError(f"{what} has not been saved")
        return entity.id
