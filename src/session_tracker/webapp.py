"""FastAPI application exposing the session tracker as a local JSON API."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict

from .bucketing import get_calendar_settings, start_of_day
from .config import WEEKDAY_NAMES, DashboardSettings
from .db import database_connection
from .errors import ConflictError, InvalidStateError, TrackerError, ValidationError
from .lifecycle import SessionManager
from .models import DEFAULT_COLOR, Activity
from .paths import resolve_db_path
from .rollups import dashboard_summary, previous_notes, session_payload
from .timeline import timeline_payload

logger = logging.getLogger(__name__)


class ActivityCreate(BaseModel):
    name: str
    color: str = DEFAULT_COLOR

    model_config = ConfigDict(extra="forbid")


class ActivityUpdate(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class SessionStart(BaseModel):
    activity_id: int
    goals: List[str] = []

    model_config = ConfigDict(extra="forbid")


class SessionReview(BaseModel):
    productivity_rating: Optional[int] = None
    distraction_rating: Optional[int] = None
    notes: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class SessionFinish(BaseModel):
    accomplishments: List[str] = []
    productivity_rating: Optional[int] = None
    distraction_rating: Optional[int] = None
    notes: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class AccomplishmentCreate(BaseModel):
    text: str

    model_config = ConfigDict(extra="forbid")


class GoalUpdate(BaseModel):
    is_completed: bool

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    db_path: Optional[Path] = None,
    settings: Optional[DashboardSettings] = None,
    clock: Callable[[], datetime] = datetime.now,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    resolved_db_path = resolve_db_path(db_path)
    resolved_settings = settings or DashboardSettings()

    app = FastAPI(title="Session Tracker", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.db_path = resolved_db_path

    @app.on_event("startup")
    async def _startup() -> None:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
        logger.info("Serving sessions from %s", resolved_db_path)

    @contextmanager
    def session_manager(request: Request) -> Iterator[SessionManager]:
        with database_connection(request.app.state.db_path, check_same_thread=False) as conn:
            with _translate_errors():
                yield SessionManager(conn, clock=clock)

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        return {
            "database_path": str(request.app.state.db_path),
            "week_start": WEEKDAY_NAMES[get_calendar_settings().week_start],
            "elapsed_tick_seconds": resolved_settings.elapsed_tick.total_seconds(),
            "timeline_tick_seconds": resolved_settings.timeline_tick.total_seconds(),
        }

    @app.get("/api/activities")
    def list_activities(request: Request) -> Dict[str, Any]:
        with session_manager(request) as manager:
            activities = manager.list_activities()
        return {"activities": [_activity_payload(activity) for activity in activities]}

    @app.post("/api/activities", status_code=201)
    def create_activity(payload: ActivityCreate, request: Request) -> Dict[str, Any]:
        with session_manager(request) as manager:
            activity = manager.create_activity(payload.name, payload.color)
        return _activity_payload(activity)

    @app.patch("/api/activities/{activity_id}")
    def update_activity(
        activity_id: int, payload: ActivityUpdate, request: Request
    ) -> Dict[str, Any]:
        with session_manager(request) as manager:
            activity = _lookup(manager.get_activity, activity_id)
            manager.rename_activity(
                activity,
                payload.name if payload.name is not None else activity.name,
                payload.color if payload.color is not None else activity.color,
            )
        return _activity_payload(activity)

    @app.delete("/api/activities/{activity_id}")
    def delete_activity(activity_id: int, request: Request) -> Dict[str, Any]:
        with session_manager(request) as manager:
            activity = _lookup(manager.get_activity, activity_id)
            detached = manager.delete_activity(activity)
        return {"deleted": activity_id, "detached_sessions": detached}

    @app.delete("/api/activities/{activity_id}/sessions")
    def delete_activity_history(activity_id: int, request: Request) -> Dict[str, Any]:
        with session_manager(request) as manager:
            activity = _lookup(manager.get_activity, activity_id)
            deleted = manager.delete_session_history(activity)
        return {"activity_id": activity_id, "deleted_sessions": deleted}

    @app.get("/api/activities/{activity_id}/previous-notes")
    def activity_previous_notes(activity_id: int, request: Request) -> Dict[str, Any]:
        with session_manager(request) as manager:
            activity = _lookup(manager.get_activity, activity_id)
            notes = previous_notes(manager.list_sessions(), activity)
        return {"activity_id": activity_id, "notes": notes}

    @app.get("/api/sessions")
    def list_sessions(request: Request) -> Dict[str, Any]:
        now = clock()
        with session_manager(request) as manager:
            sessions = manager.list_sessions()
        sessions.sort(key=lambda session: session.start_time, reverse=True)
        return {"sessions": [session_payload(session, now) for session in sessions]}

    @app.get("/api/sessions/active")
    def get_active_session(request: Request) -> Dict[str, Any]:
        with session_manager(request) as manager:
            session = manager.active_session()
        return {"session": session_payload(session, clock()) if session else None}

    @app.post("/api/sessions", status_code=201)
    def start_session(payload: SessionStart, request: Request) -> Dict[str, Any]:
        with session_manager(request) as manager:
            activity = _lookup(manager.get_activity, payload.activity_id)
            session = manager.start_session(activity, payload.goals)
        return session_payload(session, clock())

    @app.post("/api/sessions/{session_id}/end")
    def end_session(
        session_id: int, request: Request, payload: Optional[SessionFinish] = None
    ) -> Dict[str, Any]:
        finish = payload or SessionFinish()
        with session_manager(request) as manager:
            session = _lookup(manager.get_session, session_id)
            manager.finish_session(
                session,
                finish.accomplishments,
                productivity_rating=finish.productivity_rating,
                distraction_rating=finish.distraction_rating,
                notes=finish.notes,
            )
        return session_payload(session, clock())

    @app.post("/api/sessions/{session_id}/accomplishments", status_code=201)
    def add_accomplishment(
        session_id: int, payload: AccomplishmentCreate, request: Request
    ) -> Dict[str, Any]:
        with session_manager(request) as manager:
            session = _lookup(manager.get_session, session_id)
            goal = manager.add_accomplishment(session, payload.text)
        return {"id": goal.id, "text": goal.text, "is_completed": goal.is_completed}

    @app.patch("/api/sessions/{session_id}")
    def review_session(
        session_id: int, payload: SessionReview, request: Request
    ) -> Dict[str, Any]:
        with session_manager(request) as manager:
            session = _lookup(manager.get_session, session_id)
            manager.update_review(session, **payload.model_dump(exclude_unset=True))
        return session_payload(session, clock())

    @app.delete("/api/sessions/{session_id}")
    def delete_session(session_id: int, request: Request) -> Dict[str, Any]:
        with session_manager(request) as manager:
            session = _lookup(manager.get_session, session_id)
            manager.delete_session(session)
        return {"deleted": session_id}

    @app.patch("/api/goals/{goal_id}")
    def update_goal(goal_id: int, payload: GoalUpdate, request: Request) -> Dict[str, Any]:
        with session_manager(request) as manager:
            goal = _lookup(manager.get_goal, goal_id)
            manager.set_goal_completed(goal, payload.is_completed)
        return {"id": goal.id, "text": goal.text, "is_completed": goal.is_completed}

    @app.get("/api/dashboard")
    def dashboard(request: Request) -> Dict[str, Any]:
        now = clock()
        with session_manager(request) as manager:
            sessions = manager.list_sessions()
        return dashboard_summary(sessions, now, resolved_settings.recent_limit)

    @app.get("/api/timeline")
    def timeline(
        request: Request,
        date: Optional[str] = Query(
            default=None,
            description="Target date in YYYY-MM-DD format.",
        ),
    ) -> Dict[str, Any]:
        now = clock()
        day = _parse_date(date, now)
        with session_manager(request) as manager:
            sessions = manager.list_sessions()
        return timeline_payload(sessions, day, now)

    return app


@contextmanager
def _translate_errors() -> Iterator[None]:
    try:
        yield
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except (ConflictError, InvalidStateError) as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except TrackerError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _lookup(getter: Callable[[int], Any], entity_id: int) -> Any:
    try:
        return getter(entity_id)
    except InvalidStateError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


def _parse_date(value: Optional[str], now: datetime) -> datetime:
    if not value:
        return start_of_day(now)
    try:
        parsed = datetime.strptime(value, "%Y-%m-%d")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid date format") from exc
    return start_of_day(parsed)


def _activity_payload(activity: Activity) -> Dict[str, Any]:
    return {
        "id": activity.id,
        "name": activity.name,
        "color": activity.color,
        "rgb": list(activity.rgb),
    }
