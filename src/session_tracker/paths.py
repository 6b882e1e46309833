"""Where the session database lives."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from platformdirs import user_data_path

APP_NAME = "SessionTracker"
DB_FILENAME = "sessions.sqlite3"
# Overrides the per-user location; handy for keeping a separate test database.
DB_ENV_VAR = "SESSION_TRACKER_DB"


def get_data_dir() -> Path:
    path = user_data_path(appname=APP_NAME, appauthor=False, ensure_exists=True)
    return Path(path)


def get_db_path() -> Path:
    return get_data_dir() / DB_FILENAME


def resolve_db_path(explicit: Optional[Path] = None) -> Path:
    """Pick the database file: ``--db`` first, then the env var, then the default.

    A directory is accepted in either place and gets the default file name.
    """
    if explicit is None:
        configured = os.environ.get(DB_ENV_VAR, "").strip()
        if not configured:
            return get_db_path()
        explicit = Path(configured)
    path = explicit.expanduser()
    if path.is_dir():
        path = path / DB_FILENAME
    path.parent.mkdir(parents=True, exist_ok=True)
    return path
