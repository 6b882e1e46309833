"""Serve the JSON API under uvicorn."""

from __future__ import annotations

import logging
import threading
import webbrowser
from pathlib import Path
from typing import Optional

import uvicorn

from .config import DashboardSettings
from .paths import resolve_db_path
from .webapp import create_app

logger = logging.getLogger(__name__)

BROWSER_DELAY_SECONDS = 1.0


def docs_url(host: str, port: int) -> str:
    # Wildcard binds are not browsable addresses.
    if host in ("0.0.0.0", "::", ""):
        host = "127.0.0.1"
    elif ":" in host:
        host = f"[{host}]"
    return f"http://{host}:{port}/docs"


def run_dashboard(
    *,
    host: str = "127.0.0.1",
    port: int = 8765,
    db_path: Optional[Path] = None,
    settings: Optional[DashboardSettings] = None,
    open_browser: bool = False,
    log_level: str = "info",
) -> None:
    """Block serving the API for one database until uvicorn exits."""
    resolved = resolve_db_path(db_path)
    settings = settings or DashboardSettings()
    app = create_app(db_path=resolved, settings=settings)
    logger.info(
        "API on %s:%d for %s (elapsed tick %.1fs, timeline tick %.1fs)",
        host,
        port,
        resolved,
        settings.elapsed_tick.total_seconds(),
        settings.timeline_tick.total_seconds(),
    )

    if open_browser:
        timer = threading.Timer(BROWSER_DELAY_SECONDS, _open_docs, args=(docs_url(host, port),))
        timer.daemon = True
        timer.start()

    logging.getLogger("uvicorn.error").setLevel(log_level.upper())
    uvicorn.run(app, host=host, port=port, log_level=log_level)


def _open_docs(url: str) -> None:
    try:
        webbrowser.open(url)
    except webbrowser.Error:
        logger.exception("Failed to launch browser for %s", url)
