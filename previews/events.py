from __future__ import annotations

import os
import sqlite3
import sys
from datetime import datetime, timezone
from typing import Any

from .settings import settings


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _resolve_db_path() -> str:
    """Return a file path usable by sqlite.

    If the configured path is a directory (Docker creates one for a missing
    bind-mounted file), the DB file is placed inside it.
    """

    p = os.path.abspath(settings.db_path)

    if os.path.isdir(p):
        p = os.path.join(p, "previews.db")

    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)

    return p


_SCHEMA = """
CREATE TABLE IF NOT EXISTS events (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  ts TEXT NOT NULL,
  level TEXT NOT NULL,
  app_name TEXT,
  service_name TEXT,
  message TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
CREATE INDEX IF NOT EXISTS idx_events_app_name ON events(app_name);
"""


def connect() -> sqlite3.Connection:
    conn = sqlite3.connect(_resolve_db_path(), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_db() -> None:
    """Create tables if they do not exist."""
    with connect() as conn:
        conn.executescript(_SCHEMA)


def log_event(level: str, message: str, app_name: str | None = None, service_name: str | None = None) -> None:
    """Append an event. Never raises: the event log must not change the outcome of the caller."""
    try:
        with connect() as conn:
            conn.executescript(_SCHEMA)
            conn.execute(
                "INSERT INTO events (ts, level, app_name, service_name, message) VALUES (?, ?, ?, ?, ?)",
                (utc_now(), level.upper(), app_name, service_name, message),
            )
    except (sqlite3.Error, OSError) as e:
        print(f"{utc_now()} {level.upper()} [{app_name or '-'}] {message} (event log unavailable: {e})", file=sys.stderr)


def latest_events(limit: int = 100, app_name: str | None = None) -> list[dict[str, Any]]:
    with connect() as conn:
        conn.executescript(_SCHEMA)
        if app_name:
            rows = conn.execute(
                "SELECT * FROM events WHERE app_name=? ORDER BY id DESC LIMIT ?",
                (app_name, limit),
            ).fetchall()
        else:
            rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [dict(r) for r in rows]
