from __future__ import annotations

import os
import sqlite3
from dataclasses import dataclass
from typing import Any

from .runtime import utc_now
from .settings import settings


def _resolve_db_path() -> str:
    """Return a file path usable by sqlite.

    If the service runs in a container with ESC_DB_PATH bind-mounted and the
    host file did not exist, Docker creates a directory at that location; in
    that case the DB file goes inside it.
    """

    p = os.path.abspath(settings.db_path)

    if os.path.isdir(p):
        p = os.path.join(p, "esc.db")

    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)

    return p


def connect() -> sqlite3.Connection:
    conn = sqlite3.connect(_resolve_db_path(), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_db() -> None:
    """Create tables if they do not exist."""
    with connect() as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS containers (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              container_id TEXT NOT NULL UNIQUE,
              label TEXT NOT NULL,
              image TEXT NOT NULL,
              status TEXT NOT NULL, -- running|stopped
              started_at TEXT NOT NULL,
              stopped_at TEXT
            );

            CREATE TABLE IF NOT EXISTS events (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              level TEXT NOT NULL,
              container_id TEXT,
              message TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
            """
        )


def log_event(level: str, message: str, container_id: str | None = None) -> None:
    with connect() as conn:
        conn.execute(
            "INSERT INTO events (ts, level, container_id, message) VALUES (?, ?, ?, ?)",
            (utc_now(), level.upper(), container_id, message),
        )


@dataclass(frozen=True)
class ContainerRow:
    id: int
    container_id: str
    label: str
    image: str
    status: str
    started_at: str
    stopped_at: str | None


def insert_container(container_id: str, label: str, image: str) -> ContainerRow:
    with connect() as conn:
        conn.execute(
            """
            INSERT INTO containers (container_id, label, image, status, started_at)
            VALUES (?, ?, ?, 'running', ?)
            ON CONFLICT(container_id) DO UPDATE SET status='running', stopped_at=NULL
            """,
            (container_id, label, image, utc_now()),
        )
        row = conn.execute("SELECT * FROM containers WHERE container_id=?", (container_id,)).fetchone()
        return ContainerRow(**dict(row))


def mark_stopped(container_id: str) -> None:
    with connect() as conn:
        conn.execute(
            "UPDATE containers SET status='stopped', stopped_at=? WHERE container_id=? AND status='running'",
            (utc_now(), container_id),
        )


def list_containers(status: str | None = None) -> list[ContainerRow]:
    with connect() as conn:
        if status:
            rows = conn.execute("SELECT * FROM containers WHERE status=? ORDER BY id", (status,)).fetchall()
        else:
            rows = conn.execute("SELECT * FROM containers ORDER BY id").fetchall()
        return [ContainerRow(**dict(r)) for r in rows]


def latest_events(limit: int = 100) -> list[dict[str, Any]]:
    with connect() as conn:
        rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [dict(r) for r in rows]
