"""Database initialisation for Termfleet.

Creates the SQLite schema for workstation records and their audit events.
The database path is taken from ``TERMFLEET_DB_PATH`` (default:
``./data/termfleet.db``) unless :func:`set_db_path` or :func:`init_db` is
given one explicitly.

Usage::

    from termfleet.db import get_db, init_db
    init_db()                  # idempotent — safe to call multiple times
    conn = get_db()            # per-thread connection
"""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
from pathlib import Path

logger = logging.getLogger(__name__)

_DB_PATH: Path | None = None
_LOCAL = threading.local()


def _db_path() -> Path:
    global _DB_PATH
    if _DB_PATH is None:
        _DB_PATH = Path(os.environ.get("TERMFLEET_DB_PATH", "./data/termfleet.db"))
    _DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    return _DB_PATH


def set_db_path(path: str | Path) -> None:
    """Override the database path (useful for tests)."""
    global _DB_PATH, _LOCAL
    _DB_PATH = Path(path)
    _LOCAL = threading.local()


def connect(path: str | Path) -> sqlite3.Connection:
    """Open a connection with the pragmas the store relies on."""
    conn = sqlite3.connect(str(path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def get_db() -> sqlite3.Connection:
    """Return a per-thread SQLite connection (WAL mode, FK enabled)."""
    conn = getattr(_LOCAL, "conn", None)
    if conn is None:
        conn = connect(_db_path())
        _LOCAL.conn = conn
    return conn


def init_db(path: str | Path | None = None) -> None:
    """Create all tables (idempotent — safe to run multiple times)."""
    if path:
        set_db_path(path)
    conn = get_db()
    create_schema(conn)
    conn.commit()
    logger.info("Database ready at %s", _db_path())


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS workstations (
    name              TEXT PRIMARY KEY,
    ip_address        TEXT NOT NULL,
    domain_name       TEXT,
    status            TEXT NOT NULL,
    created_at        TEXT NOT NULL,
    state_changed_at  TEXT NOT NULL,
    started_at        TEXT,
    last_check        TEXT,
    unknown_since     TEXT,
    terminated_at     TEXT,
    dns_error         TEXT
);
CREATE INDEX IF NOT EXISTS idx_workstations_status  ON workstations(status);
CREATE INDEX IF NOT EXISTS idx_workstations_created ON workstations(created_at);

CREATE TABLE IF NOT EXISTS workstation_events (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    workstation_id  TEXT NOT NULL,
    event_type      TEXT NOT NULL,
    old_status      TEXT,
    new_status      TEXT,
    details         TEXT,
    timestamp       TEXT NOT NULL,
    FOREIGN KEY (workstation_id) REFERENCES workstations(name) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_events_workstation ON workstation_events(workstation_id, timestamp);
"""


def create_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(_SCHEMA_SQL)
