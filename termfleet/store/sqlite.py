"""SQLite-backed workstation store."""

from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import datetime
from enum import Enum
from typing import Any

from termfleet.models import (
    MUTABLE_FIELDS,
    EventType,
    Workstation,
    WorkstationEvent,
    WorkstationStatus,
    from_iso,
    to_iso,
)
from termfleet.store.base import WorkstationStore, check_sort

logger = logging.getLogger(__name__)


def _to_db(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, Enum):
        return value.value
    return value


def _workstation(row: sqlite3.Row) -> Workstation:
    return Workstation(
        name=row["name"],
        ip_address=row["ip_address"],
        domain_name=row["domain_name"],
        status=WorkstationStatus(row["status"]),
        created_at=from_iso(row["created_at"]),
        state_changed_at=from_iso(row["state_changed_at"]),
        started_at=from_iso(row["started_at"]),
        last_check=from_iso(row["last_check"]),
        unknown_since=from_iso(row["unknown_since"]),
        terminated_at=from_iso(row["terminated_at"]),
        dns_error=row["dns_error"],
    )


def _event(row: sqlite3.Row) -> WorkstationEvent:
    return WorkstationEvent(
        id=row["id"],
        workstation_id=row["workstation_id"],
        event_type=EventType(row["event_type"]),
        old_status=WorkstationStatus(row["old_status"]) if row["old_status"] else None,
        new_status=WorkstationStatus(row["new_status"]) if row["new_status"] else None,
        details=row["details"],
        timestamp=from_iso(row["timestamp"]),
    )


class SQLiteWorkstationStore(WorkstationStore):
    """CRUD wrapper around the ``workstations`` / ``workstation_events`` tables.

    Args:
        conn: An open :class:`sqlite3.Connection` with ``row_factory`` set to
              :class:`sqlite3.Row` (see :func:`termfleet.db.connect`).
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # Workstations                                                         #
    # ------------------------------------------------------------------ #

    def list_all(
        self,
        status: WorkstationStatus | None = None,
        sort: str | None = None,
        order: str | None = None,
    ) -> list[Workstation]:
        sort, order = check_sort(sort, order)
        sql = "SELECT * FROM workstations"
        params: list[Any] = []
        if status is not None:
            sql += " WHERE status = ?"
            params.append(_to_db(status))
        # sort/order are whitelisted by check_sort
        if sort:
            sql += f" ORDER BY {sort} {order.upper()}, name ASC"
        else:
            sql += " ORDER BY created_at ASC, name ASC"
        cur = self._conn.execute(sql, params)
        return [_workstation(row) for row in cur.fetchall()]

    def get_by_name(self, name: str) -> Workstation | None:
        cur = self._conn.execute("SELECT * FROM workstations WHERE name = ?", (name,))
        row = cur.fetchone()
        return _workstation(row) if row else None

    def create(self, workstation: Workstation) -> Workstation:
        with self._lock:
            try:
                self._conn.execute(
                    """
                    INSERT INTO workstations
                        (name, ip_address, domain_name, status, created_at,
                         state_changed_at, started_at, last_check,
                         unknown_since, terminated_at, dns_error)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        workstation.name,
                        workstation.ip_address,
                        workstation.domain_name,
                        _to_db(workstation.status),
                        _to_db(workstation.created_at),
                        _to_db(workstation.state_changed_at),
                        _to_db(workstation.started_at),
                        _to_db(workstation.last_check),
                        _to_db(workstation.unknown_since),
                        _to_db(workstation.terminated_at),
                        workstation.dns_error,
                    ),
                )
                self._conn.commit()
            except sqlite3.IntegrityError as exc:
                self._conn.rollback()
                raise ValueError(f"Workstation already exists: {workstation.name}") from exc
        logger.debug("Workstation created: %s", workstation.name)
        return self.get_by_name(workstation.name) or workstation

    def update(self, name: str, fields: dict[str, Any]) -> bool:
        updates = {k: v for k, v in fields.items() if k not in ("id", "name")}
        unknown = set(updates) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown workstation fields: {sorted(unknown)}")
        if not updates:
            return False

        # column names come from MUTABLE_FIELDS only
        sets = ", ".join(f"{k} = ?" for k in updates)
        values = [_to_db(v) for v in updates.values()] + [name]
        with self._lock:
            cur = self._conn.execute(f"UPDATE workstations SET {sets} WHERE name = ?", values)
            self._conn.commit()
        logger.debug("Workstation updated: %s (%d row)", name, cur.rowcount)
        return cur.rowcount > 0

    def delete(self, name: str) -> bool:
        with self._lock:
            self._conn.execute("DELETE FROM workstation_events WHERE workstation_id = ?", (name,))
            cur = self._conn.execute("DELETE FROM workstations WHERE name = ?", (name,))
            self._conn.commit()
        logger.debug("Workstation deleted: %s (%d row)", name, cur.rowcount)
        return cur.rowcount > 0

    # ------------------------------------------------------------------ #
    # Events                                                               #
    # ------------------------------------------------------------------ #

    def append_event(self, event: WorkstationEvent) -> WorkstationEvent:
        with self._lock:
            cur = self._conn.execute(
                """
                INSERT INTO workstation_events
                    (workstation_id, event_type, old_status, new_status, details, timestamp)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    event.workstation_id,
                    _to_db(event.event_type),
                    _to_db(event.old_status),
                    _to_db(event.new_status),
                    event.details,
                    _to_db(event.timestamp),
                ),
            )
            self._conn.commit()
        event.id = cur.lastrowid
        return event

    def list_events(self, workstation_id: str, limit: int = 50) -> list[WorkstationEvent]:
        cur = self._conn.execute(
            """
            SELECT * FROM workstation_events
             WHERE workstation_id = ?
             ORDER BY timestamp DESC, id DESC
             LIMIT ?
            """,
            (workstation_id, limit),
        )
        return [_event(row) for row in cur.fetchall()]

    def close(self) -> None:
        self._conn.close()
