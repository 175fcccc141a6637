"""In-process workstation store.

Keeps everything in dictionaries behind a lock and hands out copies, so
callers can never mutate stored state without going through ``update()``.
Used by the test-suite and for throwaway runs without a database file.
"""

from __future__ import annotations

import copy
import itertools
import threading
from typing import Any

from termfleet.models import MUTABLE_FIELDS, Workstation, WorkstationEvent, WorkstationStatus
from termfleet.store.base import WorkstationStore, check_sort


def _sort_key(field: str):
    def key(ws: Workstation) -> tuple:
        value = getattr(ws, field)
        if isinstance(value, WorkstationStatus):
            value = value.value
        # NULLs first, as SQLite orders them
        return (value is not None, value if value is not None else "", ws.name)
    return key


class InMemoryWorkstationStore(WorkstationStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._workstations: dict[str, Workstation] = {}
        self._events: dict[str, list[WorkstationEvent]] = {}
        self._event_ids = itertools.count(1)

    def list_all(
        self,
        status: WorkstationStatus | None = None,
        sort: str | None = None,
        order: str | None = None,
    ) -> list[Workstation]:
        sort, order = check_sort(sort, order)
        with self._lock:
            rows = [copy.deepcopy(ws) for ws in self._workstations.values()]
        if status is not None:
            rows = [ws for ws in rows if ws.status is WorkstationStatus(status)]
        if sort:
            rows.sort(key=_sort_key(sort), reverse=order == "desc")
        else:
            rows.sort(key=lambda ws: (ws.created_at, ws.name))
        return rows

    def get_by_name(self, name: str) -> Workstation | None:
        with self._lock:
            ws = self._workstations.get(name)
            return copy.deepcopy(ws) if ws else None

    def create(self, workstation: Workstation) -> Workstation:
        with self._lock:
            if workstation.name in self._workstations:
                raise ValueError(f"Workstation already exists: {workstation.name}")
            self._workstations[workstation.name] = copy.deepcopy(workstation)
            self._events.setdefault(workstation.name, [])
        return copy.deepcopy(workstation)

    def update(self, name: str, fields: dict[str, Any]) -> bool:
        updates = {k: v for k, v in fields.items() if k not in ("id", "name")}
        unknown = set(updates) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown workstation fields: {sorted(unknown)}")
        if not updates:
            return False
        with self._lock:
            ws = self._workstations.get(name)
            if ws is None:
                return False
            for key, value in updates.items():
                if key == "status" and value is not None:
                    value = WorkstationStatus(value)
                setattr(ws, key, value)
        return True

    def delete(self, name: str) -> bool:
        with self._lock:
            self._events.pop(name, None)
            return self._workstations.pop(name, None) is not None

    def append_event(self, event: WorkstationEvent) -> WorkstationEvent:
        with self._lock:
            if event.workstation_id not in self._workstations:
                raise ValueError(f"Unknown workstation: {event.workstation_id}")
            stored = copy.deepcopy(event)
            stored.id = next(self._event_ids)
            self._events.setdefault(event.workstation_id, []).append(stored)
        event.id = stored.id
        return event

    def list_events(self, workstation_id: str, limit: int = 50) -> list[WorkstationEvent]:
        with self._lock:
            events = list(self._events.get(workstation_id, []))
        events.sort(key=lambda e: (e.timestamp, e.id or 0), reverse=True)
        return [copy.deepcopy(e) for e in events[:limit]]
