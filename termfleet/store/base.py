"""Abstract workstation store.

The reconciler and the registrar only talk to this interface, so the SQLite
store can be swapped for :class:`~termfleet.store.memory.InMemoryWorkstationStore`
in tests.
"""

from __future__ import annotations

import abc
from typing import Any

from termfleet.models import Workstation, WorkstationEvent, WorkstationStatus
from termfleet.validation import InvalidInput

SORT_FIELDS = ("name", "status", "created_at", "last_check")
SORT_ORDERS = ("asc", "desc")


def check_sort(sort: str | None, order: str | None) -> tuple[str | None, str]:
    """Validate list ordering parameters; returns ``(sort, order)``."""
    order = (order or "asc").lower()
    if sort is not None and sort not in SORT_FIELDS:
        raise InvalidInput(f"sort must be one of {', '.join(SORT_FIELDS)}")
    if order not in SORT_ORDERS:
        raise InvalidInput("order must be 'asc' or 'desc'")
    return sort, order


class WorkstationStore(abc.ABC):
    """Records keyed by workstation name plus an append-only event log.

    Implementations serialise writes per record; the reconciler issues at
    most one write per workstation per tick.
    """

    @abc.abstractmethod
    def list_all(
        self,
        status: WorkstationStatus | None = None,
        sort: str | None = None,
        order: str | None = None,
    ) -> list[Workstation]:
        """Return records, optionally filtered by *status* and sorted."""
        raise NotImplementedError

    @abc.abstractmethod
    def get_by_name(self, name: str) -> Workstation | None:
        raise NotImplementedError

    @abc.abstractmethod
    def create(self, workstation: Workstation) -> Workstation:
        """Insert *workstation*.  Raises ``ValueError`` if the name is taken."""
        raise NotImplementedError

    @abc.abstractmethod
    def update(self, name: str, fields: dict[str, Any]) -> bool:
        """Apply *fields* to the record.  Returns ``False`` if nothing changed."""
        raise NotImplementedError

    @abc.abstractmethod
    def delete(self, name: str) -> bool:
        """Delete the record and its events.  Returns whether it existed."""
        raise NotImplementedError

    @abc.abstractmethod
    def append_event(self, event: WorkstationEvent) -> WorkstationEvent:
        """Store *event* and return it with its assigned ``id``."""
        raise NotImplementedError

    @abc.abstractmethod
    def list_events(self, workstation_id: str, limit: int = 50) -> list[WorkstationEvent]:
        """Newest-first events for one workstation."""
        raise NotImplementedError

    def close(self) -> None:
        """Release the underlying resources."""
