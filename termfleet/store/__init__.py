"""Workstation store factory for Termfleet.

Usage::

    from termfleet.store import get_store
    store = get_store(settings)         # SQLite at settings.db_path
    store = InMemoryWorkstationStore()  # tests / throwaway runs
"""

from __future__ import annotations

from termfleet.config import Settings

from .base import SORT_FIELDS, SORT_ORDERS, WorkstationStore
from .memory import InMemoryWorkstationStore
from .sqlite import SQLiteWorkstationStore

__all__ = [
    "InMemoryWorkstationStore",
    "SORT_FIELDS",
    "SORT_ORDERS",
    "SQLiteWorkstationStore",
    "WorkstationStore",
    "get_store",
]


def get_store(settings: Settings) -> WorkstationStore:
    """Open (and migrate) the SQLite store configured by *settings*."""
    from termfleet.db import get_db, init_db

    init_db(settings.db_path)
    return SQLiteWorkstationStore(get_db())
