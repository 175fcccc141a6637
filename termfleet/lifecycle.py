"""Workstation lifecycle rules.

Pure functions, no I/O.  :func:`decide` maps the current record and one probe
outcome to the next status and the fields to write; :func:`should_prune`
decides when a terminated record is deleted outright.

Grace periods:

  STARTING    10 min after ``started_at`` without a successful probe
  ONLINE       1 min after ``last_check`` without a successful probe
  UNKNOWN     10 min after ``unknown_since`` before presumed dead
  TERMINATED  50 min after ``terminated_at`` before the record is pruned

Every elapsed-time condition is strict (``>``) and a missing anchor
timestamp never satisfies it.  DNS_FAILED and TERMINATED are not left
through these rules; only re-registration moves a DNS_FAILED record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from termfleet.models import Workstation, WorkstationStatus

logger = logging.getLogger(__name__)

STARTUP_GRACE = timedelta(minutes=10)
ONLINE_SILENCE_GRACE = timedelta(minutes=1)
UNKNOWN_GRACE = timedelta(minutes=10)
PRUNE_AFTER = timedelta(minutes=50)


@dataclass(frozen=True)
class Transition:
    """Outcome of :func:`decide`.

    ``updates`` always carries ``status`` so a store can apply it verbatim.
    """

    old_status: WorkstationStatus
    new_status: WorkstationStatus
    updates: dict[str, Any] = field(default_factory=dict)

    @property
    def status_changed(self) -> bool:
        return self.old_status is not self.new_status


def _elapsed_over(anchor: datetime | None, now: datetime, limit: timedelta) -> bool:
    return anchor is not None and now - anchor > limit


def _to_online(ws: Workstation, now: datetime) -> Transition:
    return Transition(
        ws.status,
        WorkstationStatus.ONLINE,
        {
            "status": WorkstationStatus.ONLINE,
            "last_check": now,
            "state_changed_at": now,
            "unknown_since": None,
        },
    )


def _to_unknown(ws: Workstation, now: datetime) -> Transition:
    return Transition(
        ws.status,
        WorkstationStatus.UNKNOWN,
        {
            "status": WorkstationStatus.UNKNOWN,
            "state_changed_at": now,
            "unknown_since": now,
        },
    )


def decide(ws: Workstation, probe_succeeded: bool, now: datetime) -> Transition | None:
    """Return the transition for *ws* given one probe outcome, or ``None``.

    At most one rule applies for a given status and elapsed time.  An
    ONLINE workstation that answers again yields a same-status transition
    which only refreshes ``last_check``.
    """
    status = ws.status
    result: Transition | None = None

    if status is WorkstationStatus.STARTING:
        if probe_succeeded:
            result = _to_online(ws, now)
        elif _elapsed_over(ws.started_at, now, STARTUP_GRACE):
            result = _to_unknown(ws, now)

    elif status is WorkstationStatus.ONLINE:
        if probe_succeeded:
            result = Transition(
                status,
                WorkstationStatus.ONLINE,
                {"status": WorkstationStatus.ONLINE, "last_check": now},
            )
        elif _elapsed_over(ws.last_check, now, ONLINE_SILENCE_GRACE):
            result = _to_unknown(ws, now)

    elif status is WorkstationStatus.UNKNOWN:
        if probe_succeeded:
            result = _to_online(ws, now)
        elif _elapsed_over(ws.unknown_since, now, UNKNOWN_GRACE):
            result = Transition(
                status,
                WorkstationStatus.TERMINATED,
                {
                    "status": WorkstationStatus.TERMINATED,
                    "state_changed_at": now,
                    "terminated_at": now,
                },
            )

    elif status in (WorkstationStatus.DNS_FAILED, WorkstationStatus.TERMINATED):
        result = None

    else:  # pragma: no cover - exhaustive over WorkstationStatus
        raise ValueError(f"Unhandled workstation status: {status!r}")

    if result is not None:
        logger.debug(
            "Transition for %s: %s -> %s (probe %s)",
            ws.name, result.old_status, result.new_status,
            "ok" if probe_succeeded else "failed",
        )
    return result


def should_prune(ws: Workstation, now: datetime) -> bool:
    """True once a terminated record has been terminated for over 50 minutes."""
    return (
        ws.status is WorkstationStatus.TERMINATED
        and _elapsed_over(ws.terminated_at, now, PRUNE_AFTER)
    )
