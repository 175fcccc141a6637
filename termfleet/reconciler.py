"""Fleet reconciler — periodic probe-and-transition loop.

Each tick reads every workstation, deletes the ones that have been
terminated for too long, probes the rest concurrently, and writes back
whatever :func:`termfleet.lifecycle.decide` returns.  A status change also
appends one audit event; a same-status heartbeat only refreshes
``last_check``.

Ticks never overlap.  The background loop sleeps for the remainder of the
interval only after a tick has fully completed, and :meth:`Reconciler.run_tick`
skips when a tick is already in flight.  Nothing raised inside a tick escapes
it: failures are logged per workstation and the loop carries on.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from termfleet.dns.base import DNSProvider, DNSProviderError
from termfleet.lifecycle import decide, should_prune
from termfleet.models import EventType, Workstation, WorkstationEvent, utcnow
from termfleet.prober import HealthProber
from termfleet.store.base import WorkstationStore

logger = logging.getLogger(__name__)


def _moved_on(snapshot: Workstation, current: Workstation) -> bool:
    """True when *current* no longer is the record *snapshot* was taken from."""
    return (
        current.status is not snapshot.status
        or current.ip_address != snapshot.ip_address
        or current.state_changed_at != snapshot.state_changed_at
    )


@dataclass(frozen=True)
class TickReport:
    checked: int = 0
    pruned: int = 0
    transitions: int = 0
    errors: int = 0
    duration_ms: int = 0


class Reconciler:
    """Runs the reconciliation tick on a fixed cadence."""

    def __init__(
        self,
        store: WorkstationStore,
        prober: HealthProber,
        interval: float = 20.0,
        max_concurrency: int = 32,
        dns: DNSProvider | None = None,
        release_dns_on_prune: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.store = store
        self.prober = prober
        self.interval = interval
        self.max_concurrency = max_concurrency
        self.dns = dns
        self.release_dns_on_prune = release_dns_on_prune
        self._clock = clock
        self._tick_lock = asyncio.Lock()
        self._running = False
        self._task: asyncio.Task | None = None
        self._last_tick: datetime | None = None
        self._last_report: TickReport | None = None

    # ── Lifecycle ──────────────────────────────────────────────────

    async def start(self) -> None:
        """Start the background loop; the first tick runs immediately."""
        if self._running:
            logger.warning("Reconciler is already running")
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Reconciler started (interval=%.1fs, concurrency=%d)",
                    self.interval, self.max_concurrency)

    async def stop(self) -> None:
        """Stop the background loop and wait for it to exit."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Reconciler stopped")

    @property
    def running(self) -> bool:
        return self._running

    @property
    def last_tick(self) -> datetime | None:
        """When the last completed tick finished, or ``None``."""
        return self._last_tick

    @property
    def last_report(self) -> TickReport | None:
        return self._last_report

    # ── Tick ───────────────────────────────────────────────────────

    async def run_tick(self) -> TickReport | None:
        """Run one reconciliation tick.

        Returns ``None`` without doing anything when another tick is still
        in progress.
        """
        if self._tick_lock.locked():
            logger.debug("Reconciliation tick skipped: previous tick still running")
            return None

        async with self._tick_lock:
            started = time.monotonic()
            try:
                report = await self._tick()
            except Exception:
                logger.exception("Reconciliation tick failed")
                report = TickReport(errors=1)

            report = TickReport(
                checked=report.checked,
                pruned=report.pruned,
                transitions=report.transitions,
                errors=report.errors,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
            self._last_tick = self._clock()
            self._last_report = report
            logger.info(
                "Reconciliation tick complete: %d checked, %d pruned, "
                "%d transitions, %d errors in %dms",
                report.checked, report.pruned, report.transitions,
                report.errors, report.duration_ms,
            )
            return report

    async def _tick(self) -> TickReport:
        workstations = self.store.list_all()
        now = self._clock()

        to_prune: list[Workstation] = []
        to_check: list[Workstation] = []
        for ws in workstations:
            (to_prune if should_prune(ws, now) else to_check).append(ws)

        errors = 0
        pruned = 0
        for ws in to_prune:
            try:
                if await self._prune(ws):
                    pruned += 1
            except Exception:
                errors += 1
                logger.exception("Failed to prune workstation %s", ws.name)

        results = await self._probe_all(to_check)

        transitions = 0
        for ws, outcome in zip(to_check, results):
            if isinstance(outcome, BaseException):
                # the prober maps network errors to False; anything else is a bug
                logger.error("Probe for %s raised %s: %s", ws.name, type(outcome).__name__, outcome)
                errors += 1
                outcome = False
            try:
                if self._apply(ws, outcome):
                    transitions += 1
            except Exception:
                errors += 1
                logger.exception("Failed to persist health check for %s", ws.name)

        return TickReport(
            checked=len(to_check),
            pruned=pruned,
            transitions=transitions,
            errors=errors,
        )

    async def _probe_all(self, workstations: list[Workstation]) -> list[bool | BaseException]:
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _probe(ws: Workstation) -> bool:
            async with semaphore:
                return await self.prober.probe(ws.domain_name)

        return await asyncio.gather(*(_probe(ws) for ws in workstations), return_exceptions=True)

    def _apply(self, snapshot: Workstation, probe_succeeded: bool) -> bool:
        """Persist the outcome for *snapshot*; returns whether its status changed.

        The record is read again first: a registration that landed while the
        probe was in flight wins, and the stale outcome is dropped.
        """
        ws = self.store.get_by_name(snapshot.name)
        if ws is None or _moved_on(snapshot, ws):
            logger.debug("Health check for %s dropped: record changed during probe",
                         snapshot.name)
            return False

        now = self._not_before(ws)
        transition = decide(ws, probe_succeeded, now)
        if transition is None:
            return False

        self.store.update(ws.name, transition.updates)
        if not transition.status_changed:
            return False

        self.store.append_event(WorkstationEvent(
            workstation_id=ws.id,
            event_type=EventType.STATUS_CHANGED,
            old_status=transition.old_status,
            new_status=transition.new_status,
            details=f"Health check: {'success' if probe_succeeded else 'failed'}",
            timestamp=now,
        ))
        logger.info("Workstation %s: %s -> %s (health check %s)",
                    ws.name, transition.old_status, transition.new_status,
                    "ok" if probe_succeeded else "failed")
        return True

    async def _prune(self, ws: Workstation) -> bool:
        if self.release_dns_on_prune and self.dns is not None:
            try:
                await self.dns.delete_record(ws.name)
            except DNSProviderError as exc:
                logger.warning("Could not release DNS record for %s: %s", ws.name, exc)
            current = self.store.get_by_name(ws.name)
            if current is None:
                return False
            if _moved_on(ws, current):
                logger.warning("Workstation %s re-registered while being pruned; kept", ws.name)
                return False
        deleted = self.store.delete(ws.name)
        if deleted:
            logger.info("Workstation removed: %s (terminated at %s)",
                        ws.name, ws.terminated_at.isoformat() if ws.terminated_at else "?")
        return deleted

    def _not_before(self, ws: Workstation) -> datetime:
        # keeps state_changed_at / last_check non-decreasing if the clock steps back
        now = self._clock()
        stamps = [ws.state_changed_at, ws.last_check, ws.unknown_since, ws.terminated_at]
        return max([now] + [s for s in stamps if s is not None])

    # ── Loop ───────────────────────────────────────────────────────

    async def _loop(self) -> None:
        """Tick, then sleep for whatever is left of the interval."""
        while self._running:
            started = time.monotonic()
            try:
                await self.run_tick()
            except Exception:
                logger.exception("Reconciliation loop error")

            remaining = self.interval - (time.monotonic() - started)
            if remaining > 0:
                await asyncio.sleep(remaining)
