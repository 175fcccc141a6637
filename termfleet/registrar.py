"""Workstation registration and DNS coordination.

Registration is the only way a workstation enters the fleet and the only way
out of DNS_FAILED.  A call with a new name or a new IP upserts the
workstation's A record and picks the starting state from the outcome:

  new name                  → DNS ok: STARTING         DNS error: DNS_FAILED
  known name, same IP       → no-op, record returned as stored (no DNS call)
  known name, new IP        → DNS ok: STARTING again   DNS error: DNS_FAILED,
                                                        old IP kept

Every DNS attempt leaves one audit event.  A DNS failure is persisted first
and then raised as :class:`RegistrationError`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from termfleet.dns.base import DNSProvider, DNSProviderError
from termfleet.models import (
    EventType,
    Workstation,
    WorkstationEvent,
    WorkstationStatus,
    utcnow,
)
from termfleet.store.base import WorkstationStore
from termfleet.validation import InvalidInput, validate_registration

logger = logging.getLogger(__name__)


class WorkstationNotFound(LookupError):
    """Raised when no workstation has the requested name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Workstation not found: {name}")
        self.name = name


class RegistrationError(Exception):
    """DNS registration failed; the DNS_FAILED record has been stored."""

    def __init__(self, message: str, workstation: Workstation) -> None:
        super().__init__(message)
        self.workstation = workstation


@dataclass(frozen=True)
class RegistrationResult:
    workstation: Workstation
    created: bool = False


@dataclass(frozen=True)
class PropagationResult:
    name: str
    domain_name: str
    propagated: bool
    checked_at: datetime

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "domain_name": self.domain_name,
            "propagated": self.propagated,
            "checked_at": self.checked_at.isoformat(),
        }


class RegistrarCoordinator:
    """Registers workstations and answers read-only fleet queries."""

    def __init__(
        self,
        store: WorkstationStore,
        dns: DNSProvider,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.dns = dns
        self._clock = clock

    # ── Registration ───────────────────────────────────────────────

    async def register(self, name: str, ip: str) -> RegistrationResult:
        """Register *name* at *ip*; see the module docstring for the rules.

        Raises :class:`InvalidInput` for a bad name/address and
        :class:`RegistrationError` when the DNS upsert fails.
        """
        name, ip = validate_registration(name, ip)
        existing = self.store.get_by_name(name)

        if existing is None:
            return await self._register_new(name, ip)

        if existing.ip_address == ip:
            logger.debug("Registration of %s at %s is unchanged (%s)", name, ip, existing.status)
            return RegistrationResult(existing, created=False)

        return await self._reregister(existing, ip)

    async def _register_new(self, name: str, ip: str) -> RegistrationResult:
        try:
            domain = await self.dns.upsert_record(name, ip)
        except DNSProviderError as exc:
            now = self._clock()
            ws = self.store.create(Workstation(
                name=name,
                ip_address=ip,
                domain_name=self.dns.fqdn(name),
                status=WorkstationStatus.DNS_FAILED,
                created_at=now,
                state_changed_at=now,
                started_at=now,
                dns_error=str(exc),
            ))
            self._event(ws.name, EventType.DNS_FAILED, None, WorkstationStatus.DNS_FAILED, str(exc), now)
            logger.warning("Workstation %s registered without DNS: %s", name, exc)
            raise RegistrationError("Failed to register DNS domain", ws) from exc

        now = self._clock()
        ws = self.store.create(Workstation(
            name=name,
            ip_address=ip,
            domain_name=domain,
            status=WorkstationStatus.STARTING,
            created_at=now,
            state_changed_at=now,
            started_at=now,
        ))
        self._event(ws.name, EventType.REGISTERED, None, WorkstationStatus.STARTING,
                    "Workstation registered", now)
        logger.info("Workstation registered: %s at %s (%s)", name, ip, domain)
        return RegistrationResult(ws, created=True)

    async def _reregister(self, existing: Workstation, ip: str) -> RegistrationResult:
        name = existing.name
        try:
            domain = await self.dns.upsert_record(name, ip)
        except DNSProviderError as exc:
            now = self._not_before(existing)
            self.store.update(name, {
                "status": WorkstationStatus.DNS_FAILED,
                "dns_error": str(exc),
                "state_changed_at": now,
                "unknown_since": None,
                "terminated_at": None,
            })
            self._event(name, EventType.DNS_FAILED, existing.status,
                        WorkstationStatus.DNS_FAILED, str(exc), now)
            logger.warning("DNS update failed for %s (%s -> %s): %s",
                           name, existing.ip_address, ip, exc)
            ws = self.store.get_by_name(name) or existing
            raise RegistrationError("Failed to register DNS domain", ws) from exc

        now = self._not_before(existing)
        self.store.update(name, {
            "ip_address": ip,
            "domain_name": domain,
            "status": WorkstationStatus.STARTING,
            "state_changed_at": now,
            "started_at": now,
            "dns_error": None,
            "unknown_since": None,
            "terminated_at": None,
        })
        details = f"IP changed from {existing.ip_address} to {ip}"
        self._event(name, EventType.REGISTERED, existing.status,
                    WorkstationStatus.STARTING, details, now)
        logger.info("Workstation re-registered: %s (%s)", name, details)
        return RegistrationResult(self.store.get_by_name(name) or existing, created=False)

    # ── Queries ────────────────────────────────────────────────────

    def get(self, name: str) -> Workstation:
        ws = self.store.get_by_name(name)
        if ws is None:
            raise WorkstationNotFound(name)
        return ws

    def list(
        self,
        status: WorkstationStatus | str | None = None,
        sort: str | None = None,
        order: str | None = None,
    ) -> list[Workstation]:
        if status is not None and not isinstance(status, WorkstationStatus):
            try:
                status = WorkstationStatus(status)
            except ValueError:
                valid = ", ".join(s.value for s in WorkstationStatus)
                raise InvalidInput(f"status must be one of {valid}") from None
        return self.store.list_all(status=status, sort=sort, order=order)

    def events(self, name: str, limit: int = 50) -> list[WorkstationEvent]:
        ws = self.get(name)
        return self.store.list_events(ws.id, limit)

    async def check_propagation(self, name: str) -> PropagationResult:
        """Look the workstation's domain up in DNS.  Never touches the store."""
        ws = self.get(name)
        if not ws.domain_name:
            raise InvalidInput("Workstation has no domain name")
        propagated = await self.dns.resolves(ws.domain_name)
        return PropagationResult(
            name=ws.name,
            domain_name=ws.domain_name,
            propagated=propagated,
            checked_at=self._clock(),
        )

    # ── Internal ───────────────────────────────────────────────────

    def _not_before(self, ws: Workstation) -> datetime:
        """Current time, never earlier than the record's latest timestamp."""
        now = self._clock()
        stamps = [ws.created_at, ws.state_changed_at, ws.started_at, ws.last_check,
                  ws.unknown_since, ws.terminated_at]
        return max([now] + [s for s in stamps if s is not None])

    def _event(
        self,
        name: str,
        event_type: EventType,
        old: WorkstationStatus | None,
        new: WorkstationStatus | None,
        details: str,
        timestamp: datetime,
    ) -> None:
        self.store.append_event(WorkstationEvent(
            workstation_id=name,
            event_type=event_type,
            old_status=old,
            new_status=new,
            details=details,
            timestamp=timestamp,
        ))
