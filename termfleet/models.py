"""Workstation records, audit events, and their status vocabulary."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


class WorkstationStatus(str, enum.Enum):
    STARTING = "starting"
    ONLINE = "online"
    UNKNOWN = "unknown"
    DNS_FAILED = "dns_failed"
    TERMINATED = "terminated"

    def __str__(self) -> str:
        return self.value


class EventType(str, enum.Enum):
    REGISTERED = "registered"
    STATUS_CHANGED = "status_changed"
    DNS_FAILED = "dns_failed"

    def __str__(self) -> str:
        return self.value


# Fields a store may rewrite through ``update()``; ``name`` is immutable.
MUTABLE_FIELDS = frozenset({
    "ip_address",
    "domain_name",
    "status",
    "created_at",
    "state_changed_at",
    "started_at",
    "last_check",
    "unknown_since",
    "terminated_at",
    "dns_error",
})

TIMESTAMP_FIELDS = (
    "created_at",
    "state_changed_at",
    "started_at",
    "last_check",
    "unknown_since",
    "terminated_at",
)


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def from_iso(value: str | datetime | None) -> datetime | None:
    """Parse a stored timestamp; naive values are taken to be UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Workstation:
    """One fleet member. ``name`` is both its identifier and its DNS label."""

    name: str
    ip_address: str
    status: WorkstationStatus
    domain_name: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    state_changed_at: datetime = field(default_factory=utcnow)
    started_at: datetime | None = None
    last_check: datetime | None = None
    unknown_since: datetime | None = None
    terminated_at: datetime | None = None
    dns_error: str | None = None

    @property
    def id(self) -> str:
        return self.name

    @property
    def ttyd_url(self) -> str | None:
        if not self.domain_name:
            return None
        return f"https://{self.domain_name}"

    def to_view(self) -> dict[str, Any]:
        """Serialisable view of the record plus the derived ``ttyd_url``."""
        view: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "ip_address": self.ip_address,
            "domain_name": self.domain_name,
            "status": self.status.value,
            "dns_error": self.dns_error,
        }
        for key in TIMESTAMP_FIELDS:
            view[key] = to_iso(getattr(self, key))
        view["ttyd_url"] = self.ttyd_url
        return view


@dataclass
class WorkstationEvent:
    """Append-only audit entry. ``id`` is assigned by the store."""

    workstation_id: str
    event_type: EventType
    old_status: WorkstationStatus | None = None
    new_status: WorkstationStatus | None = None
    details: str | None = None
    timestamp: datetime = field(default_factory=utcnow)
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "workstation_id": self.workstation_id,
            "event_type": self.event_type.value,
            "old_status": self.old_status.value if self.old_status else None,
            "new_status": self.new_status.value if self.new_status else None,
            "details": self.details,
            "timestamp": to_iso(self.timestamp),
        }
