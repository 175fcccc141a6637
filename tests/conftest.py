"""pytest configuration and shared fixtures for Termfleet tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from termfleet.db import connect, create_schema
from termfleet.dns.base import DNSProvider, DNSProviderError
from termfleet.models import Workstation, WorkstationStatus
from termfleet.store import InMemoryWorkstationStore, SQLiteWorkstationStore

NOW = datetime(2026, 10, 17, 12, 0, 0, tzinfo=timezone.utc)


# Configure asyncio mode for pytest-asyncio
def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


class FakeClock:
    """Settable clock; ``advance()`` moves it forward."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now += timedelta(**delta)
        return self.now


class FakeDNS(DNSProvider):
    """Records upserts in memory; set ``fail`` to make the next calls fail."""

    def __init__(self, base_domain: str = "fleet.example.com") -> None:
        super().__init__(base_domain, ttl=600)
        self.records: dict[str, str] = {}
        self.upserts: list[tuple[str, str]] = []
        self.deleted: list[str] = []
        self.fail: str | None = None
        self.resolvable: set[str] = set()

    async def upsert_record(self, name, address, ttl=None):
        self.upserts.append((name, address))
        if self.fail:
            raise DNSProviderError(self.fail)
        self.records[name] = address
        return self.fqdn(name)

    async def delete_record(self, name):
        self.deleted.append(name)
        return self.records.pop(name, None) is not None

    async def resolves(self, domain):
        return domain in self.resolvable


def make_workstation(
    name: str = "desk1",
    status: WorkstationStatus = WorkstationStatus.STARTING,
    **fields,
) -> Workstation:
    fields.setdefault("ip_address", "10.0.0.5")
    fields.setdefault("domain_name", f"{name}.fleet.example.com")
    fields.setdefault("created_at", NOW - timedelta(hours=1))
    fields.setdefault("state_changed_at", NOW - timedelta(hours=1))
    return Workstation(name=name, status=status, **fields)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_dns():
    return FakeDNS()


@pytest.fixture
def memory_store():
    return InMemoryWorkstationStore()


@pytest.fixture
def db_conn(tmp_path):
    conn = connect(tmp_path / "termfleet.db")
    create_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def sqlite_store(db_conn):
    return SQLiteWorkstationStore(db_conn)


@pytest.fixture(params=["memory", "sqlite"])
def store(request):
    """Runs a test against both store implementations."""
    return request.getfixturevalue(f"{request.param}_store")
