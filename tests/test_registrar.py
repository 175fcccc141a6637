"""Tests for RegistrarCoordinator — registration, DNS failure, queries."""

from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import NOW, make_workstation
from termfleet.models import EventType, WorkstationStatus as S
from termfleet.registrar import (
    RegistrarCoordinator,
    RegistrationError,
    WorkstationNotFound,
)
from termfleet.validation import InvalidInput


@pytest.fixture
def registrar(memory_store, fake_dns, clock):
    return RegistrarCoordinator(memory_store, fake_dns, clock=clock)


class TestNewRegistration:
    async def test_success_creates_starting_record(self, registrar, memory_store, fake_dns):
        result = await registrar.register("desk1", "10.0.0.5")
        assert result.created is True
        ws = result.workstation
        assert ws.status is S.STARTING
        assert ws.domain_name == "desk1.fleet.example.com"
        assert ws.started_at == NOW
        assert ws.created_at == NOW
        assert ws.dns_error is None
        assert fake_dns.upserts == [("desk1", "10.0.0.5")]

        events = memory_store.list_events("desk1")
        assert len(events) == 1
        assert events[0].event_type is EventType.REGISTERED
        assert events[0].old_status is None
        assert events[0].new_status is S.STARTING

    async def test_dns_failure_creates_dns_failed_record(self, registrar, memory_store, fake_dns):
        fake_dns.fail = "DNS registration failed: 500"
        with pytest.raises(RegistrationError) as excinfo:
            await registrar.register("desk1", "10.0.0.5")

        ws = memory_store.get_by_name("desk1")
        assert ws.status is S.DNS_FAILED
        assert ws.dns_error == "DNS registration failed: 500"
        assert ws.domain_name == "desk1.fleet.example.com"
        assert excinfo.value.workstation.name == "desk1"

        events = memory_store.list_events("desk1")
        assert [e.event_type for e in events] == [EventType.DNS_FAILED]
        assert events[0].details == "DNS registration failed: 500"

    @pytest.mark.parametrize("name,ip", [
        ("ab", "10.0.0.5"),
        ("-desk", "10.0.0.5"),
        ("desk_1", "10.0.0.5"),
        ("desk1", "10.0.0"),
        ("desk1", "10.0.0.256"),
        ("desk1", ""),
    ])
    async def test_invalid_input_rejected_before_dns(self, registrar, fake_dns, memory_store, name, ip):
        with pytest.raises(InvalidInput):
            await registrar.register(name, ip)
        assert fake_dns.upserts == []
        assert memory_store.list_all() == []


class TestReRegistration:
    async def test_same_ip_is_idempotent(self, registrar, memory_store, fake_dns, clock):
        first = await registrar.register("desk1", "10.0.0.5")
        clock.advance(minutes=3)
        second = await registrar.register("desk1", "10.0.0.5")

        assert fake_dns.upserts == [("desk1", "10.0.0.5")]
        assert second.created is False
        assert second.workstation == first.workstation
        assert len(memory_store.list_events("desk1")) == 1

    async def test_ip_change_resets_to_starting(self, registrar, memory_store, fake_dns, clock):
        memory_store.create(make_workstation(
            "desk1", status=S.UNKNOWN, ip_address="10.0.0.5",
            started_at=NOW - timedelta(hours=1),
            unknown_since=NOW - timedelta(minutes=4),
            state_changed_at=NOW - timedelta(minutes=4),
        ))
        result = await registrar.register("desk1", "10.0.0.6")

        ws = result.workstation
        assert result.created is False
        assert ws.ip_address == "10.0.0.6"
        assert ws.status is S.STARTING
        assert ws.started_at == NOW
        assert ws.state_changed_at == NOW
        assert ws.unknown_since is None
        assert ws.terminated_at is None
        assert ws.dns_error is None
        assert fake_dns.records["desk1"] == "10.0.0.6"

        events = memory_store.list_events("desk1")
        assert events[0].event_type is EventType.REGISTERED
        assert events[0].old_status is S.UNKNOWN
        assert events[0].details == "IP changed from 10.0.0.5 to 10.0.0.6"

    async def test_ip_change_revives_terminated(self, registrar, memory_store):
        memory_store.create(make_workstation(
            "desk1", status=S.TERMINATED, terminated_at=NOW - timedelta(minutes=20),
            state_changed_at=NOW - timedelta(minutes=20),
        ))
        ws = (await registrar.register("desk1", "10.0.0.7")).workstation
        assert ws.status is S.STARTING
        assert ws.terminated_at is None

    async def test_ip_change_dns_failure_keeps_old_ip(self, registrar, memory_store, fake_dns):
        memory_store.create(make_workstation(
            "desk1", status=S.UNKNOWN, ip_address="10.0.0.5",
            unknown_since=NOW - timedelta(minutes=2),
        ))
        fake_dns.fail = "DNS registration failed: timeout"
        with pytest.raises(RegistrationError):
            await registrar.register("desk1", "10.0.0.6")

        ws = memory_store.get_by_name("desk1")
        assert ws.status is S.DNS_FAILED
        assert ws.ip_address == "10.0.0.5"
        assert ws.dns_error == "DNS registration failed: timeout"
        assert ws.unknown_since is None
        assert ws.state_changed_at == NOW

        events = memory_store.list_events("desk1")
        assert events[0].event_type is EventType.DNS_FAILED
        assert events[0].old_status is S.UNKNOWN
        assert events[0].new_status is S.DNS_FAILED

    async def test_dns_failed_same_ip_is_returned_unchanged(self, registrar, memory_store, fake_dns):
        fake_dns.fail = "DNS registration failed: 503"
        with pytest.raises(RegistrationError):
            await registrar.register("desk1", "10.0.0.5")

        fake_dns.fail = None
        result = await registrar.register("desk1", "10.0.0.5")
        assert fake_dns.upserts == [("desk1", "10.0.0.5")]
        assert result.created is False
        assert result.workstation.status is S.DNS_FAILED
        assert result.workstation.dns_error == "DNS registration failed: 503"
        assert len(memory_store.list_events("desk1")) == 1

    async def test_dns_failed_new_ip_retries_dns(self, registrar, fake_dns):
        fake_dns.fail = "DNS registration failed: 503"
        with pytest.raises(RegistrationError):
            await registrar.register("desk1", "10.0.0.5")

        fake_dns.fail = None
        result = await registrar.register("desk1", "10.0.0.6")
        assert len(fake_dns.upserts) == 2
        assert result.workstation.status is S.STARTING
        assert result.workstation.dns_error is None

    async def test_timestamps_never_go_backwards(self, registrar, memory_store, clock):
        later = NOW + timedelta(minutes=5)
        memory_store.create(make_workstation(
            "desk1", status=S.ONLINE, last_check=later, state_changed_at=later,
        ))
        ws = (await registrar.register("desk1", "10.0.0.9")).workstation
        assert ws.state_changed_at >= later
        assert ws.started_at >= later


class TestQueries:
    async def test_get_missing_raises(self, registrar):
        with pytest.raises(WorkstationNotFound):
            registrar.get("ghost")

    async def test_list_filters_by_status_string(self, registrar, memory_store):
        memory_store.create(make_workstation("desk1", status=S.ONLINE))
        memory_store.create(make_workstation("desk2", status=S.STARTING))
        assert [w.name for w in registrar.list(status="online")] == ["desk1"]

    async def test_list_rejects_unknown_status(self, registrar):
        with pytest.raises(InvalidInput):
            registrar.list(status="sleeping")

    async def test_events_for_missing_workstation(self, registrar):
        with pytest.raises(WorkstationNotFound):
            registrar.events("ghost")


class TestPropagation:
    async def test_reports_resolution_without_touching_store(self, registrar, memory_store, fake_dns):
        await registrar.register("desk1", "10.0.0.5")
        before = memory_store.get_by_name("desk1")

        result = await registrar.check_propagation("desk1")
        assert result.propagated is False
        assert result.domain_name == "desk1.fleet.example.com"
        assert result.checked_at == NOW

        fake_dns.resolvable.add("desk1.fleet.example.com")
        assert (await registrar.check_propagation("desk1")).propagated is True
        assert memory_store.get_by_name("desk1") == before
        assert len(memory_store.list_events("desk1")) == 1

    async def test_missing_workstation(self, registrar):
        with pytest.raises(WorkstationNotFound):
            await registrar.check_propagation("ghost")

    async def test_no_domain(self, registrar, memory_store):
        memory_store.create(make_workstation("desk1", domain_name=None))
        with pytest.raises(InvalidInput):
            await registrar.check_propagation("desk1")
