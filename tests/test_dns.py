"""Tests for the DNS providers — mock Spaceship API responses and lookups."""

from __future__ import annotations

import json
import socket
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from termfleet.config import Settings
from termfleet.dns import SpaceshipDNSProvider, get_dns_provider
from termfleet.dns.base import DNSProviderError


def _provider(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SpaceshipDNSProvider(
        api_key="key",
        api_secret="secret",
        base_domain="fleet.example.com",
        ttl=300,
        api_url="https://dns.test/api/v1",
        client=client,
    )


class TestUpsert:
    async def test_puts_a_record(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(204)

        dns = _provider(handler)
        domain = await dns.upsert_record("desk1", "10.0.0.5")
        await dns.aclose()

        assert domain == "desk1.fleet.example.com"
        assert len(calls) == 1
        req = calls[0]
        assert req.method == "PUT"
        assert str(req.url) == "https://dns.test/api/v1/dns/records/fleet.example.com"
        assert req.headers["X-API-Key"] == "key"
        assert req.headers["X-API-Secret"] == "secret"
        assert json.loads(req.content) == {
            "force": False,
            "items": [{"type": "A", "name": "desk1", "address": "10.0.0.5", "ttl": 300}],
        }

    async def test_ttl_override(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={})

        dns = _provider(handler)
        await dns.upsert_record("desk1", "10.0.0.5", ttl=60)
        assert bodies[0]["items"][0]["ttl"] == 60

    async def test_api_error_raises(self):
        dns = _provider(lambda request: httpx.Response(422, text="invalid record"))
        with pytest.raises(DNSProviderError) as excinfo:
            await dns.upsert_record("desk1", "10.0.0.5")
        assert "422" in str(excinfo.value)
        assert "invalid record" in str(excinfo.value)
        assert str(excinfo.value).startswith("DNS registration failed")

    async def test_unreachable_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        dns = _provider(handler)
        with pytest.raises(DNSProviderError):
            await dns.upsert_record("desk1", "10.0.0.5")


class TestDelete:
    async def test_deletes_existing_record(self):
        calls = []

        def handler(request):
            calls.append(request)
            if request.method == "GET":
                return httpx.Response(200, json={"items": [
                    {"type": "A", "name": "other", "address": "10.0.0.9"},
                    {"type": "A", "name": "desk1", "address": "10.0.0.5"},
                ]})
            return httpx.Response(204)

        dns = _provider(handler)
        assert await dns.delete_record("desk1") is True
        assert [c.method for c in calls] == ["GET", "DELETE"]
        assert calls[0].url.params["take"] == "500"
        assert json.loads(calls[1].content) == [
            {"type": "A", "name": "desk1", "address": "10.0.0.5"},
        ]

    async def test_missing_record_returns_false(self):
        dns = _provider(lambda request: httpx.Response(200, json={"items": []}))
        assert await dns.delete_record("desk1") is False

    async def test_delete_error_raises(self):
        dns = _provider(lambda request: httpx.Response(500, text="oops"))
        with pytest.raises(DNSProviderError):
            await dns.delete_record("desk1")


class TestResolves:
    async def test_resolves_when_lookup_returns_addresses(self):
        dns = _provider(lambda r: httpx.Response(200))
        infos = [(socket.AF_INET, socket.SOCK_STREAM, 6, "", ("10.0.0.5", 0))]
        with patch("asyncio.BaseEventLoop.getaddrinfo", AsyncMock(return_value=infos)):
            assert await dns.resolves("desk1.fleet.example.com") is True

    async def test_not_resolved_on_gaierror(self):
        dns = _provider(lambda r: httpx.Response(200))
        err = socket.gaierror(socket.EAI_NONAME, "Name or service not known")
        with patch("asyncio.BaseEventLoop.getaddrinfo", AsyncMock(side_effect=err)):
            assert await dns.resolves("nope.fleet.example.com") is False

    async def test_not_resolved_on_empty_answer(self):
        dns = _provider(lambda r: httpx.Response(200))
        with patch("asyncio.BaseEventLoop.getaddrinfo", AsyncMock(return_value=[])):
            assert await dns.resolves("desk1.fleet.example.com") is False


class TestFactory:
    def test_builds_spaceship_provider(self):
        settings = Settings(
            base_domain="fleet.example.com",
            spaceship_api_key="k",
            spaceship_api_secret="s",
            dns_ttl=120,
        )
        dns = get_dns_provider(settings)
        assert isinstance(dns, SpaceshipDNSProvider)
        assert dns.fqdn("desk1") == "desk1.fleet.example.com"
        assert dns.ttl == 120
