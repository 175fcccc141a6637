"""Spaceship DNS provider (https://spaceship.dev/api/v1).

Records are managed per zone at ``/dns/records/{zone}``; requests carry the
``X-API-Key`` / ``X-API-Secret`` header pair.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from termfleet.config import DEFAULT_SPACESHIP_API_URL
from termfleet.dns.base import DNSProvider, DNSProviderError

logger = logging.getLogger(__name__)

# Spaceship pages record listings; one page covers a fleet-sized zone.
_LIST_PAGE_SIZE = 500


class SpaceshipDNSProvider(DNSProvider):
    """Manage workstation A records through the Spaceship REST API."""

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        base_domain: str,
        ttl: int = 600,
        api_url: str = DEFAULT_SPACESHIP_API_URL,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(base_domain, ttl)
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.api_secret = api_secret
        self.timeout = timeout
        self._client = client

    def _headers(self) -> dict[str, str]:
        return {
            "X-API-Key": self.api_key,
            "X-API-Secret": self.api_secret,
            "Content-Type": "application/json",
        }

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, headers=self._headers())
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def _request(self, method: str, endpoint: str, body: Any = None) -> Any:
        url = f"{self.api_url}{endpoint}"
        client = await self._get_client()
        logger.debug("Spaceship API request: %s %s", method, endpoint)
        try:
            resp = await client.request(method, url, json=body, headers=self._headers())
        except httpx.HTTPError as exc:
            raise DNSProviderError(f"Cannot reach Spaceship API at {url}: {exc}") from exc

        if resp.status_code < 200 or resp.status_code >= 300:
            raise DNSProviderError(
                f"Spaceship API error ({resp.status_code}): {resp.text[:200]}"
            )
        if resp.status_code == 204 or not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as exc:
            raise DNSProviderError(f"Spaceship API returned invalid JSON: {exc}") from exc

    async def upsert_record(self, name: str, address: str, ttl: int | None = None) -> str:
        fqdn = self.fqdn(name)
        logger.info("Registering DNS record %s -> %s", fqdn, address)
        record = {
            "type": "A",
            "name": name,
            "address": address,
            "ttl": ttl if ttl is not None else self.ttl,
        }
        try:
            await self._request(
                "PUT",
                f"/dns/records/{self.base_domain}",
                {"force": False, "items": [record]},
            )
        except DNSProviderError as exc:
            logger.error("Failed to register DNS record %s: %s", fqdn, exc)
            raise DNSProviderError(f"DNS registration failed: {exc}") from exc

        logger.info("DNS record registered: %s -> %s", fqdn, address)
        return fqdn

    async def delete_record(self, name: str) -> bool:
        fqdn = self.fqdn(name)
        try:
            listing = await self._request(
                "GET",
                f"/dns/records/{self.base_domain}?take={_LIST_PAGE_SIZE}&skip=0",
            )
            items = listing.get("items", []) if isinstance(listing, dict) else []
            record = next(
                (r for r in items if r.get("type") == "A" and r.get("name") == name),
                None,
            )
            if record is None:
                logger.warning("DNS record not found for deletion: %s", fqdn)
                return False

            await self._request(
                "DELETE",
                f"/dns/records/{self.base_domain}",
                [{"type": "A", "name": name, "address": record.get("address")}],
            )
        except DNSProviderError as exc:
            logger.error("Failed to delete DNS record %s: %s", fqdn, exc)
            raise DNSProviderError(f"DNS deletion failed: {exc}") from exc

        logger.info("DNS record deleted: %s", fqdn)
        return True
