"""Abstract DNS provider interface for Termfleet.

Any registrar API (Spaceship, or a stand-in for tests) implements this
interface.  Only the logical contract matters to the rest of the package:
upsert an A record for a workstation, optionally release it, and check
whether a name resolves.
"""

from __future__ import annotations

import abc
import asyncio
import logging
import socket

logger = logging.getLogger(__name__)


class DNSProviderError(Exception):
    """Raised when the provider rejects a change or cannot be reached."""


class DNSProvider(abc.ABC):
    """A DNS zone holding one A record per workstation."""

    def __init__(self, base_domain: str, ttl: int = 600) -> None:
        self.base_domain = base_domain.strip(".").lower()
        self.ttl = ttl

    def fqdn(self, name: str) -> str:
        """The subdomain a workstation called *name* lives at."""
        return f"{name}.{self.base_domain}"

    @abc.abstractmethod
    async def upsert_record(self, name: str, address: str, ttl: int | None = None) -> str:
        """Create or replace the A record *name* → *address*.

        Returns the fully-qualified domain.  Raises :class:`DNSProviderError`.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def delete_record(self, name: str) -> bool:
        """Remove the A record for *name*.  Returns ``False`` if it was absent."""
        raise NotImplementedError

    async def resolves(self, domain: str) -> bool:
        """Whether *domain* currently resolves to at least one IPv4 address."""
        loop = asyncio.get_running_loop()
        try:
            infos = await loop.getaddrinfo(domain, None, family=socket.AF_INET)
        except (socket.gaierror, UnicodeError, OSError) as exc:
            logger.debug("DNS not yet propagated for %s: %s", domain, exc)
            return False
        addresses = sorted({info[4][0] for info in infos})
        logger.debug("DNS lookup for %s: %s", domain, addresses)
        return bool(addresses)

    async def aclose(self) -> None:
        """Release any network resources held by the provider."""
