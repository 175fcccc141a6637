"""DNS provider factory for Termfleet.

Usage::

    from termfleet.dns import get_dns_provider
    dns = get_dns_provider(settings)
    domain = await dns.upsert_record("desk1", "10.0.0.5")
"""

from __future__ import annotations

from termfleet.config import Settings

from .base import DNSProvider, DNSProviderError
from .spaceship import SpaceshipDNSProvider

__all__ = ["DNSProvider", "DNSProviderError", "SpaceshipDNSProvider", "get_dns_provider"]


def get_dns_provider(settings: Settings) -> DNSProvider:
    """Return the DNS provider configured by *settings*."""
    return SpaceshipDNSProvider(
        api_key=settings.spaceship_api_key,
        api_secret=settings.spaceship_api_secret,
        base_domain=settings.base_domain,
        ttl=settings.dns_ttl,
        api_url=settings.spaceship_api_url,
    )
