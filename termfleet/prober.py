"""Workstation health prober.

One HTTPS GET per call against ``https://<domain_name>/``.  Redirects are
followed and the final answer must be a 200 to count as healthy; timeouts,
connection errors and every other status are failures.  There are no retries here: the reconciler's cadence is the
retry loop.
"""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)


class HealthProber:
    """Bounded-timeout reachability check for workstation endpoints.

    A single :class:`httpx.AsyncClient` is reused across probes for
    connection pooling.  Call :meth:`aclose` when done.
    """

    def __init__(
        self,
        timeout: float = 10.0,
        verify_tls: bool = True,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.timeout = timeout
        self.verify_tls = verify_tls
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                verify=self.verify_tls,
                follow_redirects=True,
                timeout=self.timeout,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()

    async def probe(self, domain_name: str | None, timeout: float | None = None) -> bool:
        """Return ``True`` iff ``https://<domain_name>/`` answers 200 in time.

        A workstation without a domain fails without touching the network.
        """
        if not domain_name:
            return False

        url = f"https://{domain_name}/"
        client = await self._get_client()
        try:
            resp = await client.get(url, timeout=timeout if timeout is not None else self.timeout)
        except httpx.HTTPError as exc:
            logger.debug("Probe failed: %s (%s: %s)", url, type(exc).__name__, exc)
            return False

        if resp.status_code != 200:
            logger.debug("Probe failed: %s (HTTP %d)", url, resp.status_code)
            return False
        return True
