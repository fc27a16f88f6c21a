# ============================================================================
# HEALTH PROBE
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Core - Pre-registration liveness check
# PURPOSE: One HTTP GET against the backend before it is published
# CREATED: 18 OCT 2026
# ============================================================================
"""
Health Probe

One GET to http://{COREOS_HOST}:{route}{APP_HEALTH_URL}. Only status 200
counts as healthy. Keep-alive is disabled so the probe's connection cannot
keep the backend from shutting down later.
"""

import logging
from typing import Optional

import httpx

from core.errors import HealthCheckError

logger = logging.getLogger(__name__)


class HealthProber:
    """Single-shot health check."""

    def __init__(
        self,
        host: str,
        health_path: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.host = host
        self.health_path = health_path
        self._timeout = httpx.Timeout(timeout)
        self._transport = transport

    def url_for(self, route: str) -> str:
        return f"http://{self.host}:{route}{self.health_path}"

    async def probe(self, route: str) -> int:
        """
        Probe the backend through its published route.

        Returns:
            The status code (always 200)

        Raises:
            HealthCheckError: Non-200 answer or transport failure
        """
        url = self.url_for(route)
        logger.info(f"Probing health endpoint {url}")

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                limits=httpx.Limits(max_keepalive_connections=0),
                transport=self._transport,
            ) as client:
                resp = await client.get(url, headers={"Connection": "close"})
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"Health endpoint error at {url}: {e}")
            raise HealthCheckError(
                f"Backend failed to respond to health check at {url}: {e}",
                url=url,
            ) from e

        logger.info(f"Health endpoint response {resp.status_code}")
        if resp.status_code != 200:
            raise HealthCheckError(
                f"Backend did not respond to health check at {url} "
                f"with status code 200: {resp.status_code}",
                url=url,
                status_code=resp.status_code,
            )
        return resp.status_code


__all__ = ["HealthProber"]
