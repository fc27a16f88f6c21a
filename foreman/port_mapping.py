# ============================================================================
# PORT MAPPING POLLER
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Core - Route discovery
# PURPOSE: Poll the container runtime until the backend port is published
# CREATED: 18 OCT 2026
# ============================================================================
"""
Port Mapping Poller

Docker may publish the container's ports a little after the container
starts, so the foreman inspects its own container until the backend's
internal port shows up with a host port.

Retry policy (compatibility-sensitive, kept exactly as deployed):

    after each miss:  attempts -= 1
                      delay    *= floor(delay * backoff)     (milliseconds)

The delay is recomputed before the sleep, so the very first wait already
uses the grown value: delay=100, backoff=2 sleeps 20 000 ms, then
800 000 000 ms. An inspection error is an infrastructure failure and is
raised immediately, never retried.
"""

import asyncio
import logging
import math
from typing import Awaitable, Callable, List, Optional

from core.config import ForemanTunables
from core.errors import PortMappingTimeoutError
from infrastructure.docker_runtime import ContainerRuntime, find_host_port

logger = logging.getLogger(__name__)


def next_delay(delay: float, backoff: float) -> float:
    """Delay growth: ``delay * floor(delay * backoff)``."""
    return delay * math.floor(delay * backoff)


class PortMappingPoller:
    """Find the host port bound to ``{internal_port}/tcp``."""

    def __init__(
        self,
        runtime: ContainerRuntime,
        container_name: str,
        internal_port: str,
        attempts: int,
        delay_ms: float,
        backoff: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        self.runtime = runtime
        self.container_name = container_name
        self.internal_port = internal_port
        self.attempts = attempts
        self.delay_ms = delay_ms
        self.backoff = backoff
        self._sleep = sleep

        # Populated while polling
        self.inspections = 0
        self.waits_ms: List[float] = []

    @classmethod
    def from_tunables(
        cls,
        runtime: ContainerRuntime,
        container_name: str,
        internal_port: str,
        tunables: ForemanTunables,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> "PortMappingPoller":
        return cls(
            runtime,
            container_name,
            internal_port,
            attempts=tunables.docker_port_registration_retry_count,
            delay_ms=tunables.docker_port_registration_retry_delay,
            backoff=tunables.docker_port_registration_retry_backoff,
            sleep=sleep or asyncio.sleep,
        )

    async def poll(self) -> str:
        """
        Inspect until mapped.

        Returns:
            Host port as a string

        Raises:
            InspectionError: Runtime unreachable or API error (not retried)
            PortMappingTimeoutError: All attempts used up
        """
        attempts = self.attempts
        delay = self.delay_ms

        while True:
            attrs = await self.runtime.inspect(self.container_name)
            self.inspections += 1

            attempts -= 1
            delay = next_delay(delay, self.backoff)

            host_port = find_host_port(attrs, self.internal_port)
            logger.info(
                f"Waiting for Docker port mapping of {self.internal_port}/tcp: "
                f"inspection={self.inspections} attempts_left={attempts} host_port={host_port}"
            )
            if host_port:
                return host_port

            if attempts <= 0:
                raise PortMappingTimeoutError(
                    f"Timeout waiting for the container {self.container_name} "
                    f"to establish a port mapping."
                )

            self.waits_ms.append(delay)
            await self._sleep(delay / 1000.0)


__all__ = ["PortMappingPoller", "next_delay"]
