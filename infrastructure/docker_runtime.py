# ============================================================================
# CONTAINER RUNTIME INSPECTION
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Infrastructure - Docker remote API
# PURPOSE: Inspect our own container to find its published host port
# CREATED: 18 OCT 2026
# ============================================================================
"""
Container Runtime Inspection

The foreman runs inside the container it supervises and asks the Docker
daemon on the host (remote API, tcp://COREOS_HOST:2375) which host port
was bound to the backend's internal port.

The docker SDK is blocking, so inspections run in a worker thread; the
port poller never has more than one in flight.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Protocol

import docker
from docker.errors import DockerException

from core.errors import InspectionError

logger = logging.getLogger(__name__)


class ContainerRuntime(Protocol):
    """Container inspection used by the port poller."""

    async def inspect(self, container_name: str) -> Dict[str, Any]: ...


class ContainerInspector:
    """Docker SDK backed inspector."""

    def __init__(self, host: str, port: int = 2375, timeout: int = 30):
        self._base_url = f"tcp://{host}:{port}"
        self._timeout = timeout
        self._client: Optional[docker.DockerClient] = None

    def _get_client(self) -> docker.DockerClient:
        # Construction negotiates the API version, so it can fail too
        if self._client is None:
            self._client = docker.DockerClient(base_url=self._base_url, timeout=self._timeout)
        return self._client

    def _inspect_blocking(self, container_name: str) -> Dict[str, Any]:
        container = self._get_client().containers.get(container_name)
        return container.attrs

    async def inspect(self, container_name: str) -> Dict[str, Any]:
        """
        Inspect a container by name.

        Returns:
            The raw inspect document (``NetworkSettings.Ports`` etc.)

        Raises:
            InspectionError: Daemon unreachable, container unknown, API error
        """
        try:
            return await asyncio.to_thread(self._inspect_blocking, container_name)
        except (DockerException, OSError) as e:
            raise InspectionError(
                f"Failed to inspect container {container_name} via {self._base_url}: {e}"
            ) from e

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


def find_host_port(attrs: Dict[str, Any], internal_port: str) -> Optional[str]:
    """
    Find the host port published for ``{internal_port}/tcp``.

    Only an unambiguous mapping counts: exactly one binding with a
    nonempty HostPort. Anything else means "not mapped yet".
    """
    network = attrs.get("NetworkSettings") if isinstance(attrs, dict) else None
    if not isinstance(network, dict):
        return None

    ports = network.get("Ports")
    if not isinstance(ports, dict):
        return None

    bindings = ports.get(f"{internal_port}/tcp")
    if not isinstance(bindings, list) or len(bindings) != 1:
        return None

    binding = bindings[0]
    if not isinstance(binding, dict):
        return None

    return binding.get("HostPort") or None


__all__ = ["ContainerRuntime", "ContainerInspector", "find_host_port"]
