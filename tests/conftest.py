# ============================================================================
# SHARED TEST FIXTURES
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Tests - Fakes for the store and the container runtime
# PURPOSE: Drive foreman components without etcd or Docker
# CREATED: 18 OCT 2026
# ============================================================================
"""
Shared fixtures.

InMemoryStore mimics the etcd v2 semantics the foreman relies on
(flat keys, recursive delete, TTL recorded but not enforced) and records
every operation in ``ops`` so tests can assert ordering. Failures are
injected per operation and key with ``fail()``.
"""

import asyncio
import sys
from typing import Any, Dict, List, Optional, Tuple

import pytest

from core.config import ForemanOptions, ForemanTunables
from core.errors import InspectionError, StoreError
from foreman.session import ForemanSession


# ============================================================================
# FAKES
# ============================================================================

class InMemoryStore:
    """KeyValueStore backed by a dict."""

    def __init__(self, data: Optional[Dict[str, Any]] = None, latency: float = 0.0):
        self.data: Dict[str, Any] = dict(data or {})
        self.ttls: Dict[str, Optional[int]] = {}
        self.ops: List[Tuple[str, str]] = []
        self.latency = latency
        self._failures: List[Tuple[str, Optional[str]]] = []

    def fail(self, operation: str, key: Optional[str] = None) -> None:
        """Make ``operation`` (get/set/delete/delete_sync) fail, optionally for one key."""
        self._failures.append((operation, key))

    def heal(self) -> None:
        self._failures.clear()

    def _check(self, operation: str, key: str) -> None:
        for op, failing_key in self._failures:
            if op == operation and (failing_key is None or failing_key == key):
                raise StoreError(f"injected {operation} failure for {key}", operation=operation, key=key)

    async def _delay(self) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)

    async def get_tree(self, key: str) -> Dict[str, Any]:
        await self._delay()
        self.ops.append(("get", key))
        self._check("get", key)
        prefix = key.rstrip("/") + "/"
        tree = {k[len(prefix):]: v for k, v in self.data.items() if k.startswith(prefix)}
        if not tree:
            raise StoreError(f"Key not found: {key}", operation="get", key=key, status_code=404)
        return tree

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        await self._delay()
        self.ops.append(("set", key))
        self._check("set", key)
        self.data[key] = value
        self.ttls[key] = ttl

    def _delete(self, operation: str, key: str, recursive: bool) -> None:
        self.ops.append((operation, key))
        self._check(operation, key)
        prefix = key.rstrip("/") + "/"
        doomed = [k for k in self.data if k == key or (recursive and k.startswith(prefix))]
        if not doomed:
            raise StoreError(f"Key not found: {key}", operation=operation, key=key, status_code=404)
        for k in doomed:
            self.data.pop(k, None)
            self.ttls.pop(k, None)

    async def delete(self, key: str, recursive: bool = False) -> None:
        await self._delay()
        self._delete("delete", key, recursive)

    def delete_sync(self, key: str, recursive: bool = False) -> None:
        self._delete("delete_sync", key, recursive)

    def keys_under(self, path: str) -> List[str]:
        prefix = path.rstrip("/") + "/"
        return sorted(k for k in self.data if k.startswith(prefix))


def port_attrs(internal_port: str, *host_ports: str) -> Dict[str, Any]:
    """Container inspect document with the given bindings."""
    return {
        "Name": "/docs-1",
        "NetworkSettings": {
            "Ports": {
                f"{internal_port}/tcp": [
                    {"HostIp": "0.0.0.0", "HostPort": hp} for hp in host_ports
                ],
            },
        },
    }


class FakeInspector:
    """ContainerRuntime returning canned inspect documents in order."""

    def __init__(self, responses: Optional[List[Dict[str, Any]]] = None, error: Optional[Exception] = None):
        self.responses = list(responses or [{"NetworkSettings": {"Ports": {}}}])
        self.error = error
        self.calls: List[str] = []

    async def inspect(self, container_name: str) -> Dict[str, Any]:
        self.calls.append(container_name)
        if self.error is not None:
            raise self.error
        index = min(len(self.calls), len(self.responses)) - 1
        return self.responses[index]


# ============================================================================
# FIXTURES
# ============================================================================

CONFIG_VALUES = {
    "container_registration_timeout": "5",
    "docker_port_registration_retry_count": "3",
    "docker_port_registration_retry_delay": "100",
    "docker_port_registration_retry_backoff": "2",
    "cooldown_timeout": "0.05",
    "graceful_shutdown_timeout": "2",
    "log_server": "logs.internal:514",
}


@pytest.fixture
def config_values():
    return dict(CONFIG_VALUES)


@pytest.fixture
def tunables(config_values):
    return ForemanTunables.model_validate(config_values)


@pytest.fixture
def store(config_values):
    return InMemoryStore({f"/config/{k}": v for k, v in config_values.items()})


@pytest.fixture
def make_options(tmp_path):
    """Options factory; the backend is a Python one-liner by default."""

    def factory(script: str = "import time; time.sleep(30)", **overrides) -> ForemanOptions:
        values = dict(
            app_name="docs",
            app_id="1",
            coreos_host="10.0.0.5",
            image="registry.local/docs:1.4",
            backend_cmd=sys.executable,
            backend_args=["-c", script],
            signal_file=str(tmp_path / "backend_signal"),
        )
        values.update(overrides)
        return ForemanOptions(**values)

    return factory


@pytest.fixture
def options(make_options):
    return make_options()


@pytest.fixture
def session(options, tunables):
    s = ForemanSession(options)
    s.tunables = tunables
    return s


@pytest.fixture
def unmapped_inspector():
    return FakeInspector()


@pytest.fixture
def failing_inspector():
    return FakeInspector(error=InspectionError("Failed to inspect container docs-1: connection refused"))
