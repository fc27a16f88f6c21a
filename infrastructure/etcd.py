# ============================================================================
# ETCD KEY STORE CLIENT
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Infrastructure - Distributed configuration store
# PURPOSE: get/set/delete with TTL over the etcd v2 keys HTTP API
# CREATED: 18 OCT 2026
# ============================================================================
"""
Etcd Key Store Client

Thin httpx wrapper around the etcd v2 keys API (``/v2/keys/...``), the
only store operations the foreman needs:

- get_tree: read a directory (``/config``) into a dict
- set: write one key, optionally with a TTL lease
- delete: remove a key or, recursively, a directory
- delete_sync: blocking delete used by last-resort cleanup, which must
  work from atexit hooks where no event loop is running

Errors (transport failures and non-2xx answers) are raised as StoreError
carrying the operation and key; the etcd error payload, when present,
becomes the message.

Usage:
    store = EtcdClient(host="10.0.0.5", port=4001)
    config = await store.get_tree("/config")
    await store.set("/routes/docs/1/port", "49153", ttl=60)
    await store.delete("/routes/docs/1", recursive=True)
"""

import logging
from typing import Any, Dict, Optional, Protocol, Union

import httpx

from core.errors import StoreError

logger = logging.getLogger(__name__)

# Timeout: store calls sit on the startup and heartbeat paths
DEFAULT_TIMEOUT = httpx.Timeout(connect=5.0, read=10.0, write=10.0, pool=5.0)

# Cleanup runs while the process is exiting; keep it short
CLEANUP_TIMEOUT = httpx.Timeout(3.0)


class KeyValueStore(Protocol):
    """Store operations used by the foreman."""

    async def get_tree(self, key: str) -> Dict[str, Any]: ...

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None: ...

    async def delete(self, key: str, recursive: bool = False) -> None: ...

    def delete_sync(self, key: str, recursive: bool = False) -> None: ...


class EtcdClient:
    """Async etcd v2 client (plus one blocking delete for cleanup)."""

    def __init__(
        self,
        host: str,
        port: int = 4001,
        timeout: Optional[httpx.Timeout] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sync_transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize client.

        Args:
            host: Store host (the CoreOS host in production)
            port: Client port of the etcd v2 API
            timeout: Request timeout for async calls
            transport: Optional async transport (tests use httpx.MockTransport)
            sync_transport: Optional transport for delete_sync
        """
        self._base_url = f"http://{host}:{port}"
        self._timeout = timeout or DEFAULT_TIMEOUT
        self._sync_transport = sync_transport
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    @staticmethod
    def _path(key: str) -> str:
        return "/v2/keys/" + key.lstrip("/")

    @staticmethod
    def _raise_for_response(operation: str, key: str, resp: httpx.Response) -> None:
        """Translate a non-2xx etcd answer into StoreError."""
        if resp.is_success:
            return

        try:
            body = resp.json()
            detail = f"{body.get('message', 'error')} (errorCode={body.get('errorCode')})"
        except ValueError:
            detail = resp.text or resp.reason_phrase

        raise StoreError(
            f"etcd {operation} {key} failed with HTTP {resp.status_code}: {detail}",
            operation=operation,
            key=key,
            status_code=resp.status_code,
        )

    async def _request(
        self,
        operation: str,
        method: str,
        key: str,
        params: Optional[Dict[str, str]] = None,
        data: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        try:
            resp = await self._client.request(method, self._path(key), params=params, data=data)
        except httpx.HTTPError as e:
            raise StoreError(
                f"etcd {operation} {key} failed: {e}",
                operation=operation,
                key=key,
            ) from e

        self._raise_for_response(operation, key, resp)
        return resp

    # ------------------------------------------------------------------
    # READ
    # ------------------------------------------------------------------

    async def get_tree(self, key: str) -> Dict[str, Any]:
        """
        Read a directory recursively.

        Returns:
            {name: value} keyed by the path segment below ``key``; nested
            directories become nested dicts.
        """
        resp = await self._request("get", "GET", key, params={"recursive": "true"})
        try:
            node = resp.json()["node"]
        except (ValueError, KeyError) as e:
            raise StoreError(f"etcd get {key} returned malformed body", operation="get", key=key) from e

        if not node.get("dir"):
            raise StoreError(f"etcd key {key} is not a directory", operation="get", key=key)

        return self._flatten(node)

    @classmethod
    def _flatten(cls, node: Dict[str, Any]) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for child in node.get("nodes", []):
            name = child["key"].rsplit("/", 1)[-1]
            if child.get("dir"):
                result[name] = cls._flatten(child)
            else:
                result[name] = child.get("value")
        return result

    # ------------------------------------------------------------------
    # WRITE
    # ------------------------------------------------------------------

    async def set(self, key: str, value: Union[str, int, float], ttl: Optional[int] = None) -> None:
        """Write a key; with ``ttl`` the key expires unless rewritten in time."""
        data = {"value": str(value)}
        if ttl is not None:
            data["ttl"] = str(int(ttl))
        await self._request("set", "PUT", key, data=data)

    async def delete(self, key: str, recursive: bool = False) -> None:
        """Delete a key, or a directory and everything under it."""
        params = {"recursive": "true"} if recursive else None
        await self._request("delete", "DELETE", key, params=params)

    def delete_sync(self, key: str, recursive: bool = False) -> None:
        """
        Blocking delete for exit paths.

        Raises StoreError like the async variant; callers on exit paths
        catch and log it.
        """
        params = {"recursive": "true"} if recursive else None
        try:
            with httpx.Client(
                base_url=self._base_url,
                timeout=CLEANUP_TIMEOUT,
                transport=self._sync_transport,
            ) as client:
                resp = client.delete(self._path(key), params=params)
        except httpx.HTTPError as e:
            raise StoreError(f"etcd delete {key} failed: {e}", operation="delete", key=key) from e

        self._raise_for_response("delete", key, resp)

    async def close(self) -> None:
        """Close the pooled async client."""
        await self._client.aclose()


__all__ = ["KeyValueStore", "EtcdClient"]
