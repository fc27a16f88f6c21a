# ============================================================================
# INFRASTRUCTURE MODULE
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Infrastructure - External collaborators
# PURPOSE: Configuration store and container runtime clients
# CREATED: 18 OCT 2026
# ============================================================================
"""
Infrastructure module for the foreman.

Provides:
- EtcdClient: etcd v2 keys API (config fetch, registration, TTL lease)
- ContainerInspector: Docker remote API inspection for port mappings

Usage:
    from infrastructure import EtcdClient, ContainerInspector

    store = EtcdClient(host)
    runtime = ContainerInspector(host)
"""

from infrastructure.etcd import EtcdClient, KeyValueStore
from infrastructure.docker_runtime import (
    ContainerInspector,
    ContainerRuntime,
    find_host_port,
)

__all__ = [
    "EtcdClient",
    "KeyValueStore",
    "ContainerInspector",
    "ContainerRuntime",
    "find_host_port",
]
