# ============================================================================
# FOREMAN MODULE
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Core - Lifecycle state machine
# PURPOSE: Supervise one backend and keep its route registration honest
# CREATED: 18 OCT 2026
# ============================================================================
"""
Foreman lifecycle components.

Usage:
    from foreman import ForemanDriver

    driver = ForemanDriver(options, store, runtime)
    exit_code = await driver.run()
"""

from foreman.session import BackendHandle, ForemanSession, TimerSet
from foreman.readiness import (
    FileReadinessChannel,
    ReadinessChannel,
    StdoutReadinessChannel,
    build_readiness_channel,
)
from foreman.backend import BackendSupervisor
from foreman.port_mapping import PortMappingPoller, next_delay
from foreman.health_probe import HealthProber
from foreman.cleanup import LastResortCleanup
from foreman.registration import HEARTBEAT_FAILURE_EXIT_CODE, RegistrationManager
from foreman.recycle import RecycleOrchestrator
from foreman.driver import DEFAULT_ROUTE, ForemanDriver

__all__ = [
    # Session
    "BackendHandle",
    "ForemanSession",
    "TimerSet",
    # Readiness
    "FileReadinessChannel",
    "ReadinessChannel",
    "StdoutReadinessChannel",
    "build_readiness_channel",
    # Components
    "BackendSupervisor",
    "PortMappingPoller",
    "next_delay",
    "HealthProber",
    "LastResortCleanup",
    "RegistrationManager",
    "HEARTBEAT_FAILURE_EXIT_CODE",
    "RecycleOrchestrator",
    # Driver
    "ForemanDriver",
    "DEFAULT_ROUTE",
]
