# ============================================================================
# BASE CONTRACTS & ENUMS
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Foundation - Core enums for the foreman lifecycle
# PURPOSE: Define phase, readiness and recycle state enums
# LAST_REVIEWED: 18 OCT 2026
# EXPORTS: SignalMethod, ReadinessOutcome, ForemanPhase, RecycleState
# DEPENDENCIES: enum
# ============================================================================
"""
Base contracts for the foreman sidecar.

These enums are shared by the startup pipeline, the recycle state machine
and the logging context, so every log line names the same phase the code
is in.
"""

from enum import Enum


# ============================================================================
# READINESS
# ============================================================================

class SignalMethod(str, Enum):
    """Channel the backend uses to tell the foreman it is ready."""
    FILE = "file"              # Backend touches/modifies the signal file
    STDOUT = "stdout"          # Backend prints the readiness token


class ReadinessOutcome(str, Enum):
    """
    Result of the startup race.

    Exactly one outcome wins; the others are ignored.
    """
    EXITED = "exited"          # Backend exited or failed to spawn
    SIGNALED = "signaled"      # Readiness channel fired
    TIMED_OUT = "timed_out"    # Startup timer elapsed first

    def is_ready(self) -> bool:
        """A backend that never signals is assumed innocent."""
        return self in (ReadinessOutcome.SIGNALED, ReadinessOutcome.TIMED_OUT)


# ============================================================================
# PIPELINE PHASES
# ============================================================================

class ForemanPhase(str, Enum):
    """
    Startup pipeline phases, in execution order.

    CONFIG -> READINESS -> PORT_MAPPING -> HEALTH_CHECK -> REGISTRATION -> STEADY
    """
    CONFIG = "config"
    READINESS = "readiness"
    PORT_MAPPING = "port_mapping"
    HEALTH_CHECK = "health_check"
    REGISTRATION = "registration"
    STEADY = "steady"


# ============================================================================
# RECYCLE STATE MACHINE
# ============================================================================

class RecycleState(str, Enum):
    """
    Shutdown state machine.

    State transitions:
        STEADY -> RECYCLING -> COOLING_DOWN -> GRACE_PERIOD -> TERMINATED
    """
    STEADY = "steady"                  # Heartbeat running, route published
    RECYCLING = "recycling"            # Route being withdrawn
    COOLING_DOWN = "cooling_down"      # Draining in-flight traffic
    GRACE_PERIOD = "grace_period"      # Backend signaled, waiting for exit
    TERMINATED = "terminated"          # Hard ceiling reached

    def is_recycling(self) -> bool:
        """Check if recycle has already been entered."""
        return self is not RecycleState.STEADY


__all__ = [
    "SignalMethod",
    "ReadinessOutcome",
    "ForemanPhase",
    "RecycleState",
]
