# ============================================================================
# CORE MODULE
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Core module initialization
# PURPOSE: Export core contracts, errors and models
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================

from core.contracts import ForemanPhase, ReadinessOutcome, RecycleState, SignalMethod
from core.errors import (
    ForemanError,
    ConfigFetchError,
    BackendStartupError,
    InspectionError,
    PortMappingTimeoutError,
    HealthCheckError,
    RegistrationError,
    StoreError,
    OptionsError,
)
from core.models import ForemanIdentity, RouteLease

__all__ = [
    # Enums
    "ForemanPhase",
    "ReadinessOutcome",
    "RecycleState",
    "SignalMethod",
    # Errors
    "ForemanError",
    "ConfigFetchError",
    "BackendStartupError",
    "InspectionError",
    "PortMappingTimeoutError",
    "HealthCheckError",
    "RegistrationError",
    "StoreError",
    "OptionsError",
    # Models
    "ForemanIdentity",
    "RouteLease",
]
