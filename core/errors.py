# ============================================================================
# FOREMAN ERRORS
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Foundation - Error taxonomy
# PURPOSE: Startup, store and option errors raised across the foreman
# CREATED: 18 OCT 2026
# ============================================================================
"""
Foreman Errors

Startup-phase errors derive from ForemanError and are fatal: the driver
logs them, runs last-resort cleanup and exits with ``exit_code``.

StoreError is raised by the store client. During startup it is wrapped
into the phase error; in steady state the heartbeat turns it into a
graceful recycle instead of a crash.
"""

from typing import Optional

from core.contracts import ForemanPhase


class OptionsError(AssertionError):
    """Raised when required environment variables or argv are missing."""
    pass


class StoreError(Exception):
    """Base exception for configuration store operations."""

    def __init__(
        self,
        message: str,
        operation: str = None,
        key: str = None,
        status_code: Optional[int] = None,
    ):
        self.operation = operation
        self.key = key
        self.status_code = status_code
        super().__init__(message)


# ============================================================================
# STARTUP PIPELINE ERRORS
# ============================================================================

class ForemanError(Exception):
    """Base exception for unrecoverable startup errors."""

    exit_code: int = 1
    default_phase: Optional[ForemanPhase] = None

    def __init__(self, message: str, phase: Optional[ForemanPhase] = None):
        self.phase = phase or self.default_phase
        super().__init__(message)


class ConfigFetchError(ForemanError):
    """Store unreachable or /config malformed."""
    default_phase = ForemanPhase.CONFIG


class BackendStartupError(ForemanError):
    """Backend exited (or never spawned) before becoming ready."""
    default_phase = ForemanPhase.READINESS


class InspectionError(ForemanError):
    """Container runtime unreachable or returned an API error. Not retried."""
    default_phase = ForemanPhase.PORT_MAPPING


class PortMappingTimeoutError(ForemanError):
    """Port mapping retries exhausted."""
    default_phase = ForemanPhase.PORT_MAPPING


class HealthCheckError(ForemanError):
    """Health endpoint answered non-200 or could not be reached."""
    default_phase = ForemanPhase.HEALTH_CHECK

    def __init__(self, message: str, url: str, status_code: Optional[int] = None):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class RegistrationError(ForemanError):
    """Static registration write failed."""
    default_phase = ForemanPhase.REGISTRATION


__all__ = [
    "OptionsError",
    "StoreError",
    "ForemanError",
    "ConfigFetchError",
    "BackendStartupError",
    "InspectionError",
    "PortMappingTimeoutError",
    "HealthCheckError",
    "RegistrationError",
]
