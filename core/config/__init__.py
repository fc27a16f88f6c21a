# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# CREATED: 18 OCT 2026
# ============================================================================
"""
Configuration Module

Provides process options and store tunables for the foreman.
"""

from core.config.defaults import (
    DEFAULT_SIGNAL_FILE,
    ForemanOptions,
    ForemanTunables,
)

__all__ = [
    "DEFAULT_SIGNAL_FILE",
    "ForemanOptions",
    "ForemanTunables",
]
