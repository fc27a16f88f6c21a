# ============================================================================
# MODELS MODULE
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Model exports
# PURPOSE: Central export point for foreman models
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================
"""
Models Module - Central Export Point
"""

from core.models.identity import ForemanIdentity, ROUTES_ROOT, CONFIG_ROOT
from core.models.lease import RouteLease

__all__ = [
    "ForemanIdentity",
    "ROUTES_ROOT",
    "CONFIG_ROOT",
    "RouteLease",
]
