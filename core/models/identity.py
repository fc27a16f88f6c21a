# ============================================================================
# FOREMAN IDENTITY MODEL
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Core - Instance identity and store layout
# PURPOSE: Derive container name and registration key paths
# CREATED: 18 OCT 2026
# ============================================================================
"""
Foreman Identity

(app_name, app_id) is immutable for the process lifetime and determines
both the container the runtime knows us by and where our registration
lives in the store:

    /routes/{app_name}/{app_id}/created
    /routes/{app_name}/{app_id}/image
    /routes/{app_name}/{app_id}/host
    /routes/{app_name}/{app_id}/port        (TTL lease)
    /routes/{app_name}/{app_id}/recycling
"""

from pydantic import BaseModel, Field

ROUTES_ROOT = "/routes"
CONFIG_ROOT = "/config"


class ForemanIdentity(BaseModel):
    """Who this foreman registers as."""

    app_name: str = Field(..., min_length=1, description="Application name (e.g. 'docs')")
    app_id: str = Field(..., min_length=1, description="Instance id unique within the application")

    model_config = {"frozen": True}

    @property
    def container_name(self) -> str:
        """Container name as known to the container runtime."""
        return f"{self.app_name}-{self.app_id}"

    @property
    def config_path(self) -> str:
        """Root of this instance's registration subtree."""
        return f"{ROUTES_ROOT}/{self.app_name}/{self.app_id}"

    def key(self, name: str) -> str:
        """Path of one registration key (created, image, host, port, recycling)."""
        return f"{self.config_path}/{name}"


__all__ = ["ForemanIdentity", "ROUTES_ROOT", "CONFIG_ROOT"]
