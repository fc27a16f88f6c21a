# ============================================================================
# ROUTE LEASE MODEL
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Core - TTL lease for the published route
# PURPOSE: Lease TTL and renewal cadence for the port key
# CREATED: 18 OCT 2026
# ============================================================================
"""
Route Lease Model

The port key is written with a store-side TTL and renewed by the
heartbeat. If the foreman dies without cleaning up, the route expires on
its own and traffic stops being sent here.

Key properties:
- Lease expires automatically if not renewed within TTL (60s)
- Renewal every 45s leaves a 15s margin, enough to survive one slow cycle
- Recycle deletes the key explicitly instead of waiting for expiry
"""

from pydantic import BaseModel, Field, model_validator


class RouteLease(BaseModel):
    """
    Lease parameters for the route entry.

    Renewal must happen strictly before expiry.
    """

    lease_ttl_sec: float = Field(
        default=60,
        gt=0,
        description="Store-side TTL of the port key"
    )
    renew_interval_sec: float = Field(
        default=45,
        gt=0,
        description="Delay between successful renewals"
    )

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _renew_before_expiry(self) -> "RouteLease":
        if self.renew_interval_sec >= self.lease_ttl_sec:
            raise ValueError(
                f"renew_interval_sec ({self.renew_interval_sec}) must be shorter "
                f"than lease_ttl_sec ({self.lease_ttl_sec})"
            )
        return self

    @property
    def margin_sec(self) -> float:
        """Slack between renewal and expiry."""
        return self.lease_ttl_sec - self.renew_interval_sec


__all__ = ['RouteLease']
