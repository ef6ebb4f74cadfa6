"""
Session models shared by the codec, the store and the lifecycle controller.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


class TenantSession(BaseModel):
    """Persisted auth state of one tenant.

    ``credentials`` and ``key_material`` are opaque to the gateway: they are
    produced and consumed by the protocol library and may contain raw bytes
    at any depth.
    """

    tenant_id: str = Field(..., min_length=1)
    credentials: dict[str, Any] = Field(default_factory=dict)
    key_material: dict[str, dict[str, Any]] = Field(default_factory=dict)
    updated_at: datetime | None = None

    @property
    def is_registered(self) -> bool:
        """True once the pairing handshake has completed."""
        return bool(self.credentials.get("registered"))


class SessionInfo(BaseModel):
    """Derived, read-only view of a session's remaining lifetime."""

    exists: bool
    ttl_seconds: int
    expires_in_human: str
    updated_at: datetime | None = None

    @classmethod
    def not_found(cls) -> "SessionInfo":
        return cls(exists=False, ttl_seconds=-2, expires_in_human="session not found")


class SessionPresence(BaseModel):
    """Marker written while a tenant's connection is open."""

    tenant_id: str
    connected_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    user_info: dict[str, Any] | None = None
