from __future__ import annotations

from pydantic import BaseModel, Field


class KeyFactory(BaseModel):
    """Pure stateless helpers for session key generation."""

    prefix: str = Field(default="whatsgate")
    session_marker: str = Field(default="session")
    index_marker: str = Field(default="sessions")
    presence_marker: str = Field(default="connected")

    # ---- builders ---------------------------------------------------------
    def session(self, tenant_id: str) -> str:
        return f"{self.prefix}:{self.session_marker}:{tenant_id}"

    def index(self) -> str:
        return f"{self.prefix}:{self.index_marker}"

    def presence(self, tenant_id: str) -> str:
        return f"{self.prefix}:{self.presence_marker}:{tenant_id}"
