"""
Session backend interface.

Defines the contract a durable key/value backend must satisfy for the
SessionStore: point read, upsert by tenant, point delete and a range read by
the `updated_at` column. Backends raise StorageUnavailable on I/O failure;
the SessionStore is responsible for degrading those errors.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class StoredSessionRecord:
    """Raw row as held by a backend: encoded payload plus its timestamp."""

    tenant_id: str
    payload: str
    updated_at: datetime


class ISessionBackend(ABC):
    """
    Interface for session persistence backends.

    Upserts are last-write-wins on `updated_at`: a write whose timestamp is
    older than the stored one must leave the stored record untouched, and a
    record is always replaced as a whole (payload and timestamp together).
    """

    name: str = "abstract"

    @abstractmethod
    async def read(self, tenant_id: str) -> StoredSessionRecord | None:
        """
        Read the stored record for a tenant.

        Returns:
            The record, or None if no row exists
        """
        pass

    @abstractmethod
    async def read_updated_at(self, tenant_id: str) -> datetime | None:
        """Read only the timestamp of a tenant's record."""
        pass

    @abstractmethod
    async def upsert(self, record: StoredSessionRecord) -> bool:
        """
        Insert or replace a tenant's record.

        Returns:
            True if the record was written, False if a newer one was kept
        """
        pass

    @abstractmethod
    async def delete(self, tenant_id: str) -> bool:
        """
        Delete a tenant's record.

        Returns:
            True if a record was removed, False if none existed
        """
        pass

    @abstractmethod
    async def list_updated_since(self, cutoff: datetime) -> list[tuple[str, datetime]]:
        """
        List tenants whose record was updated at or after ``cutoff``.

        Returns:
            (tenant_id, updated_at) pairs, oldest first
        """
        pass

    @abstractmethod
    async def purge_updated_before(self, cutoff: datetime) -> int:
        """
        Remove records updated before ``cutoff``.

        Returns:
            Number of records removed
        """
        pass

    # ---- connection presence ----------------------------------------------

    @abstractmethod
    async def set_presence(self, tenant_id: str, payload: str, ttl: int) -> bool:
        """Store a short-lived presence marker for a connected tenant."""
        pass

    @abstractmethod
    async def get_presence(self, tenant_id: str) -> str | None:
        """Read a tenant's presence marker, or None if absent/expired."""
        pass

    @abstractmethod
    async def clear_presence(self, tenant_id: str) -> bool:
        """Remove a tenant's presence marker."""
        pass

    async def health(self) -> dict[str, Any]:
        """Backend health for the /health endpoint."""
        return {"backend": self.name, "status": "healthy"}

    async def close(self) -> None:
        """Release backend resources."""
        return None
