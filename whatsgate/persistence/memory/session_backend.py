"""
In-memory session backend.

Suitable for development, testing and single-process deployments. Sessions
are lost when the process exits.
"""

import asyncio
import logging
from datetime import UTC, datetime, timedelta

from ...domain.interfaces.session_repository import ISessionBackend, StoredSessionRecord

logger = logging.getLogger("MemorySessionBackend")


class MemorySessionBackend(ISessionBackend):
    """
    Lock-guarded in-memory session backend.

    Storage Structure:
    {
        "sessions": {tenant_id: StoredSessionRecord},
        "presence": {tenant_id: (payload, expires_at)}
    }
    """

    name = "memory"

    def __init__(self):
        self._sessions: dict[str, StoredSessionRecord] = {}
        self._presence: dict[str, tuple[str, datetime]] = {}
        self._lock = asyncio.Lock()

    async def read(self, tenant_id: str) -> StoredSessionRecord | None:
        async with self._lock:
            return self._sessions.get(tenant_id)

    async def read_updated_at(self, tenant_id: str) -> datetime | None:
        async with self._lock:
            record = self._sessions.get(tenant_id)
            return record.updated_at if record else None

    async def upsert(self, record: StoredSessionRecord) -> bool:
        async with self._lock:
            current = self._sessions.get(record.tenant_id)
            if current is not None and current.updated_at > record.updated_at:
                logger.debug(
                    f"Kept newer session for '{record.tenant_id}' "
                    f"({current.updated_at.isoformat()} > {record.updated_at.isoformat()})"
                )
                return False
            self._sessions[record.tenant_id] = record
            return True

    async def delete(self, tenant_id: str) -> bool:
        async with self._lock:
            return self._sessions.pop(tenant_id, None) is not None

    async def list_updated_since(self, cutoff: datetime) -> list[tuple[str, datetime]]:
        async with self._lock:
            rows = [
                (record.tenant_id, record.updated_at)
                for record in self._sessions.values()
                if record.updated_at >= cutoff
            ]
        return sorted(rows, key=lambda row: row[1])

    async def purge_updated_before(self, cutoff: datetime) -> int:
        async with self._lock:
            expired = [
                tenant_id
                for tenant_id, record in self._sessions.items()
                if record.updated_at < cutoff
            ]
            for tenant_id in expired:
                del self._sessions[tenant_id]
        if expired:
            logger.debug(f"Purged {len(expired)} expired sessions from memory")
        return len(expired)

    # ---- connection presence ----------------------------------------------

    async def set_presence(self, tenant_id: str, payload: str, ttl: int) -> bool:
        expires_at = datetime.now(UTC) + timedelta(seconds=ttl)
        async with self._lock:
            self._presence[tenant_id] = (payload, expires_at)
        return True

    async def get_presence(self, tenant_id: str) -> str | None:
        async with self._lock:
            entry = self._presence.get(tenant_id)
            if entry is None:
                return None
            payload, expires_at = entry
            if datetime.now(UTC) > expires_at:
                # Expired, remove and return None
                del self._presence[tenant_id]
                return None
            return payload

    async def clear_presence(self, tenant_id: str) -> bool:
        async with self._lock:
            return self._presence.pop(tenant_id, None) is not None

    async def health(self) -> dict:
        async with self._lock:
            count = len(self._sessions)
        return {"backend": self.name, "status": "healthy", "sessions": count}
