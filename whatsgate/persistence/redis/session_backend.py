"""
Redis session backend.

Key layout (prefix defaults to ``whatsgate``):

    {prefix}:session:{tenant}    hash   payload, updated_at, updated_at_ts
    {prefix}:sessions            zset   tenant -> updated_at epoch
    {prefix}:connected:{tenant}  string presence marker (SETEX)

The sorted set serves the range read by `updated_at`; the hash carries the
record itself. Record hashes also get a Redis EXPIRE a day past retention so
an abandoned tenant does not linger forever if nobody purges.
"""

import logging
from datetime import datetime

from ...domain.errors import StorageUnavailable
from ...domain.interfaces.session_repository import ISessionBackend, StoredSessionRecord
from . import ops
from .key_factory import KeyFactory
from .redis_manager import RedisManager

logger = logging.getLogger("RedisSessionBackend")

EXPIRY_SLACK_SECONDS = 86400


class RedisSessionBackend(ISessionBackend):
    """
    Redis implementation of ISessionBackend.

    Requires RedisManager to be initialized (done by the session store plugin).
    """

    name = "redis"

    def __init__(self, key_prefix: str = "whatsgate", retention_seconds: int = 30 * 86400):
        self.keys = KeyFactory(prefix=key_prefix)
        self.record_ttl = retention_seconds + EXPIRY_SLACK_SECONDS

    async def read(self, tenant_id: str) -> StoredSessionRecord | None:
        fields = await ops.hgetall(self.keys.session(tenant_id))
        if not fields:
            return None
        payload = fields.get("payload")
        updated_at = fields.get("updated_at")
        if payload is None or updated_at is None:
            raise StorageUnavailable(
                f"Session hash for '{tenant_id}' is missing fields", tenant_id=tenant_id
            )
        return StoredSessionRecord(
            tenant_id=tenant_id,
            payload=payload,
            updated_at=datetime.fromisoformat(updated_at),
        )

    async def read_updated_at(self, tenant_id: str) -> datetime | None:
        raw = await ops.hget(self.keys.session(tenant_id), "updated_at")
        return datetime.fromisoformat(raw) if raw else None

    async def upsert(self, record: StoredSessionRecord) -> bool:
        return await ops.upsert_hash_if_newer(
            self.keys.session(record.tenant_id),
            self.keys.index(),
            record.tenant_id,
            {"payload": record.payload, "updated_at": record.updated_at.isoformat()},
            record.updated_at,
            self.record_ttl,
        )

    async def delete(self, tenant_id: str) -> bool:
        removed = await ops.delete_hash_and_index(
            self.keys.session(tenant_id), self.keys.index(), tenant_id
        )
        return removed > 0

    async def list_updated_since(self, cutoff: datetime) -> list[tuple[str, datetime]]:
        rows = await ops.zrangebyscore(self.keys.index(), cutoff.timestamp(), "+inf")
        tz = cutoff.tzinfo
        return [
            (tenant_id, datetime.fromtimestamp(float(score), tz=tz))
            for tenant_id, score in rows
        ]

    async def purge_updated_before(self, cutoff: datetime) -> int:
        return await ops.purge_index_before(self.keys.index(), self.keys.session, cutoff)

    # ---- connection presence ----------------------------------------------

    async def set_presence(self, tenant_id: str, payload: str, ttl: int) -> bool:
        return await ops.setex(
            self.keys.presence(tenant_id), ttl, payload, alias="presence"
        )

    async def get_presence(self, tenant_id: str) -> str | None:
        return await ops.get(self.keys.presence(tenant_id), alias="presence")

    async def clear_presence(self, tenant_id: str) -> bool:
        return await ops.delete(self.keys.presence(tenant_id), alias="presence") > 0

    async def health(self) -> dict:
        status = await RedisManager.get_health_status()
        pools = status.get("pools", {})
        healthy = status["initialized"] and all(
            pool["status"] == "healthy" for pool in pools.values()
        )
        return {
            "backend": self.name,
            "status": "healthy" if healthy else "unhealthy",
            "redis": status,
        }

    async def close(self) -> None:
        await RedisManager.cleanup()
