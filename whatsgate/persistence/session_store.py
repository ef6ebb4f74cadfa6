"""
Session Store: durable per-tenant auth state with a retention window.

Sits between the lifecycle controller and an ISessionBackend. Every operation
logs and degrades on failure (absent / False / empty / not-found sentinel) so
that a storage outage never crashes an in-flight protocol negotiation; the
caller simply sees "no prior session" and pairs again.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from ..domain.errors import GatewayError
from ..domain.interfaces.session_repository import ISessionBackend, StoredSessionRecord
from ..domain.models.session_models import SessionInfo, SessionPresence, TenantSession
from .codec import SessionCodec, default_codec

logger = logging.getLogger("SessionStore")

DEFAULT_RETENTION_SECONDS = 30 * 86400
DEFAULT_PRESENCE_TTL_SECONDS = 86400


def _utcnow() -> datetime:
    return datetime.now(UTC)


def format_remaining(seconds: int) -> str:
    """Render a remaining lifetime as ``"X days Y hours"``."""
    days, rest = divmod(max(seconds, 0), 86400)
    hours = rest // 3600
    return f"{days} days {hours} hours"


class SessionStore:
    """
    Tenant session persistence with lazy expiry.

    Args:
        backend: Durable key/value backend
        codec: Text codec for auth state
        retention_seconds: Sessions older than this are treated as absent
        presence_ttl_seconds: Lifetime of a "connected" marker
        clock: Source of the current UTC time
    """

    def __init__(
        self,
        backend: ISessionBackend,
        codec: SessionCodec = default_codec,
        retention_seconds: int = DEFAULT_RETENTION_SECONDS,
        presence_ttl_seconds: int = DEFAULT_PRESENCE_TTL_SECONDS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.backend = backend
        self.codec = codec
        self.retention = timedelta(seconds=retention_seconds)
        self.presence_ttl_seconds = presence_ttl_seconds
        self._clock = clock

    @property
    def backend_name(self) -> str:
        return self.backend.name

    def _log_failure(self, op: str, tenant_id: str | None, error: Exception) -> None:
        if isinstance(error, GatewayError):
            logger.warning(
                f"Session {op} degraded for '{tenant_id}': "
                f"{error.error_code} - {error.message}"
            )
        else:
            logger.error(
                f"Unexpected error during session {op} for '{tenant_id}': {error}",
                exc_info=True,
            )

    # ---- core operations --------------------------------------------------

    async def get(self, tenant_id: str) -> TenantSession | None:
        """
        Load a tenant's session.

        Returns None when the record is missing, malformed, expired or the
        backend fails. An expired record is deleted on the way out.
        """
        try:
            record = await self.backend.read(tenant_id)
            if record is None:
                return None

            now = self._clock()
            if now - record.updated_at > self.retention:
                logger.info(
                    f"Session for '{tenant_id}' expired "
                    f"(updated {record.updated_at.isoformat()}), deleting"
                )
                await self.backend.delete(tenant_id)
                return None

            session = self.codec.decode(record.payload, tenant_id=tenant_id)
            return session.model_copy(update={"updated_at": record.updated_at})
        except Exception as e:
            self._log_failure("get", tenant_id, e)
            return None

    async def put(self, tenant_id: str, session: TenantSession) -> bool:
        """
        Upsert a tenant's session, stamping ``updated_at`` with the current time.

        Returns:
            True if the record was written
        """
        try:
            stamped = session.model_copy(
                update={"tenant_id": tenant_id, "updated_at": self._clock()}
            )
            record = StoredSessionRecord(
                tenant_id=tenant_id,
                payload=self.codec.encode(stamped),
                updated_at=stamped.updated_at,
            )
            written = await self.backend.upsert(record)
            if written:
                logger.debug(f"Persisted session for '{tenant_id}'")
            return written
        except Exception as e:
            self._log_failure("put", tenant_id, e)
            return False

    async def delete(self, tenant_id: str) -> bool:
        """Remove a tenant's session. Missing records are not an error."""
        try:
            removed = await self.backend.delete(tenant_id)
            if removed:
                logger.info(f"Deleted session for '{tenant_id}'")
            return removed
        except Exception as e:
            self._log_failure("delete", tenant_id, e)
            return False

    async def list_active(self) -> list[str]:
        """Tenants whose session was updated within the retention window."""
        try:
            cutoff = self._clock() - self.retention
            rows = await self.backend.list_updated_since(cutoff)
            return [tenant_id for tenant_id, _ in rows]
        except Exception as e:
            self._log_failure("list", None, e)
            return []

    async def info(self, tenant_id: str) -> SessionInfo:
        """Remaining lifetime of a tenant's session, or the not-found sentinel."""
        try:
            updated_at = await self.backend.read_updated_at(tenant_id)
        except Exception as e:
            self._log_failure("info", tenant_id, e)
            return SessionInfo.not_found()

        if updated_at is None:
            return SessionInfo.not_found()

        remaining = int((updated_at + self.retention - self._clock()).total_seconds())
        if remaining <= 0:
            return SessionInfo.not_found()

        return SessionInfo(
            exists=True,
            ttl_seconds=remaining,
            expires_in_human=format_remaining(remaining),
            updated_at=updated_at,
        )

    async def purge_expired(self) -> int:
        """Delete every session older than the retention window."""
        try:
            return await self.backend.purge_updated_before(self._clock() - self.retention)
        except Exception as e:
            self._log_failure("purge", None, e)
            return 0

    # ---- connection presence ----------------------------------------------

    async def mark_connected(
        self, tenant_id: str, user_info: dict[str, Any] | None = None
    ) -> bool:
        presence = SessionPresence(
            tenant_id=tenant_id, connected_at=self._clock(), user_info=user_info
        )
        try:
            return await self.backend.set_presence(
                tenant_id, presence.model_dump_json(), self.presence_ttl_seconds
            )
        except Exception as e:
            self._log_failure("mark_connected", tenant_id, e)
            return False

    async def get_presence(self, tenant_id: str) -> SessionPresence | None:
        try:
            raw = await self.backend.get_presence(tenant_id)
            return SessionPresence.model_validate_json(raw) if raw else None
        except Exception as e:
            self._log_failure("get_presence", tenant_id, e)
            return None

    async def clear_presence(self, tenant_id: str) -> bool:
        try:
            return await self.backend.clear_presence(tenant_id)
        except Exception as e:
            self._log_failure("clear_presence", tenant_id, e)
            return False

    # ---- lifecycle --------------------------------------------------------

    async def health(self) -> dict[str, Any]:
        try:
            return await self.backend.health()
        except Exception as e:
            self._log_failure("health", None, e)
            return {"backend": self.backend_name, "status": "unhealthy", "error": str(e)}

    async def close(self) -> None:
        await self.backend.close()
