"""
Session Store Plugin

Creates the configured session backend (memory or redis), wraps it in a
SessionStore and publishes it on ``app.state.session_store``.
"""

from typing import TYPE_CHECKING

from ...persistence.memory import MemorySessionBackend
from ...persistence.redis.redis_manager import RedisManager
from ...persistence.redis.session_backend import RedisSessionBackend
from ...persistence.session_store import SessionStore
from ..config.settings import settings
from ..logging.logger import get_app_logger
from ..types import SessionBackendType

if TYPE_CHECKING:
    from fastapi import FastAPI

    from ..factory.gateway_builder import GatewayBuilder


class SessionStorePlugin:
    """
    Session persistence for the gateway.

    Example:
        builder.add_plugin(SessionStorePlugin(SessionBackendType.REDIS))

        # In routes
        store: SessionStore = request.app.state.session_store
    """

    def __init__(
        self,
        backend_type: SessionBackendType = SessionBackendType.MEMORY,
        *,
        max_connections: int | None = None,
        store: SessionStore | None = None,
    ):
        """
        Args:
            backend_type: Which backend to create at startup
            max_connections: Redis pool size (defaults to settings.redis_max_connections)
            store: Pre-built store to publish instead of creating one
        """
        self.backend_type = backend_type
        self.max_connections = max_connections
        self.store = store

    def configure(self, builder: "GatewayBuilder") -> None:
        # After core startup (10), before the protocol layer (30)
        builder.add_startup_hook(self._store_startup, priority=20)
        builder.add_shutdown_hook(self._store_shutdown, priority=20)
        get_app_logger().debug(
            f"🔧 SessionStorePlugin configured - backend: {self.backend_type.value}"
        )

    async def startup(self, app: "FastAPI") -> None:
        await self._store_startup(app)

    async def shutdown(self, app: "FastAPI") -> None:
        await self._store_shutdown(app)

    async def _store_startup(self, app: "FastAPI") -> None:
        logger = get_app_logger()

        if self.store is None:
            if self.backend_type == SessionBackendType.REDIS:
                logger.info("=== REDIS SESSION STORE INITIALIZATION ===")
                await RedisManager.initialize(
                    redis_url=settings.redis_url,
                    max_connections=self.max_connections
                    or settings.redis_max_connections,
                )
                backend = RedisSessionBackend(
                    key_prefix=settings.redis_key_prefix,
                    retention_seconds=settings.session_retention_seconds,
                )
            else:
                backend = MemorySessionBackend()

            self.store = SessionStore(
                backend,
                retention_seconds=settings.session_retention_seconds,
                presence_ttl_seconds=settings.presence_ttl_seconds,
            )

        app.state.session_store = self.store
        logger.info(
            f"💾 Session store ready - backend: {self.store.backend_name}, "
            f"retention: {settings.session_retention_days} days"
        )

    async def _store_shutdown(self, app: "FastAPI") -> None:
        logger = get_app_logger()
        store = getattr(app.state, "session_store", None)
        if store is None:
            return
        await store.close()
        del app.state.session_store
        logger.info(f"✅ Session store closed ({store.backend_name})")
