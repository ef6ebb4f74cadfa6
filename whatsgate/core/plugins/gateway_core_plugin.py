"""
Gateway Core Plugin

Foundation of every gateway application: logging, the shared HTTP session,
the core middleware stack and the core routes.
"""

from typing import TYPE_CHECKING

import aiohttp
from fastapi import FastAPI

from whatsgate.api.middleware.error_handler import ErrorHandlerMiddleware
from whatsgate.api.middleware.request_logging import RequestLoggingMiddleware
from whatsgate.api.middleware.tenant import TenantMiddleware
from whatsgate.api.routes.gateway import router as gateway_router
from whatsgate.api.routes.health import router as health_router

from ..config.settings import settings
from ..logging.logger import get_app_logger, setup_app_logging

if TYPE_CHECKING:
    from ..factory.gateway_builder import GatewayBuilder


class GatewayCorePlugin:
    """
    Core gateway functionality as a plugin.

    - Application logging setup
    - Persistent aiohttp session (used for remote image downloads)
    - Core middleware stack (Tenant, ErrorHandler, RequestLogging)
    - Core routes (health, gateway)
    """

    def configure(self, builder: "GatewayBuilder") -> None:
        builder.add_middleware(TenantMiddleware, priority=90)  # Outer - logging context
        builder.add_middleware(ErrorHandlerMiddleware, priority=80)
        builder.add_middleware(RequestLoggingMiddleware, priority=70)  # Inner

        builder.add_router(health_router)
        builder.add_router(gateway_router)

        builder.add_startup_hook(self._core_startup, priority=10)
        builder.add_shutdown_hook(self._core_shutdown, priority=90)

        get_app_logger().debug("✅ GatewayCorePlugin configured")

    async def startup(self, app: FastAPI) -> None:
        await self._core_startup(app)

    async def shutdown(self, app: FastAPI) -> None:
        await self._core_shutdown(app)

    async def _core_startup(self, app: FastAPI) -> None:
        """
        Runs first (priority 10): logging, then the shared HTTP session that
        later hooks hand to the media downloader.
        """
        setup_app_logging()
        logger = get_app_logger()

        logger.info(f"🚀 Starting WhatsGate v{settings.version}")
        logger.info(f"📊 Environment: {settings.environment}")
        logger.info(f"📝 Log level: {settings.log_level}")
        if settings.is_development:
            logger.info(f"🔧 Development mode - logs: {settings.log_dir}")

        connector = aiohttp.TCPConnector(
            limit=100,
            keepalive_timeout=30,
            enable_cleanup_closed=True,
        )
        app.state.http_session = aiohttp.ClientSession(
            connector=connector, timeout=aiohttp.ClientTimeout(total=30)
        )
        logger.info("✅ Persistent HTTP session created - connections: 100, keepalive: 30s")

        base_url = f"http://localhost:{settings.port}"
        logger.info("=== AVAILABLE ENDPOINTS ===")
        logger.info(f"🏥 Health Check: {base_url}/health")
        logger.info(f"📱 Gateway: {base_url}/api/whatsapp?tenant_id=...&action=...")
        logger.info(f"🔗 Legacy: {base_url}/api/getcode, {base_url}/api/send")
        logger.info("============================")

    async def _core_shutdown(self, app: FastAPI) -> None:
        """Runs last (priority 90): close the HTTP session."""
        logger = get_app_logger()
        logger.info("🛑 Starting WhatsGate core shutdown...")

        session = getattr(app.state, "http_session", None)
        if session is not None:
            await session.close()
            del app.state.http_session
            logger.info("🌐 Persistent HTTP session closed cleanly")
