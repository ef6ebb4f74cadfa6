"""
Main WhatsGate application class.

Wraps GatewayBuilder with the core, session store and protocol plugins
selected from configuration.
"""

from collections.abc import Callable
from typing import TYPE_CHECKING

import uvicorn
from fastapi import FastAPI

from .config.settings import settings
from .factory.gateway_builder import GatewayBuilder
from .logging.logger import get_app_logger
from .plugins.gateway_core_plugin import GatewayCorePlugin
from .plugins.protocol_plugin import ProtocolPlugin
from .plugins.session_store_plugin import SessionStorePlugin
from .types import SessionBackendOptions, validate_session_backend

if TYPE_CHECKING:
    from ..connection.lifecycle import LifecycleConfig
    from ..domain.interfaces.protocol_interface import IProtocolClientFactory
    from ..persistence.session_store import SessionStore
    from .factory.plugin import GatewayPlugin


class WhatsGate:
    """
    WhatsGate application.

    Simple Usage:
        gateway = WhatsGate()  # SESSION_BACKEND / PROTOCOL_FACTORY from env
        gateway.run()

    Advanced Usage:
        gateway = WhatsGate(session_backend="redis", protocol_factory=MyFactory())
        gateway.add_plugin(ApiKeyPlugin(...))
        gateway.add_startup_hook(my_startup, priority=40)
        app = gateway.create_app()
    """

    def __init__(
        self,
        session_backend: SessionBackendOptions | None = None,
        protocol_factory: "IProtocolClientFactory | None" = None,
        *,
        lifecycle_config: "LifecycleConfig | None" = None,
        session_store: "SessionStore | None" = None,
        config: dict | None = None,
    ):
        """
        Args:
            session_backend: 'memory' or 'redis' (defaults to SESSION_BACKEND)
            protocol_factory: Protocol client factory (defaults to PROTOCOL_FACTORY)
            lifecycle_config: Connection timings (defaults to settings)
            session_store: Pre-built store, bypassing backend creation
            config: FastAPI constructor overrides

        Raises:
            ValueError: If the session backend is not supported
        """
        self.backend_type = validate_session_backend(
            session_backend or settings.session_backend
        )
        self.config = config or {}
        self._app: FastAPI | None = None

        self._builder = GatewayBuilder()
        self._builder.add_plugin(GatewayCorePlugin())
        self._builder.add_plugin(
            SessionStorePlugin(self.backend_type, store=session_store)
        )
        self._builder.add_plugin(
            ProtocolPlugin(protocol_factory, config=lifecycle_config)
        )

        get_app_logger().debug(
            f"🏗️ WhatsGate initialized with session_backend={self.backend_type.value}, "
            f"plugins={len(self._builder.plugins)}"
        )

    def create_app(self) -> FastAPI:
        """Build (once) and return the FastAPI application."""
        if self._app is not None:
            return self._app

        self._builder.configure(
            title="WhatsGate",
            version=settings.version,
            docs_url="/docs" if settings.is_development else None,
            redoc_url="/redoc" if settings.is_development else None,
        )
        if self.config:
            self._builder.configure(**self.config)
        self._app = self._builder.build()

        get_app_logger().info(
            f"✅ WhatsGate app created - session backend: {self.backend_type.value}, "
            f"plugins: {len(self._builder.plugins)}"
        )
        return self._app

    def add_plugin(self, plugin: "GatewayPlugin") -> "WhatsGate":
        """Add a plugin before the app is created."""
        self._builder.add_plugin(plugin)
        get_app_logger().debug(f"Plugin added to WhatsGate: {plugin.__class__.__name__}")
        return self

    def add_startup_hook(self, hook: Callable, priority: int = 50) -> "WhatsGate":
        self._builder.add_startup_hook(hook, priority)
        return self

    def add_shutdown_hook(self, hook: Callable, priority: int = 50) -> "WhatsGate":
        self._builder.add_shutdown_hook(hook, priority)
        return self

    def run(self, host: str = "0.0.0.0", port: int | None = None, **kwargs) -> None:
        """
        Run the gateway with uvicorn.

        Args:
            host: Host to bind to
            port: Port to bind to (defaults to settings.port)
            **kwargs: Additional uvicorn configuration
        """
        app = self.create_app()
        port = port or settings.port

        logger = get_app_logger()
        logger.info(f"Starting WhatsGate v{settings.version} server on {host}:{port}")
        logger.info(f"Mode: {'development' if settings.is_development else 'production'}")

        uvicorn_config = {
            "host": host,
            "port": port,
            "log_level": settings.log_level.lower(),
            **kwargs,
        }
        uvicorn.run(app, **uvicorn_config)
