"""
GatewayBuilder - plugin-based FastAPI application factory.
"""

from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI

from ..logging.logger import get_app_logger

if TYPE_CHECKING:
    from .plugin import GatewayPlugin


class GatewayBuilder:
    """
    Fluent builder for gateway applications.

    Supports:
    - Plugin system with lifecycle management
    - Priority-based middleware ordering
    - Priority-ordered startup/shutdown hooks in a single lifespan

    Example:
        app = (GatewayBuilder()
            .add_plugin(GatewayCorePlugin())
            .add_plugin(SessionStorePlugin(SessionBackendType.REDIS))
            .add_middleware(ApiKeyMiddleware, priority=95)
            .configure(title="My Gateway")
            .build())
    """

    def __init__(self):
        self.plugins: list[GatewayPlugin] = []
        self.middlewares: list[tuple[type, dict, int]] = []  # (class, kwargs, priority)
        self.routers: list[tuple[Any, dict]] = []  # (router, include_kwargs)
        self.startup_hooks: list[tuple[Callable, int]] = []  # (hook, priority)
        self.shutdown_hooks: list[tuple[Callable, int]] = []  # (hook, priority)
        self.config_overrides: dict[str, Any] = {}

    def add_plugin(self, plugin: "GatewayPlugin") -> "GatewayBuilder":
        """Add a plugin; it is configured when ``build()`` runs."""
        self.plugins.append(plugin)
        return self

    def add_middleware(
        self, middleware_class: type, priority: int = 50, **kwargs: Any
    ) -> "GatewayBuilder":
        """
        Add middleware with priority ordering.

        Higher priority numbers wrap lower ones (outer middleware); the core
        plugin uses 90 for tenant context, 80 for error handling and 70 for
        request logging.

        Args:
            middleware_class: Middleware class to add
            priority: Execution priority (higher = outer)
            **kwargs: Middleware configuration parameters
        """
        self.middlewares.append((middleware_class, kwargs, priority))
        return self

    def add_router(self, router: Any, **kwargs: Any) -> "GatewayBuilder":
        self.routers.append((router, kwargs))
        return self

    def add_startup_hook(self, hook: Callable, priority: int = 50) -> "GatewayBuilder":
        """
        Add a startup hook. Lower priority numbers execute first.

        Priority Guidelines:
        - 10: Core system initialization (logging, HTTP session)
        - 20: Session store (backend connections)
        - 30: Protocol layer (lifecycle controller)
        - 50: User hooks (default)
        """
        self.startup_hooks.append((hook, priority))
        return self

    def add_shutdown_hook(self, hook: Callable, priority: int = 50) -> "GatewayBuilder":
        """
        Add a shutdown hook. Higher priority numbers execute first.

        Priority Guidelines:
        - 90: Core system cleanup (HTTP session) - runs last
        - 50: User hooks (default)
        - 30: Protocol layer (cancel in-flight attempts)
        - 20: Session store
        """
        self.shutdown_hooks.append((hook, priority))
        return self

    def configure(self, **overrides: Any) -> "GatewayBuilder":
        """Override default FastAPI constructor arguments."""
        self.config_overrides.update(overrides)
        return self

    def build(self) -> FastAPI:
        """
        Build the FastAPI application.

        1. Configure plugins (sync registration only)
        2. Create the FastAPI app with a unified lifespan
        3. Add middleware in priority order
        4. Include routers
        """
        logger = get_app_logger()
        logger.debug(f"🏗️ Building FastAPI app with {len(self.plugins)} plugins")

        for plugin in self.plugins:
            plugin.configure(self)

        if self.plugins:
            logger.info(
                f"✅ Plugin configuration complete - registered {len(self.middlewares)} middlewares, "
                f"{len(self.routers)} routers, {len(self.startup_hooks)} startup hooks, "
                f"{len(self.shutdown_hooks)} shutdown hooks"
            )

        @asynccontextmanager
        async def unified_lifespan(app: FastAPI):
            try:
                logger.debug("🚀 Starting unified lifespan startup phase...")
                await self._execute_all_startup_hooks(app)
                logger.info("✅ All startup hooks completed successfully")
                yield
            finally:
                logger.debug("🛑 Starting unified lifespan shutdown phase...")
                await self._execute_all_shutdown_hooks(app)
                logger.info("✅ All shutdown hooks completed")

        default_config = {
            "title": "WhatsGate",
            "description": "Multi-tenant WhatsApp gateway: pairing codes and message sending",
            "version": "1.0.0",
            "lifespan": unified_lifespan,
        }
        default_config.update(self.config_overrides)

        app = FastAPI(**default_config)

        # Starlette wraps in reverse order of add_middleware, so add lowest first
        for middleware_class, kwargs, priority in sorted(
            self.middlewares, key=lambda x: x[2]
        ):
            app.add_middleware(middleware_class, **kwargs)
            logger.debug(
                f"Added middleware {middleware_class.__name__} (priority: {priority})"
            )

        for router, kwargs in self.routers:
            app.include_router(router, **kwargs)

        logger.info(
            f"🎉 GatewayBuilder created FastAPI app: {len(self.plugins)} plugins, "
            f"{len(self.middlewares)} middlewares, {len(self.routers)} routers"
        )
        return app

    async def _execute_all_startup_hooks(self, app: FastAPI) -> None:
        """Run startup hooks in priority order, failing fast."""
        logger = get_app_logger()

        for hook, priority in sorted(self.startup_hooks, key=lambda x: x[1]):
            hook_name = getattr(hook, "__name__", "anonymous_hook")
            logger.debug(f"⚡ Executing startup hook: {hook_name} (priority: {priority})")
            try:
                await hook(app)
            except Exception as e:
                logger.error(f"❌ Startup hook {hook_name} failed: {e}", exc_info=True)
                raise

    async def _execute_all_shutdown_hooks(self, app: FastAPI) -> None:
        """Run shutdown hooks in reverse priority order, isolating failures."""
        logger = get_app_logger()

        for hook, priority in sorted(
            self.shutdown_hooks, key=lambda x: x[1], reverse=True
        ):
            hook_name = getattr(hook, "__name__", "anonymous_hook")
            try:
                logger.debug(
                    f"🛑 Executing shutdown hook: {hook_name} (priority: {priority})"
                )
                await hook(app)
            except Exception as e:
                # Keep shutting down the remaining hooks
                logger.error(f"❌ Error in shutdown hook {hook_name}: {e}", exc_info=True)
