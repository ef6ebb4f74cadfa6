"""
Protocol Plugin

Builds the ConnectionLifecycleController over the session store and the
protocol client factory. The factory is either injected or imported from the
``PROTOCOL_FACTORY`` setting (``"package.module:attribute"``).
"""

import importlib
from typing import TYPE_CHECKING

from ...connection.lifecycle import ConnectionLifecycleController, LifecycleConfig
from ...connection.media import MediaDownloader
from ...domain.interfaces.protocol_interface import IProtocolClientFactory
from ..config.settings import settings
from ..logging.logger import get_app_logger

if TYPE_CHECKING:
    from fastapi import FastAPI

    from ..factory.gateway_builder import GatewayBuilder


def load_protocol_factory(import_path: str) -> IProtocolClientFactory:
    """
    Import a protocol client factory from ``"module:attribute"``.

    The attribute may be a factory instance or a zero-argument callable
    (class or function) returning one.

    Raises:
        ValueError: If the path is malformed or does not yield a factory
    """
    module_name, sep, attribute = import_path.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(
            f"PROTOCOL_FACTORY must look like 'package.module:attribute', got {import_path!r}"
        )

    module = importlib.import_module(module_name)
    target = getattr(module, attribute)
    factory = target if isinstance(target, IProtocolClientFactory) else target()

    if not isinstance(factory, IProtocolClientFactory):
        raise ValueError(
            f"{import_path} did not produce an IProtocolClientFactory "
            f"(got {type(factory).__name__})"
        )
    return factory


class ProtocolPlugin:
    """
    Connection lifecycle for the gateway.

    Without a factory the plugin still starts, and the connect/send actions
    answer with PROTOCOL_UNAVAILABLE; store-only actions keep working.
    """

    def __init__(
        self,
        factory: IProtocolClientFactory | None = None,
        config: LifecycleConfig | None = None,
    ):
        self.factory = factory
        self.config = config

    def configure(self, builder: "GatewayBuilder") -> None:
        builder.add_startup_hook(self._protocol_startup, priority=30)
        builder.add_shutdown_hook(self._protocol_shutdown, priority=30)

    async def startup(self, app: "FastAPI") -> None:
        await self._protocol_startup(app)

    async def shutdown(self, app: "FastAPI") -> None:
        await self._protocol_shutdown(app)

    async def _protocol_startup(self, app: "FastAPI") -> None:
        logger = get_app_logger()

        factory = self.factory
        if factory is None and settings.protocol_factory:
            factory = load_protocol_factory(settings.protocol_factory)
            logger.info(f"🔌 Protocol factory loaded from {settings.protocol_factory}")

        if factory is None:
            logger.warning(
                "⚠️ No protocol factory configured (PROTOCOL_FACTORY) - "
                "pairing and sending are disabled"
            )
            app.state.lifecycle_controller = None
            return

        config = self.config or LifecycleConfig.from_settings(settings)
        downloader = MediaDownloader(
            session=getattr(app.state, "http_session", None),
            timeout_seconds=settings.media_download_timeout_seconds,
            max_bytes=settings.media_max_bytes,
        )
        app.state.lifecycle_controller = ConnectionLifecycleController(
            app.state.session_store, factory, config=config, downloader=downloader
        )
        logger.info(
            f"✅ Lifecycle controller ready - timeout: {config.request_timeout_seconds:g}s, "
            f"retries: {config.max_connect_retries}"
        )

    async def _protocol_shutdown(self, app: "FastAPI") -> None:
        controller = getattr(app.state, "lifecycle_controller", None)
        if controller is not None:
            await controller.aclose()
        if hasattr(app.state, "lifecycle_controller"):
            del app.state.lifecycle_controller
