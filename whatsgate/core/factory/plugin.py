"""
Gateway Plugin Protocol

Defines the interface every plugin implements to integrate with the
GatewayBuilder factory system.
"""

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from fastapi import FastAPI

    from .gateway_builder import GatewayBuilder


class GatewayPlugin(Protocol):
    """
    Plugin interface for extending the gateway.

    Lifecycle:
    1. configure: called while building, registers middleware/routes/hooks
    2. startup: called during FastAPI application startup
    3. shutdown: called during FastAPI application shutdown
    """

    def configure(self, builder: "GatewayBuilder") -> None:
        """
        Register middleware, routes and lifespan hooks with the builder.

        Synchronous: async initialization belongs in ``startup``.
        """
        ...

    async def startup(self, app: "FastAPI") -> None:
        """Open connections and put shared objects on ``app.state``."""
        ...

    async def shutdown(self, app: "FastAPI") -> None:
        """Release whatever ``startup`` acquired."""
        ...
