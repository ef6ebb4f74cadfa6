from .gateway import router as gateway_router
from .health import router as health_router

__all__ = ["gateway_router", "health_router"]
