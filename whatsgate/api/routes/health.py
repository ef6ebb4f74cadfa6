"""
Health check endpoint for the gateway.
"""

import time
from typing import Any

from fastapi import APIRouter, Request

from whatsgate.core.config.settings import settings
from whatsgate.core.logging.logger import get_api_logger

logger = get_api_logger()
router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(request: Request) -> dict[str, Any]:
    """
    Liveness plus session backend health and in-flight connection attempts.
    """
    start_time = time.time()

    store = getattr(request.app.state, "session_store", None)
    controller = getattr(request.app.state, "lifecycle_controller", None)

    store_health = await store.health() if store else {"status": "not_initialized"}
    is_healthy = store_health.get("status") == "healthy"

    health_data = {
        "status": "healthy" if is_healthy else "unhealthy",
        "timestamp": time.time(),
        "response_time_ms": round((time.time() - start_time) * 1000, 2),
        "environment": {
            "environment": settings.environment,
            "version": settings.version,
            "log_level": settings.log_level,
        },
        "services": {
            "session_store": store_health,
            "protocol": "configured" if controller else "not_configured",
            "in_flight_attempts": controller.in_flight if controller else 0,
        },
    }

    logger.debug(
        f"Health check completed - Status: {health_data['status']}, "
        f"Response Time: {health_data['response_time_ms']}ms"
    )
    return health_data
