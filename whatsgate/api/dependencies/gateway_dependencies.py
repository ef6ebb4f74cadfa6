"""
Gateway dependency injection.

The session store and lifecycle controller are created once at startup by
the core plugins and stored on ``app.state``.
"""

from fastapi import HTTPException, Request

from whatsgate.connection.lifecycle import ConnectionLifecycleController
from whatsgate.persistence.session_store import SessionStore


async def get_session_store(request: Request) -> SessionStore:
    """Get the application's SessionStore.

    Raises:
        HTTPException: 503 if the store has not been initialized
    """
    store = getattr(request.app.state, "session_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Session store not initialized")
    return store


async def get_lifecycle_controller(request: Request) -> ConnectionLifecycleController | None:
    """Get the lifecycle controller, or None when no protocol factory is configured."""
    return getattr(request.app.state, "lifecycle_controller", None)
