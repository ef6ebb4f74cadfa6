from .gateway_dependencies import get_lifecycle_controller, get_session_store

__all__ = ["get_lifecycle_controller", "get_session_store"]
