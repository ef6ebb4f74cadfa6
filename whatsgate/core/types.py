"""
Core type definitions for the WhatsGate gateway.
"""

from enum import Enum
from typing import Literal


class SessionBackendType(Enum):
    """
    Supported session store backends.

    Both backends satisfy the same session store contract; only durability
    and sharing across processes differ.
    """

    MEMORY = "memory"
    """In-process storage - fast, lost on restart, single process only."""

    REDIS = "redis"
    """Redis storage - survives restarts and is shared between workers."""


# Type alias for user-friendly type hints
SessionBackendOptions = Literal["memory", "redis"]


def validate_session_backend(backend: str) -> SessionBackendType:
    """
    Validate and convert a backend string to SessionBackendType.

    Raises:
        ValueError: If the backend is not supported

    Example:
        >>> validate_session_backend("redis")
        <SessionBackendType.REDIS: 'redis'>
    """
    try:
        return SessionBackendType(backend.lower())
    except ValueError as e:
        supported = [bt.value for bt in SessionBackendType]
        raise ValueError(
            f"Unsupported session backend: {backend}. "
            f"Supported backends: {', '.join(supported)}"
        ) from e
