"""
Redis-backed session persistence.

Usage:
    gateway = WhatsGate(session_backend="redis")  # requires REDIS_URL
"""

from .key_factory import KeyFactory
from .redis_client import RedisClient
from .redis_manager import RedisManager
from .session_backend import RedisSessionBackend

__all__ = ["KeyFactory", "RedisClient", "RedisManager", "RedisSessionBackend"]
