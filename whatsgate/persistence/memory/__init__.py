"""
Memory-based session backend for the WhatsGate gateway.

Suitable for development, testing, and single-process deployments.

Usage:
    gateway = WhatsGate(session_backend="memory")
"""

from .session_backend import MemorySessionBackend

__all__ = ["MemorySessionBackend"]
