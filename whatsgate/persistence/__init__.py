"""
Session persistence for WhatsGate.

SessionStore wraps one ISessionBackend (memory or redis) and the SessionCodec.
"""

from .codec import SessionCodec, default_codec
from .memory import MemorySessionBackend
from .session_store import SessionStore

__all__ = ["MemorySessionBackend", "SessionCodec", "SessionStore", "default_codec"]
