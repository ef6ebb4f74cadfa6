"""
Domain interfaces.

Defines the contracts that the persistence layer and the protocol adapter
must implement.
"""

from .protocol_interface import (
    CONNECTION_UPDATE,
    CREDS_UPDATE,
    AuthState,
    ConnectionOptions,
    ConnectionUpdate,
    DisconnectReason,
    IProtocolClientFactory,
    IProtocolConnection,
    to_user_jid,
)
from .session_repository import ISessionBackend, StoredSessionRecord

__all__ = [
    "CONNECTION_UPDATE",
    "CREDS_UPDATE",
    "AuthState",
    "ConnectionOptions",
    "ConnectionUpdate",
    "DisconnectReason",
    "IProtocolClientFactory",
    "IProtocolConnection",
    "ISessionBackend",
    "StoredSessionRecord",
    "to_user_jid",
]
