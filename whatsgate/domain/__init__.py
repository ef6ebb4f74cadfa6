"""
Domain layer for the WhatsGate gateway.

Holds the session and outcome models, the error taxonomy and the contracts
that persistence backends and the protocol adapter implement.
"""

from .interfaces import (
    IProtocolClientFactory,
    IProtocolConnection,
    ISessionBackend,
)
from .models import GatewayOutcome, SessionInfo, TenantSession

__all__ = [
    "GatewayOutcome",
    "IProtocolClientFactory",
    "IProtocolConnection",
    "ISessionBackend",
    "SessionInfo",
    "TenantSession",
]
