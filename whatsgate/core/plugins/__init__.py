"""
Gateway plugins.

GatewayCorePlugin is always installed; SessionStorePlugin and ProtocolPlugin
are added by WhatsGate according to configuration.
"""

from .gateway_core_plugin import GatewayCorePlugin
from .protocol_plugin import ProtocolPlugin, load_protocol_factory
from .session_store_plugin import SessionStorePlugin

__all__ = [
    "GatewayCorePlugin",
    "ProtocolPlugin",
    "SessionStorePlugin",
    "load_protocol_factory",
]
