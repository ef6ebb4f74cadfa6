"""
WhatsGate - multi-tenant WhatsApp gateway.

Pairs tenants by phone-number pairing code and sends messages on their
behalf through a pluggable WhatsApp protocol client, persisting each
tenant's auth state between requests.
"""

from .core.config.settings import settings
from .core.factory import GatewayBuilder, GatewayPlugin
from .core.gateway_app import WhatsGate

__version__ = settings.version

__all__ = [
    "GatewayBuilder",
    "GatewayPlugin",
    "WhatsGate",
]
