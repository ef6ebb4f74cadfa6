"""
WhatsGate core components: configuration, logging, the factory system and
plugins.
"""

# Configuration & Settings
from .config.settings import settings

# Factory System
from .factory import GatewayBuilder, GatewayPlugin

# Logging System
from .logging import get_app_logger, get_logger, setup_app_logging

# Plugin System
from .plugins import GatewayCorePlugin, ProtocolPlugin, SessionStorePlugin

# Core Types
from .types import SessionBackendType, validate_session_backend

__all__ = [
    "GatewayBuilder",
    "GatewayCorePlugin",
    "GatewayPlugin",
    "ProtocolPlugin",
    "SessionBackendType",
    "SessionStorePlugin",
    "get_app_logger",
    "get_logger",
    "settings",
    "setup_app_logging",
    "validate_session_backend",
]
