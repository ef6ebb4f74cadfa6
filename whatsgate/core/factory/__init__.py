"""
Plugin-based factory system for building gateway applications.
"""

from .gateway_builder import GatewayBuilder
from .plugin import GatewayPlugin

__all__ = [
    "GatewayBuilder",
    "GatewayPlugin",
]
