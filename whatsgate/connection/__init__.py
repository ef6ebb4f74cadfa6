"""
Transient protocol connections: per-request attempts, outcome correlation,
shared key material and remote media download.
"""

from .correlator import RequestCorrelator
from .key_store import SignalKeyStore
from .lifecycle import (
    ConnectionLifecycleController,
    LifecycleConfig,
    LifecycleState,
    PairingAttempt,
    SendAttempt,
)
from .media import MediaDownloader

__all__ = [
    "ConnectionLifecycleController",
    "LifecycleConfig",
    "LifecycleState",
    "MediaDownloader",
    "PairingAttempt",
    "RequestCorrelator",
    "SendAttempt",
    "SignalKeyStore",
]
