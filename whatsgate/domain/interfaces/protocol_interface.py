"""
Protocol library contract.

The WhatsApp multi-device protocol (Noise handshake, Signal sessions, binary
framing, media encryption) lives in an external client library. The gateway
only depends on the narrow surface described here; a deployment provides an
IProtocolClientFactory that adapts its library of choice.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from whatsgate.connection.key_store import SignalKeyStore

# Event names emitted by protocol connections
CONNECTION_UPDATE = "connection.update"
CREDS_UPDATE = "creds.update"

USER_JID_SERVER = "s.whatsapp.net"

Listener = Callable[[Any], Awaitable[None] | None]


class DisconnectReason(IntEnum):
    """Disconnect status codes reported by the protocol library.

    Only LOGGED_OUT is terminal; every other code is treated as transient.
    """

    CONNECTION_CLOSED = 428
    CONNECTION_LOST = 408
    CONNECTION_REPLACED = 440
    TIMED_OUT = 408
    LOGGED_OUT = 401
    BAD_SESSION = 500
    RESTART_REQUIRED = 515
    MULTIDEVICE_MISMATCH = 411
    FORBIDDEN = 403
    UNAVAILABLE_SERVICE = 503

    @classmethod
    def is_terminal(cls, code: int | None) -> bool:
        return code == cls.LOGGED_OUT


@dataclass
class ConnectionUpdate:
    """Payload of a ``connection.update`` event."""

    connection: str | None = None  # "connecting" | "open" | "close"
    status_code: int | None = None  # disconnect reason when connection == "close"
    error: Exception | None = None


@dataclass
class AuthState:
    """Credentials plus key-material handle handed to the protocol library.

    The library mutates ``credentials`` in place and writes keys through
    ``keys``; the gateway reads both back when persisting.
    """

    credentials: dict[str, Any]
    keys: SignalKeyStore


@dataclass
class ConnectionOptions:
    browser: tuple[str, str, str] = ("Ubuntu", "Chrome", "20.0.04")
    mark_online_on_connect: bool = True


class IProtocolConnection(ABC):
    """A single transient connection to the WhatsApp servers."""

    @abstractmethod
    def on(self, event: str, listener: Listener) -> None:
        """Subscribe to ``connection.update`` or ``creds.update``."""
        pass

    @abstractmethod
    async def connect(self) -> None:
        """Start the connection handshake; events report its progress."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the connection and release library resources."""
        pass

    @abstractmethod
    async def send_text(self, jid: str, text: str) -> str | None:
        """Send a text message, returning the message id if known."""
        pass

    @abstractmethod
    async def send_image(
        self, jid: str, data: bytes, caption: str | None = None
    ) -> str | None:
        """Send an image with an optional caption."""
        pass

    @abstractmethod
    async def request_pairing_code(self, phone_number: str) -> str:
        """Ask the server for a phone-number pairing code."""
        pass

    @property
    def user(self) -> dict[str, Any] | None:
        """Account info of the logged-in user, once the connection is open."""
        return None


class IProtocolClientFactory(ABC):
    """Builds protocol connections and fresh credentials."""

    @abstractmethod
    def create(
        self, auth_state: AuthState, options: ConnectionOptions
    ) -> IProtocolConnection:
        pass

    @abstractmethod
    def init_credentials(self) -> dict[str, Any]:
        """Return brand-new, unregistered credentials."""
        pass


def to_user_jid(phone_number: str) -> str:
    """Normalize a phone number to a user JID (``<digits>@s.whatsapp.net``)."""
    digits = re.sub(r"\D", "", phone_number)
    if not digits:
        raise ValueError(f"Invalid phone number: {phone_number!r}")
    return f"{digits}@{USER_JID_SERVER}"
