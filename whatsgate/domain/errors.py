"""
Error taxonomy for the session lifecycle.

Store-level errors (SessionNotFound, MalformedSession, StorageUnavailable) are
raised by backends and the codec but never escape the SessionStore; they are
logged there and degraded to "no session". Connection-level errors are turned
into a GatewayOutcome by the lifecycle controller, so none of these reach the
HTTP layer as exceptions.
"""


class GatewayError(Exception):
    """Base class for all gateway errors."""

    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, *, tenant_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.tenant_id = tenant_id


class SessionNotFound(GatewayError):
    """No valid, unexpired session exists for the tenant."""

    error_code = "SESSION_NOT_FOUND"


class MalformedSession(GatewayError):
    """A stored session could not be decoded."""

    error_code = "MALFORMED_SESSION"


class StorageUnavailable(GatewayError):
    """The session backend failed an I/O operation."""

    error_code = "STORAGE_UNAVAILABLE"


class ConnectionTerminalLogout(GatewayError):
    """The remote side signalled a permanent logout."""

    error_code = "LOGGED_OUT"


class ConnectionTransientFailure(GatewayError):
    """The connection closed for any reason other than logout."""

    error_code = "CONNECTION_INTERRUPTED"

    def __init__(
        self,
        message: str,
        *,
        tenant_id: str | None = None,
        reason_code: int | None = None,
    ):
        super().__init__(message, tenant_id=tenant_id)
        self.reason_code = reason_code


class MediaDownloadFailure(GatewayError):
    """The remote image could not be fetched."""

    error_code = "MEDIA_DOWNLOAD_FAILED"


class MediaSendFailure(GatewayError):
    """The protocol library rejected the image message."""

    error_code = "MEDIA_SEND_FAILED"


class RequestTimeout(GatewayError):
    """No terminal connection event arrived before the deadline."""

    error_code = "REQUEST_TIMEOUT"
