from __future__ import annotations

import base64
import binascii
import json
import logging
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from ..domain.errors import MalformedSession
from ..domain.models.session_models import TenantSession

logger = logging.getLogger("SessionCodec")

# Binary values are wrapped as {"type": "Buffer", "data": "<base64>"}
BUFFER_MARKER = "Buffer"
ENVELOPE_VERSION = 1


def _buffer_replacer(obj: Any) -> Any:
    """Handle binary values during JSON serialization"""
    if isinstance(obj, bytes | bytearray | memoryview):
        return {
            "type": BUFFER_MARKER,
            "data": base64.b64encode(bytes(obj)).decode("ascii"),
        }
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _buffer_reviver(obj: dict[str, Any]) -> Any:
    """Turn Buffer envelopes back into bytes"""
    if len(obj) == 2 and obj.get("type") == BUFFER_MARKER and "data" in obj:
        data = obj["data"]
        if isinstance(data, str):
            return base64.b64decode(data, validate=True)
        # Node's Buffer#toJSON writes a list of byte values
        if isinstance(data, list) and all(isinstance(b, int) for b in data):
            return bytes(data)
    return obj


class SessionCodec:
    """
    Text codec for tenant auth state.

    Stores are text oriented, so arbitrary byte sequences inside credentials
    and key material are carried as base64 inside a marker object. The
    envelope also holds the tenant id and `updated_at` so that
    ``decode(encode(s)) == s`` holds for every session.
    """

    def encode(self, session: TenantSession) -> str:
        envelope = {
            "v": ENVELOPE_VERSION,
            "tenant_id": session.tenant_id,
            "updated_at": session.updated_at.isoformat()
            if session.updated_at
            else None,
            "creds": session.credentials,
            "keys": session.key_material,
        }
        try:
            return json.dumps(
                envelope, ensure_ascii=False, separators=(",", ":"), default=_buffer_replacer
            )
        except (TypeError, ValueError) as e:
            raise MalformedSession(
                f"Auth state is not serializable: {e}", tenant_id=session.tenant_id
            ) from e

    def decode(self, text: str, tenant_id: str | None = None) -> TenantSession:
        """
        Rebuild a session from its text form.

        Args:
            text: Encoded session
            tenant_id: Fallback tenant id for envelopes written without one

        Raises:
            MalformedSession: If the text is not a valid session envelope
        """
        try:
            raw = json.loads(text, object_hook=_buffer_reviver)
        except (json.JSONDecodeError, TypeError, binascii.Error, ValueError) as e:
            raise MalformedSession(
                f"Auth state is not valid JSON: {e}", tenant_id=tenant_id
            ) from e

        if not isinstance(raw, dict):
            raise MalformedSession("Auth state must be a JSON object", tenant_id=tenant_id)

        creds = raw.get("creds")
        keys = raw.get("keys") or {}
        if not isinstance(creds, dict) or not isinstance(keys, dict):
            raise MalformedSession(
                "Auth state is missing 'creds' or has invalid 'keys'",
                tenant_id=tenant_id,
            )

        updated_at = raw.get("updated_at")
        try:
            return TenantSession(
                tenant_id=raw.get("tenant_id") or tenant_id,
                credentials=creds,
                key_material=keys,
                updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
            )
        except (ValidationError, ValueError, TypeError) as e:
            raise MalformedSession(
                f"Auth state failed validation: {e}", tenant_id=tenant_id
            ) from e


# Default instance for global use
default_codec = SessionCodec()
