"""
Outcome of a gateway request.

Exactly one GatewayOutcome is produced per request; the HTTP layer turns it
into the JSON response.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from whatsgate.domain.errors import GatewayError


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"


class GatewayOutcome(BaseModel):
    """Result of a gateway operation.

    Standard result model for every action, whether it was served straight
    from the session store or through a protocol connection.
    """

    kind: OutcomeKind
    message: str | None = None
    error_code: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @classmethod
    def ok(cls, message: str | None = None, **data: Any) -> "GatewayOutcome":
        return cls(kind=OutcomeKind.SUCCESS, message=message, data=data)

    @classmethod
    def error(
        cls, error_code: str, message: str, **data: Any
    ) -> "GatewayOutcome":
        return cls(
            kind=OutcomeKind.ERROR, error_code=error_code, message=message, data=data
        )

    @classmethod
    def from_exception(cls, exc: GatewayError, **data: Any) -> "GatewayOutcome":
        kind = (
            OutcomeKind.TIMEOUT
            if exc.error_code == "REQUEST_TIMEOUT"
            else OutcomeKind.ERROR
        )
        return cls(kind=kind, error_code=exc.error_code, message=exc.message, data=data)

    def to_payload(self) -> dict[str, Any]:
        """Render the `{status: success|error, ...}` JSON body."""
        payload: dict[str, Any] = {
            "status": "success" if self.success else "error",
        }
        if self.message is not None:
            payload["message"] = self.message
        if self.error_code is not None:
            payload["error_code"] = self.error_code
        payload.update(self.data)
        return payload
