"""
Error handling utilities for gateway routes.

Maps GatewayOutcome error codes to HTTP status codes and renders outcomes as
JSON responses so every action answers with the same `{status, ...}` shape.
"""

from fastapi.responses import JSONResponse

from whatsgate.domain.models.outcome import GatewayOutcome

# Error code to HTTP status code mapping
ERROR_CODE_MAPPING: dict[str, int] = {
    # Validation errors (400 Bad Request)
    "MISSING_PARAMETERS": 400,
    "INVALID_PARAMETERS": 400,
    "INVALID_ACTION": 400,
    # Session errors (400 Bad Request, client should pair again)
    "SESSION_NOT_FOUND": 400,
    "MALFORMED_SESSION": 400,
    "LOGGED_OUT": 400,
    # Timeout (408 Request Timeout)
    "REQUEST_TIMEOUT": 408,
    # Server errors (500 Internal Server Error)
    "CONNECTION_INTERRUPTED": 500,
    "STORAGE_UNAVAILABLE": 500,
    "PROTOCOL_UNAVAILABLE": 500,
    "INTERNAL_ERROR": 500,
}


def map_error_to_status(error_code: str | None, default_status: int = 500) -> int:
    """Map error code to appropriate HTTP status code.

    Args:
        error_code: The error code from the gateway outcome
        default_status: Default status code if error code is not mapped

    Returns:
        HTTP status code corresponding to the error code
    """
    if error_code is None:
        return default_status
    return ERROR_CODE_MAPPING.get(error_code, default_status)


def outcome_response(outcome: GatewayOutcome) -> JSONResponse:
    """Render a GatewayOutcome with its mapped status code."""
    status_code = 200 if outcome.success else map_error_to_status(outcome.error_code)
    return JSONResponse(status_code=status_code, content=outcome.to_payload())


def missing_parameters(*names: str) -> JSONResponse:
    return outcome_response(
        GatewayOutcome.error(
            "MISSING_PARAMETERS",
            f"Missing required parameter(s): {', '.join(names)}",
        )
    )
