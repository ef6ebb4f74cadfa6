from .error_helpers import (
    ERROR_CODE_MAPPING,
    map_error_to_status,
    missing_parameters,
    outcome_response,
)

__all__ = [
    "ERROR_CODE_MAPPING",
    "map_error_to_status",
    "missing_parameters",
    "outcome_response",
]
