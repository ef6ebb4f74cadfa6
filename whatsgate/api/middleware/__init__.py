from .error_handler import ErrorHandlerMiddleware
from .request_logging import RequestLoggingMiddleware
from .tenant import TenantMiddleware

__all__ = ["ErrorHandlerMiddleware", "RequestLoggingMiddleware", "TenantMiddleware"]
