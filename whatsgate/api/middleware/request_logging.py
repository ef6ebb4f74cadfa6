"""
Request and response logging middleware with tenant context.
"""

import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from whatsgate.core.logging.logger import get_logger


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs each request and its response status with timing.

    Query parameters are logged with message text and image URLs masked.
    """

    sensitive_params = {"message", "image_url", "api_key"}

    def __init__(self, app, log_requests: bool = True, log_responses: bool = True):
        super().__init__(app)
        self.log_requests = log_requests
        self.log_responses = log_responses

    async def dispatch(self, request: Request, call_next) -> Response:
        start_time = time.time()
        logger = get_logger(__name__)
        skip = self._should_skip_logging(request.url.path)

        if self.log_requests and not skip:
            params = {
                k: ("***" if k in self.sensitive_params else v)
                for k, v in request.query_params.items()
            }
            logger.info(f"Incoming {request.method} {request.url.path} {params}")

        response = await call_next(request)
        process_time = time.time() - start_time

        from whatsgate.core.config.settings import settings

        if settings.is_development:
            response.headers["X-Process-Time"] = str(round(process_time * 1000, 2))

        if self.log_responses and not skip:
            status_code = response.status_code
            if status_code >= 500:
                log_level = "error"
            elif status_code >= 400:
                log_level = "warning"
            else:
                log_level = "info"
            getattr(logger, log_level)(
                f"Response {status_code} for {request.method} {request.url.path} "
                f"({round(process_time * 1000, 2)}ms)"
            )

        return response

    def _should_skip_logging(self, path: str) -> bool:
        skip_paths = ["/health", "/docs", "/redoc", "/openapi.json", "/favicon.ico"]
        return any(path.startswith(skip_path) for skip_path in skip_paths)
