"""
Tenant middleware.

Reads `tenant_id` and `action` from the query string and puts them in the
logging context so every log line for the request (and for the connection
attempt it spawns) carries them.
"""

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from whatsgate.core.logging.context import set_request_context
from whatsgate.core.logging.logger import get_logger

logger = get_logger(__name__)


class TenantMiddleware(BaseHTTPMiddleware):
    """Set tenant/action logging context from query parameters."""

    async def dispatch(self, request: Request, call_next) -> Response:
        params = request.query_params
        tenant_id = params.get("tenant_id") or params.get("nomor") or None
        action = params.get("action") or None

        if tenant_id or action:
            set_request_context(tenant_id=tenant_id, action=action)
            logger.debug(f"Request context set: tenant={tenant_id} action={action}")

        return await call_next(request)
