"""
Gateway API endpoint.

Provides the single query-parameter driven endpoint:
- GET /api/whatsapp?tenant_id=...&action=connect|pairing|send|status|list|info|delete

Plus compatibility routes with the legacy URL layout, which accept the legacy
parameter names ``nomor`` (tenant) and ``tujuan`` (recipient):
- GET /api/getcode  (default action: connect)
- GET /api/send     (default action: send)

Every response is `{"status": "success"|"error", ...}`.
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from whatsgate.api.dependencies.gateway_dependencies import (
    get_lifecycle_controller,
    get_session_store,
)
from whatsgate.api.utils.error_helpers import missing_parameters, outcome_response
from whatsgate.connection.lifecycle import ConnectionLifecycleController
from whatsgate.core.logging.logger import get_logger
from whatsgate.domain.interfaces.protocol_interface import to_user_jid
from whatsgate.domain.models.outcome import GatewayOutcome
from whatsgate.persistence.session_store import SessionStore

router = APIRouter(
    tags=["Gateway"],
    responses={
        400: {"description": "Bad Request - Missing parameter, no session or logged out"},
        408: {"description": "Request Timeout - No connection event in time"},
        500: {"description": "Internal Server Error"},
    },
)

PAIRING_ACTIONS = {"connect", "pairing"}
SUPPORTED_ACTIONS = PAIRING_ACTIONS | {"send", "status", "list", "info", "delete"}


def _normalize_image_url(image_url: str | None) -> str | None:
    if not image_url or image_url.strip().lower() in ("false", "null", "none"):
        return None
    return image_url.strip()


async def handle_action(
    action: str,
    tenant_id: str | None,
    recipient: str | None,
    message: str | None,
    image_url: str | None,
    store: SessionStore,
    controller: ConnectionLifecycleController | None,
) -> JSONResponse:
    """Dispatch one gateway action and render its outcome."""
    logger = get_logger(__name__)
    action = (action or "").strip().lower()

    if action not in SUPPORTED_ACTIONS:
        return outcome_response(
            GatewayOutcome.error(
                "INVALID_ACTION",
                f"Unsupported action '{action}'. "
                f"Use one of: {', '.join(sorted(SUPPORTED_ACTIONS))}",
            )
        )

    if action == "list":
        purged = await store.purge_expired()
        tenants = await store.list_active()
        sessions = []
        for tenant in tenants:
            info = await store.info(tenant)
            sessions.append({"tenant_id": tenant, **info.model_dump(mode="json")})
        logger.info(f"Listed {len(sessions)} active sessions ({purged} purged)")
        return outcome_response(
            GatewayOutcome.ok(total_sessions=len(sessions), sessions=sessions)
        )

    if not tenant_id:
        return missing_parameters("tenant_id")

    if action == "info":
        info = await store.info(tenant_id)
        return outcome_response(
            GatewayOutcome.ok(tenant_id=tenant_id, **info.model_dump(mode="json"))
        )

    if action == "delete":
        deleted = await store.delete(tenant_id)
        await store.clear_presence(tenant_id)
        return outcome_response(
            GatewayOutcome.ok(
                "Session deleted" if deleted else "No session to delete",
                tenant_id=tenant_id,
                deleted=deleted,
            )
        )

    if action == "status":
        session = await store.get(tenant_id)
        presence = await store.get_presence(tenant_id)
        info = await store.info(tenant_id)
        return outcome_response(
            GatewayOutcome.ok(
                tenant_id=tenant_id,
                has_session=session is not None,
                is_connected=presence is not None,
                session_expires_in=info.expires_in_human,
                user_info=presence.user_info if presence else None,
            )
        )

    if controller is None:
        return outcome_response(
            GatewayOutcome.error(
                "PROTOCOL_UNAVAILABLE",
                "No protocol client factory is configured",
                tenant_id=tenant_id,
            )
        )

    if action in PAIRING_ACTIONS:
        logger.info("Starting pairing flow")
        outcome = await controller.request_pairing_code(tenant_id)
        return outcome_response(outcome)

    # action == "send"
    if not recipient:
        return missing_parameters("recipient")
    image_url = _normalize_image_url(image_url)
    if not message and not image_url:
        return missing_parameters("message")
    try:
        to_user_jid(recipient)
    except ValueError as e:
        return outcome_response(GatewayOutcome.error("INVALID_PARAMETERS", str(e)))

    logger.info(f"Sending message to {recipient} (image: {bool(image_url)})")
    outcome = await controller.send_message(tenant_id, recipient, message, image_url)
    return outcome_response(outcome)


@router.get(
    "/api/whatsapp",
    summary="Gateway Action",
    description="Pair, send, inspect or delete a tenant's WhatsApp session",
)
async def gateway_action(
    action: str = Query("connect", description="connect|pairing|send|status|list|info|delete"),
    tenant_id: str | None = Query(None, description="Tenant phone number"),
    recipient: str | None = Query(None, description="Recipient phone number (send)"),
    message: str | None = Query(None, description="Message text (send)"),
    image_url: str | None = Query(None, description="Optional image URL (send)"),
    store: SessionStore = Depends(get_session_store),
    controller: ConnectionLifecycleController | None = Depends(get_lifecycle_controller),
) -> JSONResponse:
    return await handle_action(
        action, tenant_id, recipient, message, image_url, store, controller
    )


@router.get("/api/getcode", summary="Pairing (legacy layout)")
async def legacy_getcode(
    action: str = Query("connect"),
    tenant_id: str | None = Query(None),
    nomor: str | None = Query(None),
    store: SessionStore = Depends(get_session_store),
    controller: ConnectionLifecycleController | None = Depends(get_lifecycle_controller),
) -> JSONResponse:
    return await handle_action(
        action, tenant_id or nomor, None, None, None, store, controller
    )


@router.get("/api/send", summary="Send (legacy layout)")
async def legacy_send(
    action: str = Query("send"),
    tenant_id: str | None = Query(None),
    nomor: str | None = Query(None),
    recipient: str | None = Query(None),
    tujuan: str | None = Query(None),
    message: str | None = Query(None),
    image_url: str | None = Query(None),
    store: SessionStore = Depends(get_session_store),
    controller: ConnectionLifecycleController | None = Depends(get_lifecycle_controller),
) -> JSONResponse:
    return await handle_action(
        action,
        tenant_id or nomor,
        recipient or tujuan,
        message,
        image_url,
        store,
        controller,
    )
