"""
Request context management using contextvars for automatic propagation.

The tenant is set once per request by the tenant middleware and is then
available to every log call made while serving that request, including the
lifecycle task spawned for it (asyncio copies the context into new tasks).
"""

from contextvars import ContextVar

_tenant_context: ContextVar[str | None] = ContextVar(
    "tenant_id", default=None
)  # From the tenant_id query parameter
_action_context: ContextVar[str | None] = ContextVar(
    "action", default=None
)  # From the action query parameter


def set_request_context(
    tenant_id: str | None = None,
    action: str | None = None,
) -> None:
    """
    Set the request context for the current async context.

    Args:
        tenant_id: Tenant identifier (phone number) from the request
        action: Gateway action being served (connect, send, ...)
    """
    if tenant_id is not None:
        _tenant_context.set(tenant_id)
    if action is not None:
        _action_context.set(action)


def get_current_tenant_context() -> str | None:
    """Get the current tenant ID from context variables."""
    return _tenant_context.get()


def get_current_action_context() -> str | None:
    """Get the current gateway action from context variables."""
    return _action_context.get()


def clear_request_context() -> None:
    """
    Clear the request context.

    This is typically not needed as context is automatically isolated
    per request, but can be useful for testing.
    """
    _tenant_context.set(None)
    _action_context.set(None)
