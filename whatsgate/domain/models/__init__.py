from .outcome import GatewayOutcome, OutcomeKind
from .session_models import SessionInfo, SessionPresence, TenantSession

__all__ = [
    "GatewayOutcome",
    "OutcomeKind",
    "SessionInfo",
    "SessionPresence",
    "TenantSession",
]
