"""
Request Correlator: one outcome slot per inbound request.
"""

import asyncio
import logging

from ..domain.models.outcome import GatewayOutcome

logger = logging.getLogger("RequestCorrelator")


class RequestCorrelator:
    """
    Single-assignment outcome slot backed by an asyncio Future.

    Any lifecycle handler (open, close, creds update, timeout) may call
    ``resolve_once``; only the first call has effect and later calls return
    False without touching the outcome.
    """

    def __init__(self, tenant_id: str | None = None):
        self.tenant_id = tenant_id
        self._future: asyncio.Future[GatewayOutcome] = (
            asyncio.get_running_loop().create_future()
        )

    @property
    def resolved(self) -> bool:
        return self._future.done()

    @property
    def outcome(self) -> GatewayOutcome | None:
        return self._future.result() if self._future.done() else None

    def resolve_once(self, outcome: GatewayOutcome) -> bool:
        """
        Resolve the request if still pending.

        Returns:
            True if this call set the outcome, False if it was already resolved
        """
        if self._future.done():
            logger.debug(
                f"Ignoring late outcome for '{self.tenant_id}': "
                f"{outcome.kind.value} {outcome.error_code or ''}".rstrip()
            )
            return False
        self._future.set_result(outcome)
        return True

    async def wait(self) -> GatewayOutcome:
        # Shield so a cancelled waiter does not cancel the slot itself
        return await asyncio.shield(self._future)
