"""
Tests for the single-assignment request correlator.
"""

import asyncio

from whatsgate.connection.correlator import RequestCorrelator
from whatsgate.domain.models.outcome import GatewayOutcome, OutcomeKind


class TestRequestCorrelator:
    """Test that exactly one outcome is ever observed."""

    async def test_first_resolution_wins(self):
        """Test open, close and timeout racing on one request."""
        correlator = RequestCorrelator("628111")
        opened = GatewayOutcome.ok("Already connected")
        closed = GatewayOutcome.error("CONNECTION_INTERRUPTED", "closed")
        timed_out = GatewayOutcome(kind=OutcomeKind.TIMEOUT, error_code="REQUEST_TIMEOUT")

        assert correlator.resolve_once(opened) is True
        assert correlator.resolve_once(closed) is False
        assert correlator.resolve_once(timed_out) is False

        assert await correlator.wait() is opened
        assert correlator.outcome is opened

    async def test_pending_state(self):
        """Test a fresh correlator is unresolved."""
        correlator = RequestCorrelator()

        assert correlator.resolved is False
        assert correlator.outcome is None

    async def test_waiter_receives_later_resolution(self):
        """Test wait() returns once another task resolves."""
        correlator = RequestCorrelator()
        outcome = GatewayOutcome.ok("done")

        asyncio.get_running_loop().call_soon(correlator.resolve_once, outcome)

        assert await asyncio.wait_for(correlator.wait(), 1) is outcome

    async def test_cancelled_waiter_leaves_slot_usable(self):
        """Test cancelling a waiter does not cancel the outcome slot."""
        correlator = RequestCorrelator()
        waiter = asyncio.create_task(correlator.wait())
        await asyncio.sleep(0)

        waiter.cancel()
        await asyncio.gather(waiter, return_exceptions=True)

        assert correlator.resolve_once(GatewayOutcome.ok()) is True
        assert correlator.outcome.success is True
