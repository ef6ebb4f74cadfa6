"""
Tests for the connection lifecycle controller: pairing and send flows driven
by a scripted protocol connection.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from fakes import (
    PAIRING_CODE,
    RECIPIENT,
    TENANT,
    FakeProtocolFactory,
    seed_session,
    wait_idle,
)

from whatsgate.connection.lifecycle import ConnectionLifecycleController
from whatsgate.domain.errors import MediaDownloadFailure
from whatsgate.domain.models.outcome import OutcomeKind

RECIPIENT_JID = f"{RECIPIENT}@s.whatsapp.net"
NEW_USER = {"id": "6281234567890:7@s.whatsapp.net", "name": "Paired"}


@pytest.fixture
def make_controller(store, fast_config, downloader):
    def _make(factory, **config_overrides):
        config = fast_config.model_copy(update=config_overrides)
        return ConnectionLifecycleController(
            store, factory, config=config, downloader=downloader
        )

    return _make


class TestPairingFlow:
    """Test pairing code issuance, reconnects and retries."""

    async def test_fresh_tenant_gets_pairing_code(self, make_controller, store):
        """Test an unknown tenant is issued a code and its new credentials persist."""
        factory = FakeProtocolFactory([[]])
        controller = make_controller(factory)

        outcome = await controller.request_pairing_code(TENANT)

        assert outcome.success is True
        assert outcome.message == "Pairing code generated"
        assert outcome.data == {"tenant_id": TENANT, "pairing_code": PAIRING_CODE}
        assert factory.connections[0].pairing_requests == [TENANT]

        await wait_idle(controller)
        session = await store.get(TENANT)
        assert session is not None
        assert session.is_registered is False
        assert factory.connections[0].closed is True

    async def test_registered_tenant_is_already_connected(
        self, make_controller, registered_session, store, monkeypatch
    ):
        """Test a registered session resolves on open without a pairing code."""
        mark_connected = AsyncMock(wraps=store.mark_connected)
        monkeypatch.setattr(store, "mark_connected", mark_connected)
        factory = FakeProtocolFactory([[("open",)]])
        controller = make_controller(factory)

        outcome = await controller.request_pairing_code(TENANT)

        assert outcome.message == "Already connected"
        assert outcome.data["user"] == registered_session.credentials["me"]
        assert factory.connections[0].pairing_requests == []

        await wait_idle(controller)
        mark_connected.assert_awaited_once_with(TENANT, registered_session.credentials["me"])
        assert await store.get_presence(TENANT) is None

    async def test_pairing_completes_after_restart(self, make_controller, store):
        """Test a restart-required close reconnects and the final credentials win."""
        factory = FakeProtocolFactory(
            [
                [("sleep", 0.01), ("close", 515)],
                [("creds", {"registered": True, "me": NEW_USER}), ("open",)],
            ]
        )
        controller = make_controller(factory, pairing_window_seconds=0.5)

        outcome = await controller.request_pairing_code(TENANT)
        assert outcome.data["pairing_code"] == PAIRING_CODE

        await wait_idle(controller)
        assert len(factory.connections) == 2
        assert all(connection.closed for connection in factory.connections)

        session = await store.get(TENANT)
        assert session.is_registered is True
        assert session.credentials["me"] == NEW_USER
        assert await store.list_active() == [TENANT]

        assert await store.get_presence(TENANT) is None

    async def test_logout_deletes_session(self, make_controller, registered_session, store):
        """Test a logged-out close is terminal and removes the stored session."""
        factory = FakeProtocolFactory([[("close", 401)]])
        controller = make_controller(factory)

        outcome = await controller.request_pairing_code(TENANT)

        assert outcome.success is False
        assert outcome.error_code == "LOGGED_OUT"
        assert len(factory.connections) == 1

        await wait_idle(controller)
        assert await store.get(TENANT) is None
        assert (await store.info(TENANT)).exists is False

    async def test_retry_cap_is_enforced(self, make_controller, registered_session, store):
        """Test repeated transient closes stop after the configured retries."""
        factory = FakeProtocolFactory([[("close", 428)]])
        controller = make_controller(factory, max_connect_retries=2)

        outcome = await controller.request_pairing_code(TENANT)

        assert outcome.error_code == "CONNECTION_INTERRUPTED"
        assert outcome.message == "Connection failed after 3 attempts"
        assert len(factory.connections) == 3
        assert all(connection.closed for connection in factory.connections)
        assert await store.get(TENANT) is not None

    async def test_connect_failure_is_retried(self, make_controller, registered_session):
        """Test a failing connect counts against the retry cap."""
        factory = FakeProtocolFactory([[]], connect_error=OSError("network down"))
        controller = make_controller(factory, max_connect_retries=1)

        outcome = await controller.request_pairing_code(TENANT)

        assert outcome.error_code == "CONNECTION_INTERRUPTED"
        assert len(factory.connections) == 2

    async def test_pairing_code_failure(self, make_controller):
        """Test a rejected pairing-code request ends as an interrupted connection."""
        factory = FakeProtocolFactory([[]], pairing_error=RuntimeError("rate limited"))
        controller = make_controller(factory, max_connect_retries=0)

        outcome = await controller.request_pairing_code(TENANT)

        assert outcome.error_code == "CONNECTION_INTERRUPTED"

    async def test_timeout_closes_connection(self, make_controller, registered_session):
        """Test a connection that never reports resolves as a timeout and is closed."""
        factory = FakeProtocolFactory([[]])
        controller = make_controller(factory, request_timeout_seconds=0.1)

        outcome = await controller.request_pairing_code(TENANT)

        assert outcome.kind is OutcomeKind.TIMEOUT
        assert outcome.error_code == "REQUEST_TIMEOUT"
        assert factory.connections[0].closed is True

        await wait_idle(controller)
        assert controller.in_flight == 0

    async def test_key_writes_are_persisted(
        self, make_controller, registered_session, store
    ):
        """Test keys written by the protocol library reach the store byte-exact."""
        factory = FakeProtocolFactory(
            [[("keys", {"pre-key": {"7": {"private": b"\x07\x00\xff"}}}), ("open",)]]
        )
        controller = make_controller(factory)

        await controller.request_pairing_code(TENANT)
        await wait_idle(controller)

        session = await store.get(TENANT)
        assert session.key_material["pre-key"] == {"7": {"private": b"\x07\x00\xff"}}
        assert session.key_material["session"] == registered_session.key_material["session"]

    async def test_aclose_cancels_attempts(self, make_controller, registered_session):
        """Test shutdown cancels a pending attempt and still answers its caller."""
        factory = FakeProtocolFactory([[]])
        controller = make_controller(factory, request_timeout_seconds=30)

        request = asyncio.create_task(controller.request_pairing_code(TENANT))
        while not factory.connections:
            await asyncio.sleep(0.01)

        await controller.aclose()
        outcome = await request

        assert outcome.error_code == "INTERNAL_ERROR"
        assert factory.connections[0].closed is True
        assert controller.in_flight == 0


class TestSendFlow:
    """Test the one-shot send flow."""

    async def test_send_text(self, make_controller, registered_session):
        """Test a text message goes out once the connection opens."""
        factory = FakeProtocolFactory([[("open",)]])
        controller = make_controller(factory)

        outcome = await controller.send_message(TENANT, RECIPIENT, "Halo")

        assert outcome.success is True
        assert outcome.message == "Message sent successfully"
        assert outcome.data["message_id"] == "MSG1"
        assert factory.connections[0].sent == [("text", RECIPIENT_JID, "Halo", None)]
        assert factory.connections[0].closed is True

    async def test_send_without_session(self, make_controller):
        """Test sending for an unpaired tenant fails without connecting."""
        factory = FakeProtocolFactory([[("open",)]])
        controller = make_controller(factory)

        outcome = await controller.send_message(TENANT, RECIPIENT, "Halo")

        assert outcome.error_code == "SESSION_NOT_FOUND"
        assert factory.connections == []

    async def test_send_with_unregistered_session(self, make_controller, memory_backend):
        """Test a half-paired session cannot send."""
        seed_session(memory_backend, TENANT, credentials={"registered": False})
        factory = FakeProtocolFactory([[("open",)]])
        controller = make_controller(factory)

        outcome = await controller.send_message(TENANT, RECIPIENT, "Halo")

        assert outcome.error_code == "SESSION_NOT_FOUND"

    async def test_close_before_send(self, make_controller, registered_session, store):
        """Test a transient close fails the send but keeps the session."""
        factory = FakeProtocolFactory([[("close", 428)]])
        controller = make_controller(factory)

        outcome = await controller.send_message(TENANT, RECIPIENT, "Halo")

        assert outcome.error_code == "CONNECTION_INTERRUPTED"
        assert len(factory.connections) == 1
        assert await store.get(TENANT) is not None

    async def test_logout_during_send(self, make_controller, registered_session, store):
        """Test a logout while sending deletes the session."""
        factory = FakeProtocolFactory([[("close", 401)]])
        controller = make_controller(factory)

        outcome = await controller.send_message(TENANT, RECIPIENT, "Halo")

        assert outcome.error_code == "LOGGED_OUT"
        assert await store.get(TENANT) is None

    async def test_send_image_with_caption(
        self, make_controller, registered_session, downloader
    ):
        """Test an image URL is downloaded and sent with the text as caption."""
        factory = FakeProtocolFactory([[("open",)]])
        controller = make_controller(factory)

        outcome = await controller.send_message(
            TENANT, RECIPIENT, "Promo", image_url="https://example.com/a.png"
        )

        assert outcome.data["media_sent"] is True
        downloader.download.assert_awaited_once_with(
            "https://example.com/a.png", tenant_id=TENANT
        )
        assert factory.connections[0].sent == [
            ("image", RECIPIENT_JID, b"\x89PNG fake image", "Promo")
        ]

    async def test_image_download_failure_falls_back_to_text(
        self, make_controller, registered_session, downloader
    ):
        """Test a failed download still sends the text."""
        downloader.download.side_effect = MediaDownloadFailure("HTTP 404")
        factory = FakeProtocolFactory([[("open",)]])
        controller = make_controller(factory)

        outcome = await controller.send_message(
            TENANT, RECIPIENT, "Promo", image_url="https://example.com/a.png"
        )

        assert outcome.success is True
        assert outcome.message == "Message sent without image"
        assert outcome.data["media_sent"] is False
        assert outcome.data["media_error"] == "HTTP 404"
        assert factory.connections[0].sent == [("text", RECIPIENT_JID, "Promo", None)]

    async def test_image_send_failure_falls_back_to_text(
        self, make_controller, registered_session
    ):
        """Test an image rejected by the protocol falls back to text."""
        factory = FakeProtocolFactory([[("open",)]], image_error=RuntimeError("too big"))
        controller = make_controller(factory)

        outcome = await controller.send_message(
            TENANT, RECIPIENT, "", image_url="https://example.com/a.png"
        )

        assert outcome.data["media_sent"] is False
        assert factory.connections[0].sent == [
            ("text", RECIPIENT_JID, "https://example.com/a.png", None)
        ]

    async def test_concurrent_sends_for_different_tenants(
        self, make_controller, memory_backend
    ):
        """Test attempts for two tenants run side by side."""
        seed_session(memory_backend, "628111")
        seed_session(memory_backend, "628222")
        factory = FakeProtocolFactory([[("sleep", 0.05), ("open",)]])
        controller = make_controller(factory)

        first, second = await asyncio.gather(
            controller.send_message("628111", RECIPIENT, "a"),
            controller.send_message("628222", RECIPIENT, "b"),
        )

        assert first.success and second.success
        assert first.data["tenant_id"] == "628111"
        assert second.data["tenant_id"] == "628222"

    async def test_send_clears_presence_when_done(
        self, make_controller, registered_session, store, monkeypatch
    ):
        """Test the connected marker is removed once the send connection closes."""
        mark_connected = AsyncMock(wraps=store.mark_connected)
        monkeypatch.setattr(store, "mark_connected", mark_connected)
        factory = FakeProtocolFactory([[("open",)]])
        controller = make_controller(factory)

        outcome = await controller.send_message(TENANT, RECIPIENT, "Halo")
        await wait_idle(controller)

        assert outcome.success is True
        assert factory.connections[0].closed is True
        mark_connected.assert_awaited_once()
        assert await store.get_presence(TENANT) is None

    async def test_send_connects_without_marking_online(
        self, make_controller, registered_session
    ):
        """Test the send flow asks the library not to announce the tenant online."""
        factory = FakeProtocolFactory([[("open",)]])
        controller = make_controller(factory)

        await controller.send_message(TENANT, RECIPIENT, "Halo")

        assert factory.connections[0].options.mark_online_on_connect is False


class TestAttemptCleanup:
    """Test cleanup ordering when writes, logouts and the request timer overlap."""

    async def test_pairing_marks_online(self, make_controller, registered_session):
        """Test the pairing flow keeps the library's online announcement."""
        factory = FakeProtocolFactory([[("open",)]])
        controller = make_controller(factory)

        await controller.request_pairing_code(TENANT)

        assert factory.connections[0].options.mark_online_on_connect is True

    async def test_logout_cleanup_outlasting_timer_still_deletes(
        self, make_controller, registered_session, store, monkeypatch
    ):
        """Test the request timer does not interrupt session deletion after a logout."""
        delete = store.delete

        async def slow_delete(tenant_id):
            await asyncio.sleep(0.15)
            return await delete(tenant_id)

        monkeypatch.setattr(store, "delete", slow_delete)
        factory = FakeProtocolFactory([[("close", 401)]])
        controller = make_controller(factory, request_timeout_seconds=0.05)

        outcome = await controller.send_message(TENANT, RECIPIENT, "Halo")
        await wait_idle(controller)

        assert outcome.error_code == "LOGGED_OUT"
        assert await store.get(TENANT) is None

    async def test_newest_snapshot_wins_over_slow_earlier_write(
        self, make_controller, registered_session, store, monkeypatch
    ):
        """Test writes land in snapshot order even when an earlier one is slow."""
        put = store.put
        calls = []

        async def slow_first_put(tenant_id, session):
            calls.append(session.credentials.get("step"))
            if len(calls) == 1:
                await asyncio.sleep(0.05)
            return await put(tenant_id, session)

        monkeypatch.setattr(store, "put", slow_first_put)
        factory = FakeProtocolFactory(
            [[("creds", {"step": 1}), ("creds", {"step": 2}), ("open",)]]
        )
        controller = make_controller(factory)

        outcome = await controller.request_pairing_code(TENANT)
        await wait_idle(controller)

        assert outcome.message == "Already connected"
        assert calls == [1, 2, 2]
        session = await store.get(TENANT)
        assert session.credentials["step"] == 2
