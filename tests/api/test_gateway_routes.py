"""
End-to-end tests for the gateway HTTP surface.

The app is built with the memory session store and the scripted protocol
factory; sessions are seeded straight into the memory backend.
"""

from datetime import UTC, datetime, timedelta

import pytest
from fakes import PAIRING_CODE, RECIPIENT, TENANT, FakeProtocolFactory, seed_session
from fastapi.testclient import TestClient

from whatsgate import WhatsGate


@pytest.fixture
def make_client(store, fast_config):
    clients = []

    def _make(factory=None, **config_overrides):
        gateway = WhatsGate(
            "memory",
            factory,
            lifecycle_config=fast_config.model_copy(update=config_overrides),
            session_store=store,
        )
        client = TestClient(gateway.create_app())
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


class TestHealthEndpoint:
    """Test /health."""

    def test_health(self, make_client):
        """Test store and protocol status are reported."""
        client = make_client(FakeProtocolFactory())

        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["services"]["session_store"]["backend"] == "memory"
        assert body["services"]["protocol"] == "configured"
        assert body["services"]["in_flight_attempts"] == 0


class TestValidation:
    """Test parameter and action validation."""

    def test_invalid_action(self, make_client):
        """Test an unknown action is a 400."""
        client = make_client(FakeProtocolFactory())

        response = client.get("/api/whatsapp", params={"action": "reboot", "tenant_id": TENANT})

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_ACTION"

    def test_missing_tenant(self, make_client):
        """Test actions other than list require a tenant."""
        client = make_client(FakeProtocolFactory())

        response = client.get("/api/whatsapp", params={"action": "info"})

        assert response.status_code == 400
        body = response.json()
        assert body["status"] == "error"
        assert body["error_code"] == "MISSING_PARAMETERS"

    def test_send_requires_recipient_and_content(self, make_client, registered_session):
        """Test send without a recipient or without any content is a 400."""
        client = make_client(FakeProtocolFactory([[("open",)]]))

        no_recipient = client.get(
            "/api/whatsapp", params={"action": "send", "tenant_id": TENANT, "message": "x"}
        )
        no_content = client.get(
            "/api/whatsapp",
            params={
                "action": "send",
                "tenant_id": TENANT,
                "recipient": RECIPIENT,
                "image_url": "false",
            },
        )

        assert no_recipient.status_code == 400
        assert no_content.status_code == 400
        assert no_content.json()["error_code"] == "MISSING_PARAMETERS"

    def test_invalid_recipient(self, make_client, registered_session):
        """Test a recipient without digits is rejected."""
        client = make_client(FakeProtocolFactory([[("open",)]]))

        response = client.get(
            "/api/whatsapp",
            params={"action": "send", "tenant_id": TENANT, "recipient": "abc", "message": "x"},
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_PARAMETERS"


class TestStoreActions:
    """Test actions answered from the session store alone."""

    def test_info_not_found(self, make_client):
        """Test the not-found sentinel for an unknown tenant."""
        client = make_client(FakeProtocolFactory())

        response = client.get("/api/whatsapp", params={"action": "info", "tenant_id": TENANT})

        assert response.status_code == 200
        body = response.json()
        assert body["exists"] is False
        assert body["ttl_seconds"] == -2
        assert body["expires_in_human"] == "session not found"

    def test_info_existing(self, make_client, memory_backend):
        """Test remaining lifetime of a stored session."""
        seed_session(
            memory_backend, TENANT, updated_at=datetime.now(UTC) - timedelta(days=10)
        )
        client = make_client(FakeProtocolFactory())

        body = client.get(
            "/api/whatsapp", params={"action": "info", "tenant_id": TENANT}
        ).json()

        assert body["exists"] is True
        assert 19 * 86400 < body["ttl_seconds"] <= 20 * 86400
        assert body["expires_in_human"].startswith("19 days")

    def test_status(self, make_client, registered_session):
        """Test status of a stored but disconnected tenant."""
        client = make_client(FakeProtocolFactory())

        body = client.get(
            "/api/whatsapp", params={"action": "status", "tenant_id": TENANT}
        ).json()

        assert body["has_session"] is True
        assert body["is_connected"] is False
        assert body["user_info"] is None

    def test_delete(self, make_client, registered_session, memory_backend):
        """Test delete removes the session and reports it."""
        client = make_client(FakeProtocolFactory())

        first = client.get("/api/whatsapp", params={"action": "delete", "tenant_id": TENANT})
        second = client.get("/api/whatsapp", params={"action": "delete", "tenant_id": TENANT})

        assert first.json()["deleted"] is True
        assert second.json()["deleted"] is False
        assert TENANT not in memory_backend._sessions

    def test_list_purges_expired(self, make_client, memory_backend):
        """Test list returns active tenants and drops expired ones."""
        seed_session(memory_backend, "628111")
        seed_session(
            memory_backend, "628222", updated_at=datetime.now(UTC) - timedelta(days=40)
        )
        client = make_client(FakeProtocolFactory())

        body = client.get("/api/whatsapp", params={"action": "list"}).json()

        assert body["total_sessions"] == 1
        assert body["sessions"][0]["tenant_id"] == "628111"
        assert body["sessions"][0]["exists"] is True
        assert "628222" not in memory_backend._sessions


class TestProtocolActions:
    """Test pairing and sending through the HTTP surface."""

    def test_connect_returns_pairing_code(self, make_client):
        """Test the default action pairs an unknown tenant."""
        client = make_client(FakeProtocolFactory([[]]))

        response = client.get("/api/whatsapp", params={"tenant_id": TENANT})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        assert body["pairing_code"] == PAIRING_CODE

    def test_send_success(self, make_client, registered_session):
        """Test a text send over a registered session."""
        factory = FakeProtocolFactory([[("open",)]])
        client = make_client(factory)

        response = client.get(
            "/api/whatsapp",
            params={
                "action": "send",
                "tenant_id": TENANT,
                "recipient": RECIPIENT,
                "message": "Halo",
            },
        )

        assert response.status_code == 200
        assert response.json()["message"] == "Message sent successfully"
        assert factory.connections[0].sent[0][2] == "Halo"

    def test_send_without_session(self, make_client):
        """Test sending before pairing is a 400."""
        client = make_client(FakeProtocolFactory([[("open",)]]))

        response = client.get(
            "/api/whatsapp",
            params={
                "action": "send",
                "tenant_id": TENANT,
                "recipient": RECIPIENT,
                "message": "Halo",
            },
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "SESSION_NOT_FOUND"

    def test_send_logged_out(self, make_client, registered_session, memory_backend):
        """Test a logout is a 400 asking to pair again and the session is gone."""
        client = make_client(FakeProtocolFactory([[("close", 401)]]))

        response = client.get(
            "/api/whatsapp",
            params={
                "action": "send",
                "tenant_id": TENANT,
                "recipient": RECIPIENT,
                "message": "Halo",
            },
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error_code"] == "LOGGED_OUT"
        assert "pair again" in body["message"]
        assert TENANT not in memory_backend._sessions

    def test_send_interrupted(self, make_client, registered_session):
        """Test a transient close is a 500."""
        client = make_client(FakeProtocolFactory([[("close", 428)]]))

        response = client.get(
            "/api/whatsapp",
            params={
                "action": "send",
                "tenant_id": TENANT,
                "recipient": RECIPIENT,
                "message": "Halo",
            },
        )

        assert response.status_code == 500
        assert response.json()["error_code"] == "CONNECTION_INTERRUPTED"

    def test_timeout(self, make_client, registered_session):
        """Test a silent connection is a 408."""
        client = make_client(FakeProtocolFactory([[]]), request_timeout_seconds=0.1)

        response = client.get(
            "/api/whatsapp",
            params={
                "action": "send",
                "tenant_id": TENANT,
                "recipient": RECIPIENT,
                "message": "Halo",
            },
        )

        assert response.status_code == 408
        assert response.json()["error_code"] == "REQUEST_TIMEOUT"

    def test_no_protocol_factory(self, make_client):
        """Test protocol actions fail while store actions still work."""
        client = make_client(None)

        connect = client.get("/api/whatsapp", params={"tenant_id": TENANT})
        info = client.get("/api/whatsapp", params={"action": "info", "tenant_id": TENANT})

        assert connect.status_code == 500
        assert connect.json()["error_code"] == "PROTOCOL_UNAVAILABLE"
        assert info.status_code == 200


class TestLegacyRoutes:
    """Test the legacy URL layout and parameter names."""

    def test_getcode_with_nomor(self, make_client):
        """Test /api/getcode accepts nomor as the tenant."""
        client = make_client(FakeProtocolFactory([[]]))

        response = client.get("/api/getcode", params={"nomor": TENANT})

        assert response.status_code == 200
        assert response.json()["pairing_code"] == PAIRING_CODE

    def test_send_with_nomor_and_tujuan(self, make_client, registered_session):
        """Test /api/send accepts nomor and tujuan."""
        factory = FakeProtocolFactory([[("open",)]])
        client = make_client(factory)

        response = client.get(
            "/api/send", params={"nomor": TENANT, "tujuan": RECIPIENT, "message": "Halo"}
        )

        assert response.status_code == 200
        assert factory.connections[0].sent[0][1] == f"{RECIPIENT}@s.whatsapp.net"
