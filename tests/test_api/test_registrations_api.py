"""Tests for the WebHook registration endpoints."""

import httpx
from fastapi.testclient import TestClient

from webhook_hub.api.routes import create_app
from webhook_hub.config import Settings
from webhook_hub.webhooks.services import WebHookServices, set_webhook_services
from webhook_hub.webhooks.validation import WebHookRegistrar

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}
BASE = "/api/webhooks/registrations"


# ============================================================================
# Create Registration Tests
# ============================================================================


class TestCreateRegistration:
    """Tests for POST /api/webhooks/registrations."""

    def test_create(self, registered):
        """Test the server assigns id and strips private filters."""
        assert len(registered["Id"]) == 32
        assert registered["WebHookUri"] == "http://localhost/hook"
        assert registered["Secret"] == "0123456789abcdef"
        assert registered["Filters"] == ["a1"]
        assert registered["Properties"] == {"p1": "pv1"}
        assert registered["IsPaused"] is False

    def test_private_filter_stored(self, client, services, registered):
        """Test the registrar's private filter is stored but never returned."""
        stored = client.portal.call(services.store.lookup_webhook, "alice", registered["Id"])

        assert stored.filters == ["a1", "MS_Private_tenant"]

    def test_client_id_ignored(self, client):
        """Test caller-supplied ids are replaced."""
        response = client.post(
            BASE,
            json={"Id": "mine", "WebHookUri": "http://localhost/hook"},
            headers=ALICE,
        )

        assert response.status_code == 201
        assert response.json()["Id"] != "mine"

    def test_defaults_filled_in(self, client):
        """Test a missing secret is generated and filters default to the wildcard."""
        response = client.post(BASE, json={"WebHookUri": "http://localhost/hook"}, headers=ALICE)

        data = response.json()
        assert response.status_code == 201
        assert len(data["Secret"]) == 32
        assert data["Filters"] == ["*"]

    def test_short_secret(self, client):
        """Test an 8 character secret is rejected."""
        response = client.post(
            BASE,
            json={"WebHookUri": "http://localhost/hook", "Secret": "12345678"},
            headers=ALICE,
        )

        assert response.status_code == 400
        data = response.json()
        assert data["detail"].startswith("Could not register WebHook due to error")
        assert data["instance"] == "WebHookRegistrations"

    def test_private_filter_rejected(self, client, services):
        """Test a caller cannot register for a private filter."""
        response = client.post(
            BASE,
            json={"WebHookUri": "http://localhost/hook", "Filters": ["a1", "MS_Private_admin"]},
            headers=ALICE,
        )

        assert response.status_code == 400
        assert "MS_Private_admin" in response.json()["detail"]
        assert client.portal.call(services.store.get_all_webhooks, "alice") == []

    def test_unknown_filter(self, client):
        """Test unknown filters are rejected."""
        response = client.post(
            BASE,
            json={"WebHookUri": "http://localhost/hook", "Filters": ["nope"]},
            headers=ALICE,
        )

        assert response.status_code == 400
        assert "nope" in response.json()["detail"]

    def test_relative_uri(self, client):
        """Test relative WebHook URIs are rejected."""
        response = client.post(BASE, json={"WebHookUri": "/hook"}, headers=ALICE)

        assert response.status_code == 400

    def test_missing_user(self, client):
        """Test requests without a user are unauthorized."""
        response = client.post(BASE, json={"WebHookUri": "http://localhost/hook"})

        assert response.status_code == 401
        assert response.json() == {"detail": "Missing X-User-Id header"}

    def test_missing_uri(self, client):
        """Test a body without WebHookUri fails validation."""
        response = client.post(BASE, json={"Filters": ["a1"]}, headers=ALICE)

        assert response.status_code == 422

    def test_registrar_rejection(self):
        """Test a failing registrar rejects the registration."""

        class RejectingRegistrar(WebHookRegistrar):
            async def register(self, request, webhook):  # noqa: ARG002
                raise ValueError("not allowed")

        services = WebHookServices.create(
            Settings(RETRY_DELAYS=()),
            registrars=[RejectingRegistrar()],
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))),
        )
        set_webhook_services(services)
        try:
            with TestClient(create_app()) as client:
                response = client.post(BASE, json={"WebHookUri": "http://localhost/hook"}, headers=ALICE)
        finally:
            set_webhook_services(None)

        assert response.status_code == 400
        assert "'RejectingRegistrar' implementation of 'WebHookRegistrar'" in response.json()["detail"]
        assert "not allowed" in response.json()["detail"]


# ============================================================================
# Read Registration Tests
# ============================================================================


class TestReadRegistrations:
    """Tests for GET endpoints."""

    def test_list(self, client, registered):
        """Test listing the caller's WebHooks."""
        response = client.get(BASE, headers=ALICE)

        assert response.status_code == 200
        data = response.json()
        assert [w["Id"] for w in data] == [registered["Id"]]
        assert data[0]["Filters"] == ["a1"]

    def test_list_scoped_to_user(self, client, registered):  # noqa: ARG002
        """Test other users see none of alice's WebHooks."""
        response = client.get(BASE, headers=BOB)

        assert response.json() == []

    def test_lookup(self, client, registered):
        """Test looking up a WebHook by id."""
        response = client.get(f"{BASE}/{registered['Id']}", headers=ALICE)

        assert response.status_code == 200
        assert response.json()["Filters"] == ["a1"]

    def test_lookup_not_found(self, client):
        """Test looking up an unknown id."""
        response = client.get(f"{BASE}/missing", headers=ALICE)

        assert response.status_code == 404
        assert response.json()["instance"] == "WebHookRegistrations"


# ============================================================================
# Update Registration Tests
# ============================================================================


class TestUpdateRegistration:
    """Tests for PUT /api/webhooks/registrations/{id}."""

    def test_update(self, client, services, registered):
        """Test replacing a registration."""
        body = {**registered, "Filters": ["b1"], "IsPaused": True}

        response = client.put(f"{BASE}/{registered['Id']}", json=body, headers=ALICE)

        assert response.status_code == 200
        data = response.json()
        assert data["Filters"] == ["B1"]
        assert data["IsPaused"] is True

        stored = client.portal.call(services.store.lookup_webhook, "alice", registered["Id"])
        assert stored.filters == ["B1", "MS_Private_tenant"]

    def test_id_mismatch(self, client, registered):
        """Test the id in the URI must match the body."""
        response = client.put(f"{BASE}/other", json=registered, headers=ALICE)

        assert response.status_code == 400

    def test_update_not_found(self, client):
        """Test updating an unknown WebHook."""
        response = client.put(
            f"{BASE}/missing",
            json={"Id": "missing", "WebHookUri": "http://localhost/hook"},
            headers=ALICE,
        )

        assert response.status_code == 404

    def test_update_invalid(self, client, registered):
        """Test updates are verified like registrations."""
        body = {**registered, "Secret": "short"}

        response = client.put(f"{BASE}/{registered['Id']}", json=body, headers=ALICE)

        assert response.status_code == 400


# ============================================================================
# Delete Registration Tests
# ============================================================================


class TestDeleteRegistration:
    """Tests for DELETE endpoints."""

    def test_delete(self, client, registered):
        """Test deleting a WebHook."""
        response = client.delete(f"{BASE}/{registered['Id']}", headers=ALICE)

        assert response.status_code == 200
        assert response.json() == {"deleted": True}
        assert client.get(f"{BASE}/{registered['Id']}", headers=ALICE).status_code == 404

    def test_delete_not_found(self, client):
        """Test deleting an unknown WebHook."""
        response = client.delete(f"{BASE}/missing", headers=ALICE)

        assert response.status_code == 404

    def test_delete_all(self, client, registered):  # noqa: ARG002
        """Test deleting all of the caller's WebHooks."""
        client.post(BASE, json={"WebHookUri": "http://localhost/other"}, headers=ALICE)

        response = client.delete(f"{BASE}/all", headers=ALICE)

        assert response.status_code == 200
        assert client.get(BASE, headers=ALICE).json() == []
