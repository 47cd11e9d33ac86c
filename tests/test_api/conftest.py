"""Shared fixtures for API tests."""

import httpx
import pytest
from fastapi.testclient import TestClient

from webhook_hub.api.routes import create_app
from webhook_hub.config import Settings
from webhook_hub.webhooks.filters import StaticWebHookFilterProvider, WildcardWebHookFilterProvider
from webhook_hub.webhooks.models import WebHook
from webhook_hub.webhooks.services import WebHookServices, set_webhook_services
from webhook_hub.webhooks.validation import WebHookRegistrar


class TenantRegistrar(WebHookRegistrar):
    """Registrar scoping every WebHook to a tenant with a private filter."""

    async def register(self, request, webhook: WebHook) -> None:  # noqa: ARG002
        webhook.add_filter(self.get_private_filter("tenant"))


@pytest.fixture
def received():
    """Requests received by the mock receiver."""
    return []


@pytest.fixture
def services(received):
    """Create and set services delivering to a mock receiver."""

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(request)
        return httpx.Response(200)

    services = WebHookServices.create(
        Settings(RETRY_DELAYS=()),
        filter_providers=[
            WildcardWebHookFilterProvider(),
            StaticWebHookFilterProvider(["a1", "B1"]),
        ],
        registrars=[TenantRegistrar()],
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    set_webhook_services(services)
    yield services
    set_webhook_services(None)


@pytest.fixture
def client(services):  # noqa: ARG001
    """Create test client (services fixture ensures services are set)."""
    with TestClient(create_app()) as test_client:
        yield test_client


@pytest.fixture
def registered(client):
    """Register a WebHook for alice and return its JSON representation."""
    response = client.post(
        "/api/webhooks/registrations",
        json={
            "WebHookUri": "http://localhost/hook",
            "Secret": "0123456789abcdef",
            "Filters": ["a1"],
            "Properties": {"p1": "pv1"},
        },
        headers={"X-User-Id": "alice"},
    )
    assert response.status_code == 201
    return response.json()
