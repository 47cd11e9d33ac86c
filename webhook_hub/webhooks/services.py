"""Wiring of the WebHook collaborators into one container."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

import httpx

from webhook_hub.config import Settings
from webhook_hub.config import settings as default_settings
from webhook_hub.webhooks.dispatcher import OutcomeListener, WebHookDispatcher
from webhook_hub.webhooks.filters import (
    WebHookFilterManager,
    WebHookFilterProvider,
    WildcardWebHookFilterProvider,
)
from webhook_hub.webhooks.manager import WebHookManager
from webhook_hub.webhooks.notifications import WebHookNotificationsManager
from webhook_hub.webhooks.registrations import WebHookRegistrationsManager
from webhook_hub.webhooks.sender import WebHookSender
from webhook_hub.webhooks.store import MemoryWebHookStore, WebHookStore
from webhook_hub.webhooks.user import WebHookUser
from webhook_hub.webhooks.validation import (
    DefaultWebHookIdValidator,
    WebHookIdValidator,
    WebHookRegistrar,
)


@dataclass
class WebHookServices:
    """All collaborators needed to register, match and deliver WebHooks."""

    settings: Settings
    store: WebHookStore
    user: WebHookUser
    filter_manager: WebHookFilterManager
    sender: WebHookSender
    dispatcher: WebHookDispatcher
    manager: WebHookManager
    notifications: WebHookNotificationsManager
    registrations: WebHookRegistrationsManager
    id_validator: WebHookIdValidator
    registrars: list[WebHookRegistrar] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        *,
        store: WebHookStore | None = None,
        user: WebHookUser | None = None,
        filter_providers: Iterable[WebHookFilterProvider] | None = None,
        registrars: Iterable[WebHookRegistrar] | None = None,
        id_validator: WebHookIdValidator | None = None,
        http_client: httpx.AsyncClient | None = None,
        on_outcome: OutcomeListener | None = None,
    ) -> WebHookServices:
        """Build a service container, defaulting every collaborator.

        Args:
            settings: Settings (global settings if not provided).
            store: WebHook store (in-memory if not provided).
            user: Principal resolver.
            filter_providers: Filter providers (wildcard only if not provided).
            registrars: Registrars run on every registration.
            id_validator: Id validator (server-generated ids if not provided).
            http_client: Shared HTTP client for deliveries.
            on_outcome: Listener for terminal delivery outcomes.

        Returns:
            Wired services.
        """
        settings = settings or default_settings
        store = store or MemoryWebHookStore()
        user = user or WebHookUser()
        filter_manager = WebHookFilterManager(
            list(filter_providers) if filter_providers is not None else [WildcardWebHookFilterProvider()]
        )
        sender = WebHookSender(http_client, settings=settings)
        dispatcher = WebHookDispatcher(sender, settings=settings, on_outcome=on_outcome)
        manager = WebHookManager(store, dispatcher)

        return cls(
            settings=settings,
            store=store,
            user=user,
            filter_manager=filter_manager,
            sender=sender,
            dispatcher=dispatcher,
            manager=manager,
            notifications=WebHookNotificationsManager(manager, user),
            registrations=WebHookRegistrationsManager(
                store,
                user,
                filter_manager,
                sender=sender,
                settings=settings,
            ),
            id_validator=id_validator or DefaultWebHookIdValidator(),
            registrars=list(registrars or []),
        )


# Global services instance
_services: WebHookServices | None = None


def get_webhook_services() -> WebHookServices:
    """Get the global WebHook services.

    Returns:
        Singleton WebHookServices.
    """
    global _services
    if _services is None:
        _services = WebHookServices.create()
    return _services


def set_webhook_services(services: WebHookServices | None) -> None:
    """Set the global WebHook services.

    Useful for testing.

    Args:
        services: WebHookServices instance, or None to rebuild on next access.
    """
    global _services
    _services = services
