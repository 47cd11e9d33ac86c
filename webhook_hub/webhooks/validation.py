"""Server-side hooks run while registering a WebHook.

- WebHookIdValidator decides the id a new WebHook is stored under.
- WebHookRegistrar inspects, modifies (e.g. adds private filters) or
  rejects a registration before it reaches the store.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

import structlog

from webhook_hub.errors import RegistrarError
from webhook_hub.webhooks.filters import PRIVATE_FILTER_PREFIX, get_private_filter
from webhook_hub.webhooks.models import WebHook

logger = structlog.get_logger(__name__)


class WebHookIdValidator(ABC):
    """Validates or assigns the id of a WebHook being registered."""

    @abstractmethod
    async def validate_id(self, request: Any, webhook: WebHook) -> None:
        """Validate ``webhook.id``, replacing it if required.

        Raises:
            ValidationError: If a caller-supplied id is not acceptable.
        """


class DefaultWebHookIdValidator(WebHookIdValidator):
    """Always assigns a fresh server-generated id, ignoring the caller's."""

    async def validate_id(self, request: Any, webhook: WebHook) -> None:  # noqa: ARG002
        webhook.id = uuid.uuid4().hex


class WebHookRegistrar(ABC):
    """Hook invoked for every registration and update.

    Raising from ``register`` rejects the registration.
    """

    PRIVATE_FILTER_PREFIX = PRIVATE_FILTER_PREFIX

    @staticmethod
    def get_private_filter(name: str) -> str:
        return get_private_filter(name)

    @abstractmethod
    async def register(self, request: Any, webhook: WebHook) -> None:
        """Inspect or modify ``webhook`` before it is stored."""


async def run_registrars(
    registrars: Iterable[WebHookRegistrar],
    request: Any,
    webhook: WebHook,
) -> None:
    """Run all registrars in order.

    Raises:
        RegistrarError: Wrapping the first registrar failure, naming the registrar.
    """
    for registrar in registrars:
        name = type(registrar).__name__
        try:
            await registrar.register(request, webhook)
        except Exception as e:
            message = (
                f"The '{name}' implementation of 'WebHookRegistrar' caused an exception: {e}"
            )
            logger.error(
                "registrar_failed",
                registrar=name,
                webhook_id=webhook.id,
                error=str(e),
            )
            raise RegistrarError(message, registrar=name) from e
