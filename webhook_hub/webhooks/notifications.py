"""Principal-scoped entry point for raising notifications."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from webhook_hub.webhooks.manager import WebHookManager, WebHookPredicate
from webhook_hub.webhooks.models import NotificationDictionary
from webhook_hub.webhooks.user import Principal, WebHookUser


class WebHookNotificationsManager:
    """Submits notifications to the WebHooks of a principal or of all users.

    To match, a WebHook must have a filter matching one or more of the
    notification actions. The result is the number of WebHooks selected,
    never the outcome of their delivery.
    """

    def __init__(self, manager: WebHookManager, user: WebHookUser) -> None:
        self._manager = manager
        self._user = user

    async def notify(
        self,
        principal: Principal | None,
        notifications: Iterable[NotificationDictionary],
        predicate: WebHookPredicate | None = None,
    ) -> int:
        """Notify WebHooks registered by ``principal``.

        An empty batch returns 0 without resolving the user or reading the store.
        """
        batch = list(notifications)
        if not batch:
            return 0

        user_id = await self._user.get_user_id(principal)
        return await self._manager.notify(user_id, batch, predicate)

    async def notify_action(
        self,
        principal: Principal | None,
        action: str,
        data: Any = None,
        predicate: WebHookPredicate | None = None,
    ) -> int:
        """Notify WebHooks registered by ``principal`` about a single action."""
        return await self.notify(principal, [NotificationDictionary(action, data)], predicate)

    async def notify_all(
        self,
        notifications: Iterable[NotificationDictionary],
        predicate: WebHookPredicate | None = None,
    ) -> int:
        """Notify matching WebHooks across all users."""
        batch = list(notifications)
        if not batch:
            return 0
        return await self._manager.notify_all(batch, predicate)

    async def notify_all_action(
        self,
        action: str,
        data: Any = None,
        predicate: WebHookPredicate | None = None,
    ) -> int:
        return await self.notify_all([NotificationDictionary(action, data)], predicate)
