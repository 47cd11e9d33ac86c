"""Notification matching for registered WebHooks.

Given a batch of notifications, selects the WebHooks whose filters match
any of the notification actions and hands one work item per selected
WebHook to the dispatcher.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence

import structlog

from webhook_hub.webhooks.dispatcher import WebHookDispatcher
from webhook_hub.webhooks.filters import matches_any_action
from webhook_hub.webhooks.models import NotificationDictionary, WebHook, WebHookWorkItem
from webhook_hub.webhooks.store import WebHookStore

logger = structlog.get_logger(__name__)

# Called with the WebHook and the id of the user who registered it
WebHookPredicate = Callable[[WebHook, str], bool]


def select_webhooks(
    webhooks: Iterable[WebHook],
    user: str,
    actions: Sequence[str],
    predicate: WebHookPredicate | None = None,
) -> list[WebHook]:
    """Select the WebHooks that should receive a notification batch.

    A WebHook is selected iff it is not paused, its filters match one of
    ``actions`` (or it has the wildcard filter), and ``predicate`` (if
    given) accepts it.
    """
    return [
        webhook
        for webhook in webhooks
        if not webhook.is_paused
        and matches_any_action(webhook, actions)
        and (predicate is None or predicate(webhook, user))
    ]


class WebHookManager:
    """Matches notifications against stored WebHooks and dispatches them.

    Store errors propagate to the caller; delivery failures are handled by
    the dispatcher and never surface here.
    """

    def __init__(self, store: WebHookStore, dispatcher: WebHookDispatcher) -> None:
        """Initialize the manager.

        Args:
            store: Store holding the registered WebHooks.
            dispatcher: Dispatcher delivering selected work items.
        """
        self._store = store
        self._dispatcher = dispatcher
        self._logger = logger.bind(component="webhook_manager")

    async def notify(
        self,
        user: str,
        notifications: Iterable[NotificationDictionary],
        predicate: WebHookPredicate | None = None,
    ) -> int:
        """Notify the matching WebHooks registered by ``user``.

        Args:
            user: Id of the user whose WebHooks are considered.
            notifications: Notifications delivered together.
            predicate: Optional extra test applied to each candidate.

        Returns:
            Number of WebHooks selected. Delivery may still be in flight.
        """
        batch = list(notifications)
        if not batch:
            return 0

        actions = [n.action for n in batch]
        webhooks = await self._store.get_all_webhooks(user)
        selected = select_webhooks(webhooks, user, actions, predicate)

        await self._dispatch(selected, batch)

        self._logger.info(
            "notification_dispatched",
            user=user,
            actions=actions,
            candidate_count=len(webhooks),
            webhook_count=len(selected),
        )
        return len(selected)

    async def notify_all(
        self,
        notifications: Iterable[NotificationDictionary],
        predicate: WebHookPredicate | None = None,
    ) -> int:
        """Notify matching WebHooks across all users.

        Returns:
            Number of WebHooks selected.
        """
        batch = list(notifications)
        if not batch:
            return 0

        actions = [n.action for n in batch]
        webhooks_by_user = await self._store.get_all_webhooks_for_all_users()

        selected: list[WebHook] = []
        for user, webhooks in webhooks_by_user.items():
            selected.extend(select_webhooks(webhooks, user, actions, predicate))

        await self._dispatch(selected, batch)

        self._logger.info(
            "notification_dispatched_all_users",
            actions=actions,
            user_count=len(webhooks_by_user),
            webhook_count=len(selected),
        )
        return len(selected)

    async def _dispatch(
        self,
        webhooks: list[WebHook],
        notifications: list[NotificationDictionary],
    ) -> None:
        if not webhooks:
            return
        work_items = [WebHookWorkItem.create(webhook, notifications) for webhook in webhooks]
        await self._dispatcher.submit(work_items)
