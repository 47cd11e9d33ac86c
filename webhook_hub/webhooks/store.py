"""WebHook storage contract and in-memory implementation.

Stores scope every WebHook to the user that registered it. Mutating
operations report expected failures (missing WebHook, lost update) as a
StoreResult instead of raising.
"""

from __future__ import annotations

import asyncio
import uuid
from abc import ABC, abstractmethod

import structlog

from webhook_hub.webhooks.models import StoreResult, WebHook

logger = structlog.get_logger(__name__)


class WebHookStore(ABC):
    """Persistence contract for WebHook registrations."""

    @abstractmethod
    async def get_all_webhooks(self, user: str) -> list[WebHook]:
        """Get all WebHooks registered by ``user``."""

    @abstractmethod
    async def get_all_webhooks_for_all_users(self) -> dict[str, list[WebHook]]:
        """Get every registered WebHook keyed by owning user."""

    @abstractmethod
    async def lookup_webhook(self, user: str, webhook_id: str) -> WebHook | None:
        """Look up a single WebHook.

        The returned WebHook carries the store's etag so a later update can
        detect concurrent modification.
        """

    @abstractmethod
    async def insert_webhook(self, user: str, webhook: WebHook) -> StoreResult:
        """Insert a WebHook; CONFLICT if the id is already registered."""

    @abstractmethod
    async def update_webhook(self, user: str, webhook: WebHook) -> StoreResult:
        """Replace a WebHook; NOT_FOUND if missing, CONFLICT if its etag is stale."""

    @abstractmethod
    async def delete_webhook(self, user: str, webhook_id: str) -> StoreResult:
        """Delete a WebHook; NOT_FOUND if missing."""

    @abstractmethod
    async def delete_all_webhooks(self, user: str) -> None:
        """Delete all WebHooks registered by ``user``."""


class MemoryWebHookStore(WebHookStore):
    """Process-local WebHook store.

    User names and WebHook ids are compared ignoring case. Every stored
    WebHook carries an etag that changes on each write; updating with a
    WebHook read under an older etag yields CONFLICT. WebHooks without an
    etag (e.g. full replacements sent by a client) overwrite unconditionally.
    """

    def __init__(self) -> None:
        self._store: dict[str, dict[str, WebHook]] = {}
        self._users: dict[str, str] = {}
        self._lock = asyncio.Lock()
        self._logger = logger.bind(component="memory_webhook_store")

    @staticmethod
    def _key(value: str) -> str:
        return value.lower()

    @staticmethod
    def _snapshot(webhook: WebHook) -> WebHook:
        return webhook.model_copy(deep=True)

    async def get_all_webhooks(self, user: str) -> list[WebHook]:
        async with self._lock:
            hooks = self._store.get(self._key(user), {})
            return [self._snapshot(w) for w in hooks.values()]

    async def get_all_webhooks_for_all_users(self) -> dict[str, list[WebHook]]:
        async with self._lock:
            return {
                self._users[user_key]: [self._snapshot(w) for w in hooks.values()]
                for user_key, hooks in self._store.items()
                if hooks
            }

    async def lookup_webhook(self, user: str, webhook_id: str) -> WebHook | None:
        async with self._lock:
            webhook = self._store.get(self._key(user), {}).get(self._key(webhook_id))
            return self._snapshot(webhook) if webhook is not None else None

    async def insert_webhook(self, user: str, webhook: WebHook) -> StoreResult:
        async with self._lock:
            hooks = self._store.setdefault(self._key(user), {})
            self._users.setdefault(self._key(user), user)
            key = self._key(webhook.id)
            if key in hooks:
                self._logger.info("webhook_insert_conflict", user=user, webhook_id=webhook.id)
                return StoreResult.CONFLICT

            stored = self._snapshot(webhook)
            stored.set_etag(uuid.uuid4().hex)
            hooks[key] = stored
            webhook.set_etag(stored.etag)
            return StoreResult.SUCCESS

    async def update_webhook(self, user: str, webhook: WebHook) -> StoreResult:
        async with self._lock:
            hooks = self._store.get(self._key(user), {})
            key = self._key(webhook.id)
            current = hooks.get(key)
            if current is None:
                return StoreResult.NOT_FOUND

            if webhook.etag is not None and webhook.etag != current.etag:
                self._logger.info(
                    "webhook_update_conflict",
                    user=user,
                    webhook_id=webhook.id,
                )
                return StoreResult.CONFLICT

            stored = self._snapshot(webhook)
            stored.set_etag(uuid.uuid4().hex)
            hooks[key] = stored
            webhook.set_etag(stored.etag)
            return StoreResult.SUCCESS

    async def delete_webhook(self, user: str, webhook_id: str) -> StoreResult:
        async with self._lock:
            hooks = self._store.get(self._key(user), {})
            if hooks.pop(self._key(webhook_id), None) is None:
                return StoreResult.NOT_FOUND
            return StoreResult.SUCCESS

    async def delete_all_webhooks(self, user: str) -> None:
        async with self._lock:
            self._store.pop(self._key(user), None)
            self._users.pop(self._key(user), None)
