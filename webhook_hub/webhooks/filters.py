"""WebHook filters and filter providers.

A filter is the name of an action a WebHook can subscribe to. Filters are
contributed by pluggable providers and aggregated by the filter manager so
clients can discover which filters they may register with.

Filters starting with ``MS_Private_`` (case-insensitive) are private: they
are injected by server-side registrars, take part in dispatch-time matching,
but are never listed to or accepted from clients.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from enum import Enum

import structlog
from pydantic import BaseModel, ConfigDict, Field

from webhook_hub.errors import OperationError
from webhook_hub.webhooks.models import WebHook

logger = structlog.get_logger(__name__)

WILDCARD_FILTER_NAME = "*"
PRIVATE_FILTER_PREFIX = "MS_Private_"


class FilterVisibility(str, Enum):
    """Whether a filter is shown to clients."""

    PUBLIC = "public"
    PRIVATE = "private"


def is_private_filter(name: str) -> bool:
    return name.lower().startswith(PRIVATE_FILTER_PREFIX.lower())


def get_private_filter(name: str) -> str:
    """Turn ``name`` into a private filter name.

    Args:
        name: Filter name without the private prefix.

    Returns:
        The prefixed filter name.
    """
    return f"{PRIVATE_FILTER_PREFIX}{name}"


def filter_visibility(name: str) -> FilterVisibility:
    return FilterVisibility.PRIVATE if is_private_filter(name) else FilterVisibility.PUBLIC


def matches_any_action(webhook: WebHook, actions: Iterable[str]) -> bool:
    """Check whether a WebHook's filters select any of the given actions.

    A WebHook matches if it has the wildcard filter or any filter equal
    (ignoring case) to one of the actions. Private filters count.
    """
    filters = {f.lower() for f in webhook.filters}
    if WILDCARD_FILTER_NAME in filters:
        return True
    return any(action.lower() in filters for action in actions)


async def remove_private_filters(user: str, webhook: WebHook) -> None:  # noqa: ARG001
    """Strip private filters before a WebHook is returned to a client.

    Removing private filters from a WebHook without any is a no-op.
    """
    private = [f for f in webhook.filters if is_private_filter(f)]
    if private:
        webhook.filters = [f for f in webhook.filters if not is_private_filter(f)]


class WebHookFilter(BaseModel):
    """A filter a WebHook can be registered with."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(..., alias="Name", description="Filter name")
    description: str = Field(default="", alias="Description", description="What the filter selects")

    @property
    def visibility(self) -> FilterVisibility:
        return filter_visibility(self.name)


class WebHookFilterProvider(ABC):
    """Contributes a set of filters to the filter manager."""

    @abstractmethod
    async def get_filters(self) -> list[WebHookFilter]:
        """Get the filters provided by this provider."""


class WildcardWebHookFilterProvider(WebHookFilterProvider):
    """Provides the wildcard filter matching every action."""

    async def get_filters(self) -> list[WebHookFilter]:
        return [
            WebHookFilter(
                name=WILDCARD_FILTER_NAME,
                description="Wildcard filter which matches all notifications.",
            )
        ]


class StaticWebHookFilterProvider(WebHookFilterProvider):
    """Provides a fixed list of filters, typically the actions an application raises."""

    def __init__(self, filters: Iterable[WebHookFilter | str]) -> None:
        self._filters = [
            f if isinstance(f, WebHookFilter) else WebHookFilter(name=f) for f in filters
        ]

    async def get_filters(self) -> list[WebHookFilter]:
        return list(self._filters)


class WebHookFilterManager:
    """Aggregates filters from all registered providers."""

    def __init__(self, providers: Iterable[WebHookFilterProvider] | None = None) -> None:
        self._providers = list(providers) if providers is not None else [WildcardWebHookFilterProvider()]
        self._logger = logger.bind(component="webhook_filter_manager")

    async def get_all_webhook_filters(self) -> dict[str, WebHookFilter]:
        """Get all public filters keyed by lower-cased name.

        Returns:
            Mapping from filter name (lower case) to filter.

        Raises:
            OperationError: If two providers contribute the same filter name.
        """
        filters: dict[str, WebHookFilter] = {}
        for provider in self._providers:
            for webhook_filter in await provider.get_filters():
                if webhook_filter.visibility is FilterVisibility.PRIVATE:
                    self._logger.debug(
                        "private_filter_skipped",
                        provider=type(provider).__name__,
                        filter=webhook_filter.name,
                    )
                    continue

                key = webhook_filter.name.lower()
                if key in filters:
                    self._logger.error(
                        "duplicate_filter_name",
                        provider=type(provider).__name__,
                        filter=webhook_filter.name,
                    )
                    raise OperationError(
                        f"Filter '{webhook_filter.name}' is provided by more than one filter provider",
                        details={"provider": type(provider).__name__, "filter": webhook_filter.name},
                    )
                filters[key] = webhook_filter

        return filters
