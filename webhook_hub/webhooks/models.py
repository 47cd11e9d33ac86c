"""WebHook registration, notification and work item models.

The wire representation of a WebHook uses PascalCase keys (``Id``,
``WebHookUri``, ``Filters`` ...) so existing clients and receivers keep
working; Python code uses the snake_case attribute names.
"""

from __future__ import annotations

import dataclasses
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

from webhook_hub.errors import ValidationError


class StoreResult(str, Enum):
    """Result of a mutating store operation."""

    SUCCESS = "success"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    OPERATION_ERROR = "operation_error"


def _dedupe_case_insensitive(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        key = value.lower()
        if key not in seen:
            seen.add(key)
            result.append(value)
    return result


class WebHook(BaseModel):
    """A registered WebHook subscription.

    ``filters`` behaves as a case-insensitive set: duplicates differing only
    in case collapse to the first spelling seen.
    """

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    id: str = Field(
        default="",
        alias="Id",
        description="WebHook identifier, unique per user",
    )
    webhook_uri: str = Field(
        ...,
        alias="WebHookUri",
        description="Absolute URI the WebHook is delivered to",
    )
    secret: str = Field(
        default="",
        alias="Secret",
        description="Key used to sign deliveries (16 to 128 characters)",
    )
    description: str | None = Field(
        default=None,
        alias="Description",
        description="Human-readable description",
    )
    is_paused: bool = Field(
        default=False,
        alias="IsPaused",
        description="Paused WebHooks are never selected for delivery",
    )
    filters: list[str] = Field(
        default_factory=list,
        alias="Filters",
        description="Actions this WebHook subscribes to ('*' = all)",
    )
    headers: dict[str, str] = Field(
        default_factory=dict,
        alias="Headers",
        description="Extra HTTP headers sent with each delivery",
    )
    properties: dict[str, Any] | None = Field(
        default_factory=dict,
        alias="Properties",
        description="Properties echoed back to the receiver in every delivery",
    )

    _etag: str | None = PrivateAttr(default=None)

    @field_validator("filters")
    @classmethod
    def _normalize_filters(cls, value: list[str]) -> list[str]:
        return _dedupe_case_insensitive(f.strip() for f in value if f and f.strip())

    @property
    def etag(self) -> str | None:
        """Version tag assigned by the store when the WebHook was read."""
        return self._etag

    def set_etag(self, etag: str | None) -> None:
        self._etag = etag

    def has_filter(self, name: str) -> bool:
        """Check case-insensitively whether ``name`` is one of the filters."""
        key = name.lower()
        return any(f.lower() == key for f in self.filters)

    def add_filter(self, name: str) -> None:
        self.filters = [*self.filters, name]

    def remove_filter(self, name: str) -> bool:
        """Remove a filter case-insensitively.

        Returns:
            True if a filter was removed.
        """
        key = name.lower()
        remaining = [f for f in self.filters if f.lower() != key]
        if len(remaining) == len(self.filters):
            return False
        self.filters = remaining
        return True


def _payload_items(data: Any) -> Iterable[tuple[str, Any]]:
    if data is None:
        return ()
    if isinstance(data, Mapping):
        return ((str(k), v) for k, v in data.items())
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json").items()
    if dataclasses.is_dataclass(data) and not isinstance(data, type):
        return dataclasses.asdict(data).items()
    if hasattr(data, "__dict__"):
        return ((k, v) for k, v in vars(data).items() if not k.startswith("_"))
    raise ValidationError(
        f"Notification data of type '{type(data).__name__}' cannot be converted to a dictionary",
    )


class NotificationDictionary(dict[str, Any]):
    """A single notification: an ``Action`` plus arbitrary payload entries.

    The action always comes first; payload entries keep their insertion
    order. A payload entry named ``Action`` is ignored in favour of the
    explicit action.
    """

    ACTION_KEY = "Action"

    def __init__(self, action: str, data: Any = None) -> None:
        if not action or not action.strip():
            raise ValidationError("A notification must have a non-empty action")
        super().__init__()
        self[self.ACTION_KEY] = action
        for key, value in _payload_items(data):
            if key != self.ACTION_KEY:
                self[key] = value

    @property
    def action(self) -> str:
        return self[self.ACTION_KEY]

    @classmethod
    def from_dict(cls, value: Mapping[str, Any]) -> NotificationDictionary:
        """Build a notification from a mapping that carries its own ``Action`` key."""
        action = value.get(cls.ACTION_KEY)
        if not isinstance(action, str):
            raise ValidationError(f"Notification is missing the '{cls.ACTION_KEY}' key")
        return cls(action, value)


@dataclass(frozen=True)
class WebHookWorkItem:
    """One delivery attempt of a notification batch to a single WebHook.

    Retries never mutate a work item; ``next_attempt`` builds a new one with
    the same ``id`` and an incremented ``offset``.

    Attributes:
        webhook: Snapshot of the WebHook taken when the work item was created.
        notifications: The notifications delivered together in one request.
        id: Identifier shared by all attempts of this delivery.
        offset: Zero-based attempt index.
    """

    webhook: WebHook
    notifications: tuple[NotificationDictionary, ...]
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    offset: int = 0

    @classmethod
    def create(
        cls,
        webhook: WebHook,
        notifications: Iterable[NotificationDictionary],
    ) -> WebHookWorkItem:
        """Create the first attempt for a WebHook and notification batch."""
        return cls(
            webhook=webhook.model_copy(deep=True),
            notifications=tuple(notifications),
        )

    @property
    def attempt(self) -> int:
        """One-based attempt number reported to the receiver."""
        return self.offset + 1

    @property
    def lineage(self) -> tuple[str, str]:
        """Key shared by every attempt of this delivery."""
        return (self.webhook.id, self.id)

    def next_attempt(self) -> WebHookWorkItem:
        return dataclasses.replace(self, offset=self.offset + 1)
