"""WebHook registration, notification and delivery.

This module provides:
- WebHook, NotificationDictionary, WebHookWorkItem: Core models
- WebHookFilterManager: Filters a WebHook can be registered with
- WebHookStore: Storage contract and in-memory store
- WebHookManager: Matching of notifications against WebHooks
- WebHookSender / WebHookDispatcher: Signed delivery with retry logic
- WebHookRegistrationsManager: Registration verification and CRUD
- HMAC signature generation and verification
"""

from webhook_hub.webhooks.dispatcher import (
    DeliveryOutcome,
    DeliveryStatus,
    WebHookDispatcher,
)
from webhook_hub.webhooks.filters import (
    PRIVATE_FILTER_PREFIX,
    WILDCARD_FILTER_NAME,
    StaticWebHookFilterProvider,
    WebHookFilter,
    WebHookFilterManager,
    WebHookFilterProvider,
    WildcardWebHookFilterProvider,
    remove_private_filters,
)
from webhook_hub.webhooks.manager import WebHookManager
from webhook_hub.webhooks.models import (
    NotificationDictionary,
    StoreResult,
    WebHook,
    WebHookWorkItem,
)
from webhook_hub.webhooks.notifications import WebHookNotificationsManager
from webhook_hub.webhooks.registrations import WebHookRegistrationsManager
from webhook_hub.webhooks.security import (
    SIGNATURE_HEADER,
    create_signature_header,
    verify_signature,
)
from webhook_hub.webhooks.sender import WebHookSender
from webhook_hub.webhooks.services import (
    WebHookServices,
    get_webhook_services,
    set_webhook_services,
)
from webhook_hub.webhooks.store import MemoryWebHookStore, WebHookStore
from webhook_hub.webhooks.user import Principal, WebHookUser
from webhook_hub.webhooks.validation import (
    DefaultWebHookIdValidator,
    WebHookIdValidator,
    WebHookRegistrar,
)

__all__ = [
    # Models
    "NotificationDictionary",
    "StoreResult",
    "WebHook",
    "WebHookWorkItem",
    # Filters
    "PRIVATE_FILTER_PREFIX",
    "WILDCARD_FILTER_NAME",
    "StaticWebHookFilterProvider",
    "WebHookFilter",
    "WebHookFilterManager",
    "WebHookFilterProvider",
    "WildcardWebHookFilterProvider",
    "remove_private_filters",
    # Store and users
    "MemoryWebHookStore",
    "WebHookStore",
    "Principal",
    "WebHookUser",
    # Registration
    "DefaultWebHookIdValidator",
    "WebHookIdValidator",
    "WebHookRegistrar",
    "WebHookRegistrationsManager",
    # Notification and delivery
    "WebHookManager",
    "WebHookNotificationsManager",
    "WebHookSender",
    "WebHookDispatcher",
    "DeliveryOutcome",
    "DeliveryStatus",
    "WebHookServices",
    "get_webhook_services",
    "set_webhook_services",
    # Security
    "SIGNATURE_HEADER",
    "create_signature_header",
    "verify_signature",
]
