"""Construction and sending of signed WebHook requests.

Each request body is a JSON object with keys in a fixed order::

    {"Id": ..., "Attempt": ..., "Properties": {...}, "Notifications": [...]}

The body is serialized once to bytes, signed, and those exact bytes are
sent; nothing touches the body after signing.
"""

from __future__ import annotations

import json
import re
from typing import Any

import httpx
import structlog
from pydantic_core import to_jsonable_python

from webhook_hub.config import Settings
from webhook_hub.config import settings as default_settings
from webhook_hub.webhooks.models import WebHookWorkItem
from webhook_hub.webhooks.security import SIGNATURE_HEADER, create_signature_header

logger = structlog.get_logger(__name__)

BODY_ID_KEY = "Id"
BODY_ATTEMPT_KEY = "Attempt"
BODY_PROPERTIES_KEY = "Properties"
BODY_NOTIFICATIONS_KEY = "Notifications"

JSON_CONTENT_TYPE = "application/json"

# RFC 7230 token characters
_HEADER_NAME_RE = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")

# Visible ASCII, space and tab; anything else cannot go on the wire
_HEADER_VALUE_RE = re.compile(r"[\t\x20-\x7e]*")

# Set by the sender itself; never taken from WebHook headers
_PROTECTED_HEADERS = frozenset({SIGNATURE_HEADER, "content-length", "host", "transfer-encoding"})


def _is_content_header(name: str) -> bool:
    return name.lower().startswith("content-")


class WebHookSender:
    """Builds signed requests for work items and sends them.

    The sender owns one pooled ``httpx.AsyncClient`` shared by every
    delivery; ``aclose`` releases it and is safe to call more than once.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or default_settings
        self._client = client
        self._closed = False
        self._logger = logger.bind(component="webhook_sender")

    @property
    def client(self) -> httpx.AsyncClient:
        """The shared HTTP client, created on first use."""
        if self._closed:
            raise RuntimeError("WebHookSender has been closed")
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._settings.DELIVERY_TIMEOUT,
                headers={"User-Agent": self._settings.USER_AGENT},
            )
        return self._client

    def create_request_body(self, work_item: WebHookWorkItem) -> str:
        """Serialize a work item into the JSON request body.

        Args:
            work_item: Work item to serialize.

        Returns:
            Compact JSON with a stable key order.
        """
        body: dict[str, Any] = {
            BODY_ID_KEY: work_item.id,
            BODY_ATTEMPT_KEY: work_item.attempt,
        }

        properties = work_item.webhook.properties
        if properties is not None:
            body[BODY_PROPERTIES_KEY] = dict(properties)

        body[BODY_NOTIFICATIONS_KEY] = [dict(n) for n in work_item.notifications]

        return json.dumps(
            body,
            separators=(",", ":"),
            ensure_ascii=False,
            default=to_jsonable_python,
        )

    def create_request(self, work_item: WebHookWorkItem) -> httpx.Request:
        """Create the signed POST request for a work item.

        Args:
            work_item: Work item to deliver.

        Returns:
            Request ready to be sent with the shared client.
        """
        webhook = work_item.webhook
        content = self.create_request_body(work_item).encode("utf-8")

        headers: dict[str, str] = {
            "Content-Type": JSON_CONTENT_TYPE,
            SIGNATURE_HEADER: create_signature_header(content, webhook.secret),
        }
        headers = self._merge_headers(work_item, headers)

        return self.client.build_request(
            "POST",
            webhook.webhook_uri,
            content=content,
            headers=headers,
        )

    def _merge_headers(
        self,
        work_item: WebHookWorkItem,
        headers: dict[str, str],
    ) -> dict[str, str]:
        """Add the WebHook's extra headers.

        Invalid headers are logged and skipped. Entity (``Content-*``)
        headers never replace ones already describing the body.
        """
        present = {name.lower() for name in headers}

        for name, value in work_item.webhook.headers.items():
            lower = name.lower()
            valid = (
                bool(_HEADER_NAME_RE.fullmatch(name))
                and bool(_HEADER_VALUE_RE.fullmatch(value))
                and lower not in _PROTECTED_HEADERS
            )
            if valid and _is_content_header(name) and lower in present:
                valid = False

            if not valid:
                self._logger.error(
                    "invalid_webhook_header",
                    header=name,
                    webhook_id=work_item.webhook.id,
                )
                continue

            headers[name] = value
            present.add(lower)

        return headers

    async def send(self, work_item: WebHookWorkItem) -> httpx.Response:
        """Send one delivery attempt.

        Raises:
            httpx.HTTPError: On transport failures.
        """
        request = self.create_request(work_item)

        self._logger.debug(
            "sending_webhook",
            work_item_id=work_item.id,
            webhook_id=work_item.webhook.id,
            attempt=work_item.attempt,
            url=work_item.webhook.webhook_uri,
        )

        return await self.client.send(request)

    async def aclose(self) -> None:
        """Close the shared HTTP client."""
        if self._closed:
            return
        self._closed = True
        if self._client is not None:
            await self._client.aclose()
            self._logger.debug("http_client_closed")
