"""Shared FastAPI dependencies."""

from fastapi import Header, HTTPException

from webhook_hub.webhooks.services import WebHookServices, get_webhook_services
from webhook_hub.webhooks.user import Principal

USER_HEADER = "X-User-Id"


async def get_principal(
    x_user_id: str | None = Header(default=None, alias=USER_HEADER),
) -> Principal:
    """Build the calling principal from the user header.

    Authentication happens upstream; this only reads the identity it set.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail=f"Missing {USER_HEADER} header")
    return Principal(name=x_user_id.strip())


def get_services() -> WebHookServices:
    return get_webhook_services()


def error_detail(message: str, instance: str) -> dict[str, str]:
    """Structured error payload naming the component that failed."""
    return {"detail": message, "instance": instance}
