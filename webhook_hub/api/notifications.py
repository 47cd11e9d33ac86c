"""Notification trigger endpoints.

Raising a notification returns only the number of WebHooks selected;
delivery happens in the background and its outcome is never reported here.
"""

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from webhook_hub.api.dependencies import error_detail, get_principal, get_services
from webhook_hub.errors import WebHookError
from webhook_hub.webhooks.services import WebHookServices
from webhook_hub.webhooks.user import Principal

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/webhooks/notifications", tags=["Notifications"])

INSTANCE = "WebHookNotifications"


class NotificationRequest(BaseModel):
    """Request to raise a notification."""

    action: str = Field(..., description="Action matched against WebHook filters")
    data: dict[str, Any] = Field(
        default_factory=dict,
        description="Payload delivered with the notification",
    )


class NotificationResponse(BaseModel):
    """Number of WebHooks selected for delivery."""

    count: int


def _require_action(request: NotificationRequest) -> None:
    if not request.action.strip():
        raise HTTPException(
            status_code=400,
            detail=error_detail("A notification must have a non-empty action", INSTANCE),
        )


def _notification_failed(e: WebHookError) -> HTTPException:
    message = f"Could not send notification due to error: {e.message}"
    logger.error("notification_failed", error=e.message)
    return HTTPException(status_code=400, detail=error_detail(message, INSTANCE))


@router.post(
    "",
    response_model=NotificationResponse,
    responses={
        400: {"description": "Invalid notification"},
    },
)
async def notify(
    request: NotificationRequest,
    principal: Principal = Depends(get_principal),
    services: WebHookServices = Depends(get_services),
) -> NotificationResponse:
    """Notify the calling user's WebHooks matching the action."""
    _require_action(request)
    try:
        count = await services.notifications.notify_action(principal, request.action, request.data)
    except WebHookError as e:
        raise _notification_failed(e) from e
    return NotificationResponse(count=count)


@router.post(
    "/all",
    response_model=NotificationResponse,
    responses={
        400: {"description": "Invalid notification"},
    },
)
async def notify_all(
    request: NotificationRequest,
    principal: Principal = Depends(get_principal),  # noqa: ARG001
    services: WebHookServices = Depends(get_services),
) -> NotificationResponse:
    """Notify matching WebHooks of every user."""
    _require_action(request)
    try:
        count = await services.notifications.notify_all_action(request.action, request.data)
    except WebHookError as e:
        raise _notification_failed(e) from e
    return NotificationResponse(count=count)
