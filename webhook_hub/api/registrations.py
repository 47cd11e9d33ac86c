"""WebHook registration API endpoints.

Provides a REST API to create, inspect, modify and delete the WebHooks of
the calling user. Private filters are stripped from every WebHook returned
and re-added by registrars on every write.
"""

from functools import partial
from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from webhook_hub.api.dependencies import error_detail, get_principal, get_services
from webhook_hub.errors import NotFoundError, WebHookError
from webhook_hub.webhooks.filters import remove_private_filters
from webhook_hub.webhooks.models import StoreResult, WebHook
from webhook_hub.webhooks.registrations import raise_for_result
from webhook_hub.webhooks.services import WebHookServices
from webhook_hub.webhooks.user import Principal
from webhook_hub.webhooks.validation import run_registrars

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/webhooks/registrations", tags=["Registrations"])

INSTANCE = "WebHookRegistrations"


async def _add_private_filters(
    services: WebHookServices,
    request: Request,
    user: str,  # noqa: ARG001
    webhook: WebHook,
) -> None:
    await run_registrars(services.registrars, request, webhook)


async def _verify(services: WebHookServices, webhook: WebHook) -> None:
    """Run secret, filter and address verification.

    Any failure is reported to the client as a bad request.
    """
    registrations = services.registrations
    try:
        await registrations.verify_secret(webhook)
        await registrations.verify_filters(webhook)
        await registrations.verify_address(webhook)
    except WebHookError as e:
        message = f"Could not register WebHook due to error: {e.message}"
        logger.error("webhook_verification_failed", webhook_id=webhook.id, error=e.message)
        raise HTTPException(status_code=400, detail=error_detail(message, INSTANCE)) from e


def _raise_for_result(result: StoreResult, webhook_id: str) -> None:
    try:
        raise_for_result(result, webhook_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=error_detail(e.message, INSTANCE)) from e
    except WebHookError as e:
        raise HTTPException(status_code=400, detail=error_detail(e.message, INSTANCE)) from e


@router.get(
    "",
    response_model=list[WebHook],
)
async def list_registrations(
    principal: Principal = Depends(get_principal),
    services: WebHookServices = Depends(get_services),
) -> list[WebHook]:
    """Get all WebHooks registered by the calling user."""
    return await services.registrations.get_webhooks(principal, remove_private_filters)


@router.get(
    "/{webhook_id}",
    response_model=WebHook,
    responses={
        404: {"description": "WebHook not found"},
    },
)
async def lookup_registration(
    webhook_id: str,
    principal: Principal = Depends(get_principal),
    services: WebHookServices = Depends(get_services),
) -> WebHook:
    """Look up a WebHook registered by the calling user."""
    webhook = await services.registrations.lookup_webhook(
        principal, webhook_id, remove_private_filters
    )
    if webhook is None:
        raise HTTPException(status_code=404, detail=error_detail(f"WebHook {webhook_id} not found", INSTANCE))
    return webhook


@router.post(
    "",
    response_model=WebHook,
    responses={
        201: {"description": "WebHook registered"},
        400: {"description": "Invalid registration"},
    },
    status_code=201,
)
async def create_registration(
    webhook: WebHook,
    request: Request,
    principal: Principal = Depends(get_principal),
    services: WebHookServices = Depends(get_services),
) -> WebHook:
    """Register a new WebHook.

    The id is assigned by the server and a secret is generated when none
    is given. Filters must be known filter names.
    """
    try:
        await services.id_validator.validate_id(request, webhook)
    except WebHookError as e:
        raise HTTPException(
            status_code=400,
            detail=error_detail(f"Could not register WebHook due to error: {e.message}", INSTANCE),
        ) from e

    await _verify(services, webhook)

    try:
        result = await services.registrations.add_webhook(
            principal, webhook, partial(_add_private_filters, services, request)
        )
    except WebHookError as e:
        raise HTTPException(
            status_code=400,
            detail=error_detail(f"Could not register WebHook due to error: {e.message}", INSTANCE),
        ) from e

    _raise_for_result(result, webhook.id)
    await remove_private_filters("", webhook)
    return webhook


@router.put(
    "/{webhook_id}",
    response_model=WebHook,
    responses={
        400: {"description": "Invalid registration"},
        404: {"description": "WebHook not found"},
    },
)
async def update_registration(
    webhook_id: str,
    webhook: WebHook,
    request: Request,
    principal: Principal = Depends(get_principal),
    services: WebHookServices = Depends(get_services),
) -> WebHook:
    """Replace an existing WebHook registration."""
    if webhook_id.lower() != webhook.id.lower():
        raise HTTPException(
            status_code=400,
            detail=error_detail("The WebHook id in the URI must match the id in the body", INSTANCE),
        )

    await _verify(services, webhook)

    try:
        result = await services.registrations.update_webhook(
            principal, webhook, partial(_add_private_filters, services, request)
        )
    except WebHookError as e:
        raise HTTPException(
            status_code=400,
            detail=error_detail(f"Could not update WebHook due to error: {e.message}", INSTANCE),
        ) from e

    _raise_for_result(result, webhook.id)
    await remove_private_filters("", webhook)
    return webhook


@router.delete(
    "/all",
)
async def delete_all_registrations(
    principal: Principal = Depends(get_principal),
    services: WebHookServices = Depends(get_services),
) -> dict[str, Any]:
    """Delete all WebHooks registered by the calling user."""
    await services.registrations.delete_all_webhooks(principal)
    return {"deleted": True}


@router.delete(
    "/{webhook_id}",
    responses={
        404: {"description": "WebHook not found"},
    },
)
async def delete_registration(
    webhook_id: str,
    principal: Principal = Depends(get_principal),
    services: WebHookServices = Depends(get_services),
) -> dict[str, Any]:
    """Delete a WebHook registration."""
    result = await services.registrations.delete_webhook(principal, webhook_id)
    _raise_for_result(result, webhook_id)
    return {"deleted": True}
