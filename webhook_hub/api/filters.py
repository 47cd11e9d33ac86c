"""WebHook filter discovery endpoint.

Lists the filters a client can register a WebHook with, so a client can
present which notifications are available.
"""

from fastapi import APIRouter, Depends

from webhook_hub.api.dependencies import get_principal, get_services
from webhook_hub.webhooks.filters import WebHookFilter
from webhook_hub.webhooks.services import WebHookServices
from webhook_hub.webhooks.user import Principal

router = APIRouter(prefix="/api/webhooks/filters", tags=["Filters"])


@router.get(
    "",
    response_model=list[WebHookFilter],
)
async def list_filters(
    principal: Principal = Depends(get_principal),  # noqa: ARG001
    services: WebHookServices = Depends(get_services),
) -> list[WebHookFilter]:
    """Get all filters a WebHook can be registered with.

    Private filters are never listed.
    """
    filters = await services.filter_manager.get_all_webhook_filters()
    return list(filters.values())
