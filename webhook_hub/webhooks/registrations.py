"""Registration management for WebHooks owned by a principal.

Provides verification of registrations (secret, filters, address) and
user-scoped CRUD over the store. Callers can hook into reads (e.g. to strip
private filters) and writes (e.g. to run registrars) through callbacks
receiving the user id and the WebHook.
"""

from __future__ import annotations

import secrets
from collections.abc import Awaitable, Callable

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from webhook_hub.config import Settings
from webhook_hub.config import settings as default_settings
from webhook_hub.errors import (
    ConflictError,
    NotFoundError,
    OperationError,
    ValidationError,
)
from webhook_hub.webhooks.filters import (
    WILDCARD_FILTER_NAME,
    WebHookFilterManager,
)
from webhook_hub.webhooks.models import StoreResult, WebHook
from webhook_hub.webhooks.sender import WebHookSender
from webhook_hub.webhooks.store import WebHookStore
from webhook_hub.webhooks.user import Principal, WebHookUser

logger = structlog.get_logger(__name__)

SECRET_MIN_LENGTH = 16
SECRET_MAX_LENGTH = 128

ECHO_PARAMETER = "echo"
NO_ECHO_PARAMETER = "noecho"

# Called with the user id and the WebHook
WebHookCallback = Callable[[str, WebHook], Awaitable[None]]


def raise_for_result(result: StoreResult, webhook_id: str) -> None:
    """Turn a non-success store result into the matching exception.

    Raises:
        NotFoundError: For NOT_FOUND.
        ConflictError: For CONFLICT.
        OperationError: For OPERATION_ERROR.
    """
    if result is StoreResult.SUCCESS:
        return
    if result is StoreResult.NOT_FOUND:
        raise NotFoundError(f"WebHook '{webhook_id}' was not found", webhook_id=webhook_id)
    if result is StoreResult.CONFLICT:
        raise ConflictError(
            f"WebHook '{webhook_id}' already exists or was modified concurrently",
            webhook_id=webhook_id,
        )
    raise OperationError(
        f"The operation on WebHook '{webhook_id}' failed",
        details={"result": result.value},
    )


class WebHookRegistrationsManager:
    """Manages the WebHooks registered by a principal."""

    def __init__(
        self,
        store: WebHookStore,
        user: WebHookUser,
        filter_manager: WebHookFilterManager,
        *,
        sender: WebHookSender | None = None,
        settings: Settings | None = None,
        conflict_retries: int = 3,
    ) -> None:
        """Initialize the registrations manager.

        Args:
            store: Store holding the registered WebHooks.
            user: Resolver from principal to user id.
            filter_manager: Source of the filters clients may register with.
            sender: Sender whose HTTP client is used for echo verification.
            settings: Registration policy.
            conflict_retries: Attempts for read-modify-write updates.
        """
        self._store = store
        self._user = user
        self._filter_manager = filter_manager
        self._sender = sender
        self._settings = settings or default_settings
        self._conflict_retries = conflict_retries
        self._logger = logger.bind(component="webhook_registrations")

    async def get_webhooks(
        self,
        principal: Principal | None,
        on_return: WebHookCallback | None = None,
    ) -> list[WebHook]:
        """Get all WebHooks registered by ``principal``."""
        user = await self._user.get_user_id(principal)
        webhooks = await self._store.get_all_webhooks(user)
        if on_return is not None:
            for webhook in webhooks:
                await on_return(user, webhook)
        return webhooks

    async def lookup_webhook(
        self,
        principal: Principal | None,
        webhook_id: str,
        on_return: WebHookCallback | None = None,
    ) -> WebHook | None:
        """Look up a WebHook registered by ``principal``."""
        user = await self._user.get_user_id(principal)
        webhook = await self._store.lookup_webhook(user, webhook_id)
        if webhook is not None and on_return is not None:
            await on_return(user, webhook)
        return webhook

    async def verify_secret(self, webhook: WebHook) -> None:
        """Generate a secret if missing and check its length.

        Raises:
            ValidationError: If the secret is not 16 to 128 characters long.
        """
        if not webhook.secret:
            webhook.secret = secrets.token_hex(16)
            return

        if not SECRET_MIN_LENGTH <= len(webhook.secret) <= SECRET_MAX_LENGTH:
            raise ValidationError(
                f"The WebHook secret must be between {SECRET_MIN_LENGTH} and "
                f"{SECRET_MAX_LENGTH} characters long",
                details={"length": len(webhook.secret)},
            )

    async def verify_filters(self, webhook: WebHook) -> None:
        """Check every filter is known and normalize its spelling.

        A WebHook without filters gets the wildcard filter. Private filters
        are never listed by the providers, so a caller cannot subscribe to
        one; registrars add them after verification.

        Raises:
            ValidationError: Listing the unknown filters.
        """
        if not webhook.filters:
            webhook.filters = [WILDCARD_FILTER_NAME]
            return

        known = await self._filter_manager.get_all_webhook_filters()

        normalized: list[str] = []
        invalid: list[str] = []
        for name in webhook.filters:
            registered = known.get(name.lower())
            if registered is not None:
                normalized.append(registered.name)
            else:
                invalid.append(name)

        if invalid:
            raise ValidationError(
                f"The following filters are not valid: '{', '.join(invalid)}'. "
                "A list of valid filters can be obtained from the filters endpoint.",
                details={"invalid_filters": invalid},
            )

        webhook.filters = normalized

    async def verify_address(self, webhook: WebHook) -> None:
        """Check the WebHook URI is an absolute URI with a permitted scheme.

        With echo verification enabled, the URI must also answer a GET
        carrying an ``echo`` query parameter with the echo value, unless it
        contains a ``noecho`` parameter.

        Raises:
            ValidationError: If the address is not acceptable.
        """
        try:
            url = httpx.URL(webhook.webhook_uri)
        except httpx.InvalidURL as e:
            raise ValidationError(f"The WebHook URI '{webhook.webhook_uri}' is not valid: {e}") from e

        allowed = ("https",) if self._settings.REQUIRE_HTTPS else ("http", "https")
        if not url.host or url.scheme not in allowed:
            raise ValidationError(
                f"The WebHook URI must be absolute with a '{', '.join(allowed)}' scheme",
                details={"webhook_uri": webhook.webhook_uri},
            )

        if self._settings.VERIFY_ECHO:
            await self._verify_echo(url)

    async def _verify_echo(self, url: httpx.URL) -> None:
        if any(key.lower() == NO_ECHO_PARAMETER for key in url.params.keys()):
            return
        if self._sender is None:
            raise ValidationError("Echo verification requires an HTTP sender")

        echo = secrets.token_hex(16)
        try:
            response = await self._sender.client.get(url.copy_merge_params({ECHO_PARAMETER: echo}))
        except httpx.HTTPError as e:
            raise ValidationError(f"WebHook verification failed: {e}") from e

        if not response.is_success or response.text.strip() != echo:
            self._logger.warning(
                "webhook_echo_failed",
                url=str(url),
                status_code=response.status_code,
            )
            raise ValidationError(
                "WebHook verification failed. The WebHook URI did not return the echo value.",
                details={"status_code": response.status_code},
            )

    async def add_webhook(
        self,
        principal: Principal | None,
        webhook: WebHook,
        on_register: WebHookCallback | None = None,
    ) -> StoreResult:
        """Register a new WebHook for ``principal``.

        Raises:
            RegistrarError: If ``on_register`` rejects the registration.
        """
        user = await self._user.get_user_id(principal)
        if on_register is not None:
            await on_register(user, webhook)

        result = await self._store.insert_webhook(user, webhook)
        self._logger.info("webhook_registered", user=user, webhook_id=webhook.id, result=result.value)
        return result

    async def update_webhook(
        self,
        principal: Principal | None,
        webhook: WebHook,
        on_register: WebHookCallback | None = None,
    ) -> StoreResult:
        """Replace an existing WebHook registered by ``principal``."""
        user = await self._user.get_user_id(principal)
        if on_register is not None:
            await on_register(user, webhook)

        result = await self._store.update_webhook(user, webhook)
        self._logger.info("webhook_updated", user=user, webhook_id=webhook.id, result=result.value)
        return result

    async def update_webhook_with_retry(
        self,
        principal: Principal | None,
        webhook_id: str,
        mutate: Callable[[WebHook], None],
        on_register: WebHookCallback | None = None,
    ) -> StoreResult:
        """Apply ``mutate`` to a stored WebHook, re-reading it on conflicts.

        Returns:
            SUCCESS, NOT_FOUND, or CONFLICT if every attempt lost the race.
        """
        user = await self._user.get_user_id(principal)

        async def attempt() -> StoreResult:
            webhook = await self._store.lookup_webhook(user, webhook_id)
            if webhook is None:
                return StoreResult.NOT_FOUND

            mutate(webhook)
            if on_register is not None:
                await on_register(user, webhook)

            result = await self._store.update_webhook(user, webhook)
            if result is StoreResult.CONFLICT:
                raise ConflictError("WebHook was modified concurrently", webhook_id=webhook_id)
            return result

        try:
            async for attempt_context in AsyncRetrying(
                stop=stop_after_attempt(self._conflict_retries),
                wait=wait_exponential(multiplier=0.05, max=1),
                retry=retry_if_exception_type(ConflictError),
            ):
                with attempt_context:
                    attempt_number = attempt_context.retry_state.attempt_number
                    if attempt_number > 1:
                        self._logger.info(
                            "webhook_update_retry",
                            webhook_id=webhook_id,
                            attempt=attempt_number,
                        )
                    return await attempt()
        except RetryError:
            self._logger.warning(
                "webhook_update_conflict",
                user=user,
                webhook_id=webhook_id,
                attempts=self._conflict_retries,
            )
            return StoreResult.CONFLICT

        # Not reached; AsyncRetrying either returns or raises
        raise RuntimeError("Retry loop exited unexpectedly")

    async def delete_webhook(self, principal: Principal | None, webhook_id: str) -> StoreResult:
        user = await self._user.get_user_id(principal)
        result = await self._store.delete_webhook(user, webhook_id)
        self._logger.info("webhook_deleted", user=user, webhook_id=webhook_id, result=result.value)
        return result

    async def delete_all_webhooks(self, principal: Principal | None) -> None:
        user = await self._user.get_user_id(principal)
        await self._store.delete_all_webhooks(user)
        self._logger.info("all_webhooks_deleted", user=user)
