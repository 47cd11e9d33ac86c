"""Error types for WebHook registration, notification and delivery.

Exception Hierarchy:
    WebHookError (base)
    ├── ValidationError - Bad id, secret, filter or address (client-facing)
    ├── ConflictError - Optimistic concurrency loss in the store
    ├── NotFoundError - Missing WebHook on lookup, update or delete
    ├── OperationError - Opaque store or backend fault
    ├── DeliveryError - Transient network/HTTP failure during dispatch
    └── RegistrarError - A registrar rejected or failed a registration

Expected store failures are reported through StoreResult rather than
raised; these exceptions cover the cases where a caller needs to unwind.
"""

from typing import Any


class WebHookError(Exception):
    """Base exception for all WebHook errors.

    Attributes:
        message: Human-readable error message.
        details: Additional error details.
        recoverable: Whether retrying the operation may succeed.
    """

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/API responses."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


class ValidationError(WebHookError):
    """A WebHook or notification failed validation."""


class ConflictError(WebHookError):
    """The WebHook was changed concurrently; re-read and try again."""

    def __init__(
        self,
        message: str,
        *,
        webhook_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details, recoverable=True)
        self.webhook_id = webhook_id


class NotFoundError(WebHookError):
    """The requested WebHook does not exist for the given user."""

    def __init__(
        self,
        message: str,
        *,
        webhook_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.webhook_id = webhook_id


class OperationError(WebHookError):
    """A backend operation failed in an unexpected way."""


class DeliveryError(WebHookError):
    """A delivery attempt failed.

    Attributes:
        status_code: HTTP status returned by the receiver, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details, recoverable=True)
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        base = super().to_dict()
        base["status_code"] = self.status_code
        return base


class RegistrarError(WebHookError):
    """A registrar threw while inspecting a registration.

    Attributes:
        registrar: Class name of the failing registrar.
    """

    def __init__(
        self,
        message: str,
        *,
        registrar: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.registrar = registrar

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        base = super().to_dict()
        base["registrar"] = self.registrar
        return base
