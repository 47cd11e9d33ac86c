"""Resolution of the user a WebHook belongs to."""

from __future__ import annotations

from dataclasses import dataclass, field

from webhook_hub.errors import OperationError


@dataclass(frozen=True)
class Principal:
    """The authenticated caller on whose behalf WebHooks are managed.

    Attributes:
        name: Identity name, if any.
        claims: Claims attached to the identity.
    """

    name: str | None = None
    claims: dict[str, str] = field(default_factory=dict)


class WebHookUser:
    """Maps a principal to the opaque user id WebHooks are stored under.

    Uses the ``id_claim`` claim when present, the identity name otherwise.
    """

    def __init__(self, id_claim: str | None = None) -> None:
        self._id_claim = id_claim

    async def get_user_id(self, principal: Principal | None) -> str:
        """Get the user id for ``principal``.

        Raises:
            OperationError: If no user id can be determined.
        """
        if principal is None:
            raise OperationError("No principal was provided to identify the WebHook user")

        user_id = principal.claims.get(self._id_claim) if self._id_claim else None
        user_id = user_id or principal.name
        if not user_id:
            raise OperationError("Could not determine the user id from the current principal")
        return user_id
