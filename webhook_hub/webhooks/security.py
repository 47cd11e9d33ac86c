"""WebHook signature utilities.

Every delivery carries an ``ms-signature`` header of the form
``sha256=<hex>``, where ``<hex>`` is the lowercase hex HMAC-SHA256 of the
exact UTF-8 request body keyed with the UTF-8 encoded WebHook secret.
"""

import hashlib
import hmac
from collections.abc import Mapping

import structlog

logger = structlog.get_logger(__name__)

SIGNATURE_HEADER = "ms-signature"
SIGNATURE_SCHEME = "sha256"


def _as_bytes(body: str | bytes) -> bytes:
    return body.encode("utf-8") if isinstance(body, str) else body


def generate_signature(body: str | bytes, secret: str) -> str:
    """Generate the HMAC-SHA256 hex digest of a request body.

    Args:
        body: Request body; strings are UTF-8 encoded.
        secret: WebHook secret.

    Returns:
        Lowercase hex digest.
    """
    return hmac.new(
        secret.encode("utf-8"),
        _as_bytes(body),
        hashlib.sha256,
    ).hexdigest()


def create_signature_header(body: str | bytes, secret: str) -> str:
    """Create the ``ms-signature`` header value for a body."""
    return f"{SIGNATURE_SCHEME}={generate_signature(body, secret)}"


def verify_signature(body: str | bytes, header_value: str, secret: str) -> bool:
    """Verify an ``ms-signature`` header value against a received body.

    Uses constant-time comparison.

    Args:
        body: Body exactly as received.
        header_value: Value of the signature header.
        secret: WebHook secret.

    Returns:
        True if the signature is valid.
    """
    scheme, _, signature = header_value.strip().partition("=")
    if scheme.lower() != SIGNATURE_SCHEME or not signature:
        logger.warning("webhook_signature_malformed")
        return False

    expected = generate_signature(body, secret)
    is_valid = hmac.compare_digest(signature.lower(), expected)

    if not is_valid:
        logger.warning("webhook_signature_invalid", body_length=len(_as_bytes(body)))

    return is_valid


def verify_from_headers(
    body: str | bytes,
    headers: Mapping[str, str],
    secret: str,
) -> bool:
    """Verify a WebHook signature from request headers.

    Header names are matched ignoring case.

    Raises:
        ValueError: If the signature header is missing.
    """
    value = next(
        (v for k, v in headers.items() if k.lower() == SIGNATURE_HEADER),
        None,
    )
    if not value:
        raise ValueError(f"Missing {SIGNATURE_HEADER} header")

    return verify_signature(body, value, secret)
