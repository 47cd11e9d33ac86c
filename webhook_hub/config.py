"""Application configuration settings.

This module provides centralized configuration management using environment
variables with sensible defaults.
"""

import os
from dataclasses import dataclass


def _get_bool_env(name: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable.

    Args:
        name: Environment variable name.
        default: Default value if not set.

    Returns:
        Boolean value from environment.
    """
    value = os.getenv(name, "").lower()
    if value in ("true", "1", "yes", "on"):
        return True
    if value in ("false", "0", "no", "off"):
        return False
    return default


def _get_delays_env(name: str, default: tuple[float, ...]) -> tuple[float, ...]:
    """Get a comma separated list of delays (seconds) from environment.

    An empty value disables retries entirely.
    """
    value = os.getenv(name)
    if value is None:
        return default
    return tuple(float(part) for part in value.split(",") if part.strip())


@dataclass
class Settings:
    """Settings for registration, matching and delivery of WebHooks.

    Attributes:
        MAX_CONCURRENT_DELIVERIES: Number of delivery workers sending requests in parallel.
        QUEUE_SIZE: Maximum number of queued work items (0 = unbounded).
        RETRY_DELAYS: Delay before each retry; max attempts is 1 + len(RETRY_DELAYS).
        DELIVERY_TIMEOUT: HTTP timeout in seconds for a single delivery attempt.
        REQUIRE_HTTPS: Only accept https WebHook URIs on registration.
        VERIFY_ECHO: Verify new WebHook URIs by issuing an echo GET request.
        USER_AGENT: User agent sent with every delivery.
        LOG_LEVEL: Logging level.
    """

    MAX_CONCURRENT_DELIVERIES: int = 10
    QUEUE_SIZE: int = 1000

    # Matches the default schedule of one and four minutes
    RETRY_DELAYS: tuple[float, ...] = (60.0, 240.0)
    DELIVERY_TIMEOUT: float = 30.0

    # Registration policy
    REQUIRE_HTTPS: bool = False
    VERIFY_ECHO: bool = False

    USER_AGENT: str = "webhook-hub/1.0"
    LOG_LEVEL: str = "INFO"

    @property
    def max_attempts(self) -> int:
        """Total number of delivery attempts per work item lineage."""
        return len(self.RETRY_DELAYS) + 1

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables.

        Returns:
            Settings instance populated from environment.
        """
        return cls(
            MAX_CONCURRENT_DELIVERIES=int(os.getenv("WEBHOOKS_MAX_CONCURRENT_DELIVERIES", "10")),
            QUEUE_SIZE=int(os.getenv("WEBHOOKS_QUEUE_SIZE", "1000")),
            RETRY_DELAYS=_get_delays_env("WEBHOOKS_RETRY_DELAYS", (60.0, 240.0)),
            DELIVERY_TIMEOUT=float(os.getenv("WEBHOOKS_DELIVERY_TIMEOUT", "30")),
            REQUIRE_HTTPS=_get_bool_env("WEBHOOKS_REQUIRE_HTTPS", default=False),
            VERIFY_ECHO=_get_bool_env("WEBHOOKS_VERIFY_ECHO", default=False),
            USER_AGENT=os.getenv("WEBHOOKS_USER_AGENT", "webhook-hub/1.0"),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
        )


# Global settings instance
settings = Settings.from_env()
