"""HTTP API for WebHook registrations, filters and notifications."""

from webhook_hub.api.routes import create_app

__all__ = ["create_app"]
