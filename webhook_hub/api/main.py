"""ASGI entry point.

Run with ``uvicorn webhook_hub.api.main:app``.
"""

from webhook_hub.api.routes import create_app
from webhook_hub.config import settings
from webhook_hub.logging_config import configure_logging

configure_logging(settings.LOG_LEVEL)

app = create_app()
