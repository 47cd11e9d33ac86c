"""WebHook registration, notification and signed delivery."""

__version__ = "1.0.0"
