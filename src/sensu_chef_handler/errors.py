"""Shared exception types for the Chef keepalive handler."""

from __future__ import annotations

from typing import Optional


class HandlerError(RuntimeError):
    """Base class for every failure that ends an invocation."""


class ConfigurationError(HandlerError):
    """Raised when a required option is missing or a key/certificate is unusable."""


class EventError(HandlerError):
    """Raised when the event payload read from stdin is unusable."""


class ChefLookupError(HandlerError):
    """Raised when the Chef Server could not say whether a node exists."""


class EntityRemovalError(HandlerError):
    """Raised when the Sensu entity could not be deleted."""


class SensuAPIError(EntityRemovalError):
    """Non-2xx response from the Sensu backend API."""

    def __init__(self, message: str, *, status_code: int, body: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
