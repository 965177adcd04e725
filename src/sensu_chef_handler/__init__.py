"""Sensu handler that removes entities whose Chef node no longer exists."""

from .config import HandlerConfig, load_config
from .errors import (
    ChefLookupError,
    ConfigurationError,
    EntityRemovalError,
    EventError,
    HandlerError,
    SensuAPIError,
)
from .handler import EventHandler, KeepaliveHandler
from .models import Event, HandlerOutcome, NodeLookup, NodeStatus

__version__ = "0.1.0"

__all__ = [
    "HandlerConfig",
    "load_config",
    "ChefLookupError",
    "ConfigurationError",
    "EntityRemovalError",
    "EventError",
    "HandlerError",
    "SensuAPIError",
    "EventHandler",
    "KeepaliveHandler",
    "Event",
    "HandlerOutcome",
    "NodeLookup",
    "NodeStatus",
]
