"""Pre-flight checks run before any network call."""

from __future__ import annotations

from .config import HandlerConfig, option_for
from .errors import ConfigurationError
from .models import Event

KEEPALIVE_CHECK = "keepalive"

REQUIRED_FIELDS = (
    "endpoint",
    "client_name",
    "client_key_path",
    "sensu_api_url",
    "sensu_api_key",
)


def check_args(config: HandlerConfig, event: Event) -> None:
    """Raise ConfigurationError unless the event and config can be handled."""

    if event.check.name != KEEPALIVE_CHECK:
        raise ConfigurationError("only keepalive events will be processed by this handler")

    for field_name in REQUIRED_FIELDS:
        if not getattr(config, field_name):
            option = option_for(field_name)
            raise ConfigurationError(
                f"--{option.argument} or {option.env} environment variable is required"
            )
