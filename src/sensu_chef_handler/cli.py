"""Command-line entrypoint invoked by Sensu as a pipe handler."""

from __future__ import annotations

import json
import logging
import sys
from typing import Callable, Mapping, Optional, Sequence, TextIO

import requests

from .config import HandlerConfig, apply_annotation_overrides, load_config
from .errors import EventError, HandlerError
from .handler import EventHandler, KeepaliveHandler
from .integrations import ChefClient, SensuClient
from .models import Event, HandlerOutcome
from .validation import check_args

PACKAGE_LOGGER = "sensu_chef_handler"
LOG_FORMAT = "[sensu-chef-handler] %(levelname)s %(message)s"

logger = logging.getLogger("sensu_chef_handler.cli")


def configure_logging(level: str, stream: Optional[TextIO] = None) -> logging.Logger:
    """Attach a single stream handler to the package logger."""

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for existing in list(package_logger.handlers):
        package_logger.removeHandler(existing)
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    package_logger.propagate = False
    return package_logger


def read_event(stream: TextIO) -> Event:
    raw = stream.read()
    if not raw.strip():
        raise EventError("failed to read event from stdin: no input")
    try:
        payload = json.loads(raw)
    except ValueError as exc:
        raise EventError(f"failed to read event from stdin: {exc}") from exc
    try:
        return Event.from_dict(payload)
    except EventError as exc:
        raise EventError(f"failed to read event from stdin: {exc}") from exc


def run(
    config: HandlerConfig,
    event: Event,
    *,
    chef_session: Optional[requests.Session] = None,
    sensu_session: Optional[requests.Session] = None,
) -> HandlerOutcome:
    """Build the API clients for one event and reconcile it."""

    chef = ChefClient(config, chef_session)
    try:
        sensu = SensuClient(config, sensu_session)
    except HandlerError:
        chef.close()
        raise
    try:
        handler: EventHandler = KeepaliveHandler(config, inventory=chef, entities=sensu)
        return handler.handle(event)
    finally:
        chef.close()
        sensu.close()


def main(
    argv: Optional[Sequence[str]] = None,
    stdin: Optional[TextIO] = None,
    environ: Optional[Mapping[str, str]] = None,
    *,
    runner: Callable[[HandlerConfig, Event], HandlerOutcome] = run,
) -> int:
    try:
        config = load_config(argv, environ)
    except HandlerError as exc:
        configure_logging("INFO")
        logger.error("error validating input: %s", exc)
        return 1
    configure_logging(config.log_level)

    try:
        event = read_event(stdin or sys.stdin)
        config = apply_annotation_overrides(config, event)
        logging.getLogger(PACKAGE_LOGGER).setLevel(config.log_level)
        check_args(config, event)
    except HandlerError as exc:
        logger.error("error validating input: %s", exc)
        return 1

    try:
        outcome = runner(config, event)
    except HandlerError as exc:
        logger.error("error executing handler: %s", exc)
        return 1

    logger.debug("handler finished: %s", outcome.value)
    return 0


if __name__ == "__main__":
    sys.exit(main())
