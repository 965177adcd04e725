"""Configuration loading from flags, environment variables and .env files."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import math
import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple

from dotenv import find_dotenv, load_dotenv

from .errors import ConfigurationError
from .models import Event

PLUGIN_NAME = "sensu-chef-handler"
PLUGIN_SHORT = "A Chef keepalive handler for Sensu"
ANNOTATION_KEYSPACE = "sensu.io/plugins/sensu-chef-handler/config"

AUTH_VERSIONS = ("1.0", "1.3")

logger = logging.getLogger("sensu_chef_handler.config")

_TRUE_VALUES = {"1", "true", "t", "yes", "y", "on"}
_FALSE_VALUES = {"0", "false", "f", "no", "n", "off"}


def parse_bool(value: str) -> bool:
    lowered = str(value).strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"invalid boolean value {value!r}")


def _parse_auth_version(value: str) -> str:
    cleaned = str(value).strip()
    if cleaned not in AUTH_VERSIONS:
        raise ValueError(f"unsupported auth version {value!r} (expected one of {', '.join(AUTH_VERSIONS)})")
    return cleaned


def _parse_timeout(value: str) -> float:
    timeout = float(value)
    if not math.isfinite(timeout) or timeout <= 0:
        raise ValueError("timeout must be a positive finite number")
    return timeout


def _parse_log_level(value: str) -> str:
    level = str(value).strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"unknown log level {value!r}")
    return level


@dataclass(frozen=True)
class HandlerConfig:
    """Immutable settings for one handler invocation."""

    endpoint: str = ""
    client_name: str = ""
    client_key_path: str = ""
    ssl_pem_path: str = ""
    ssl_verify: bool = True
    sensu_api_url: str = "http://localhost:8080"
    sensu_api_key: str = ""
    sensu_ca_cert: str = ""
    auth_version: str = "1.0"
    timeout: float = 10.0
    log_level: str = "INFO"


@dataclass(frozen=True)
class ConfigOption:
    """One configurable value: its flag, environment variable and annotation path."""

    field: str
    argument: str
    env: str
    usage: str
    shorthand: Optional[str] = None
    parse: Callable[[str], Any] = str
    secret: bool = False
    # Entity annotations never override this option; check annotations may.
    check_only: bool = False

    @property
    def path(self) -> str:
        return self.argument

    @property
    def default(self) -> Any:
        return getattr(HandlerConfig(), self.field)

    def convert(self, raw: Any, *, source: str) -> Any:
        try:
            return self.parse(raw)
        except ValueError as exc:
            raise ConfigurationError(f"invalid value for {source}: {exc}") from exc


OPTIONS: Tuple[ConfigOption, ...] = (
    ConfigOption(
        field="endpoint",
        argument="endpoint",
        env="CHEF_ENDPOINT",
        shorthand="e",
        check_only=True,
        usage="The Chef Server API endpoint (URL)",
    ),
    ConfigOption(
        field="client_name",
        argument="client-name",
        env="CHEF_CLIENT_NAME",
        shorthand="c",
        usage="The Chef Client name to use when authenticating/querying the Chef Server API",
    ),
    ConfigOption(
        field="client_key_path",
        argument="client-key-path",
        env="CHEF_CLIENT_KEY_PATH",
        shorthand="k",
        usage="The path to the Chef Client key to use when authenticating/querying the Chef Server API",
    ),
    ConfigOption(
        field="ssl_pem_path",
        argument="ssl-pem-path",
        env="CHEF_SSL_PEM_PATH",
        shorthand="p",
        usage="The Chef SSL pem file use when querying the Chef Server API",
    ),
    ConfigOption(
        field="ssl_verify",
        argument="ssl-verify",
        env="CHEF_SSL_VERIFY",
        shorthand="s",
        parse=parse_bool,
        usage="If the SSL certificate will be verified when querying the Chef Server API",
    ),
    ConfigOption(
        field="sensu_api_url",
        argument="sensu-api-url",
        env="SENSU_API_URL",
        check_only=True,
        usage="The Sensu API URL",
    ),
    ConfigOption(
        field="sensu_api_key",
        argument="sensu-api-key",
        env="SENSU_API_KEY",
        secret=True,
        usage="The Sensu API key",
    ),
    ConfigOption(
        field="sensu_ca_cert",
        argument="sensu-ca-cert",
        env="SENSU_CA_CERT",
        check_only=True,
        usage="The Sensu Go CA Certificate",
    ),
    ConfigOption(
        field="auth_version",
        argument="auth-version",
        env="CHEF_AUTH_VERSION",
        parse=_parse_auth_version,
        usage="Chef request signing protocol version (1.0 or 1.3)",
    ),
    ConfigOption(
        field="timeout",
        argument="timeout",
        env="SENSU_CHEF_HANDLER_TIMEOUT",
        shorthand="t",
        parse=_parse_timeout,
        usage="Timeout in seconds for each Chef and Sensu API request",
    ),
    ConfigOption(
        field="log_level",
        argument="log-level",
        env="SENSU_CHEF_HANDLER_LOG_LEVEL",
        parse=_parse_log_level,
        usage="Logging level (DEBUG, INFO, WARNING, ERROR)",
    ),
)

_OPTIONS_BY_FIELD: Dict[str, ConfigOption] = {option.field: option for option in OPTIONS}


def option_for(field_name: str) -> ConfigOption:
    return _OPTIONS_BY_FIELD[field_name]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=PLUGIN_NAME, description=PLUGIN_SHORT)
    for option in OPTIONS:
        flags = [f"--{option.argument}"]
        if option.shorthand:
            flags.insert(0, f"-{option.shorthand}")
        help_text = f"{option.usage} (env {option.env}"
        if option.default not in ("", None):
            help_text += f", default {option.default}"
        kwargs: Dict[str, Any] = {
            "dest": option.field,
            "default": None,
            "help": help_text + ")",
        }
        if option.field == "ssl_verify":
            # --ssl-verify, --ssl-verify=false and --ssl-verify false are all accepted.
            kwargs.update(nargs="?", const="true", metavar="BOOL")
        parser.add_argument(*flags, **kwargs)
    return parser


def load_config(
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> HandlerConfig:
    """Resolve every option as flag, then environment variable, then default.

    When ``environ`` is omitted the process environment is used, after loading a
    ``.env`` file from the working directory without overriding real variables.
    """

    if environ is None:
        load_dotenv(find_dotenv(usecwd=True), override=False)
        environ = os.environ

    args = build_parser().parse_args(argv)
    values: Dict[str, Any] = {}
    for option in OPTIONS:
        flag_value = getattr(args, option.field)
        if flag_value is not None:
            values[option.field] = option.convert(flag_value, source=f"--{option.argument}")
            continue
        env_value = environ.get(option.env)
        if env_value not in (None, ""):
            values[option.field] = option.convert(env_value, source=option.env)
    return HandlerConfig(**values)


def apply_annotation_overrides(config: HandlerConfig, event: Event) -> HandlerConfig:
    """Return a config with per-check or per-entity annotation overrides applied.

    Check annotations take precedence over entity annotations. Secret options
    are never read from annotations, and check-only options ignore entity
    annotations.
    """

    changes: Dict[str, Any] = {}
    for option in OPTIONS:
        if option.secret:
            continue
        key = f"{ANNOTATION_KEYSPACE}/{option.path}"
        if event.check.annotations.get(key):
            raw, origin = event.check.annotations[key], "check"
        elif not option.check_only and event.entity.annotations.get(key):
            raw, origin = event.entity.annotations[key], "entity"
        else:
            continue
        changes[option.field] = option.convert(raw, source=f"{origin} annotation {key}")
        logger.info(
            'Overriding default handler configuration with value of "%s.annotations.%s"',
            origin.capitalize(),
            key,
        )
    if not changes:
        return config
    return dataclasses.replace(config, **changes)
