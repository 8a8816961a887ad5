"""Settings loader for the gpiolink client.

Configuration is taken from explicit overrides and the environment. The
daemon's conventional ``PIGPIO_ADDR`` / ``PIGPIO_PORT`` variables select the
endpoint; ``GPIOLINK_<FIELD>`` variables set any other field.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .const import (
    DEFAULT_CLOSE_TIMEOUT,
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_CONNECT_ATTEMPTS,
    DEFAULT_CONNECT_BACKOFF,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_DAEMON_HOST,
    DEFAULT_DAEMON_PORT,
    DEFAULT_DEBUG_LOGGING,
    DEFAULT_LOG_STREAM,
    ENV_DAEMON_HOST,
    ENV_DAEMON_PORT,
    ENV_PREFIX,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ClientConfig:
    """Strongly typed configuration for a daemon connection."""

    host: str = DEFAULT_DAEMON_HOST
    port: int = DEFAULT_DAEMON_PORT
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    connect_attempts: int = DEFAULT_CONNECT_ATTEMPTS
    connect_backoff: float = DEFAULT_CONNECT_BACKOFF
    close_timeout: float = DEFAULT_CLOSE_TIMEOUT
    debug_logging: bool = DEFAULT_DEBUG_LOGGING
    log_stream: bool = DEFAULT_LOG_STREAM

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("host must not be empty")
        if not 0 < self.port <= 65535:
            raise ValueError("port must be between 1 and 65535")
        self.command_timeout = self._require_positive("command_timeout", self.command_timeout)
        self.connect_timeout = self._require_positive("connect_timeout", self.connect_timeout)
        self.close_timeout = self._require_positive("close_timeout", self.close_timeout)
        self.connect_attempts = max(1, int(self.connect_attempts))
        self.connect_backoff = max(0.0, self.connect_backoff)

    @staticmethod
    def _require_positive(name: str, value: float) -> float:
        if value <= 0:
            raise ValueError(f"{name} must be greater than zero")
        return float(value)


def _environment_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    raw: dict[str, Any] = {}
    if environ.get(ENV_DAEMON_HOST):
        raw["host"] = environ[ENV_DAEMON_HOST]
    if environ.get(ENV_DAEMON_PORT):
        raw["port"] = environ[ENV_DAEMON_PORT]
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name:
            raw[field_name] = value
    return raw


def load_client_config(
    overrides: Mapping[str, Any] | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> ClientConfig:
    """Build a validated :class:`ClientConfig`.

    Precedence, lowest first: defaults, environment, *overrides*.

    Raises:
        ValueError: If any field fails validation.
    """
    from marshmallow import ValidationError

    from .schema import ClientConfigSchema

    env = os.environ if environ is None else environ
    raw = _environment_overrides(env)
    if overrides:
        raw.update({k: v for k, v in overrides.items() if v is not None})

    try:
        config = ClientConfigSchema().load(raw)
    except ValidationError as e:
        raise ValueError(f"Invalid gpiolink configuration: {e.messages}") from e

    logger.debug("Loaded client configuration for %s:%d", config.host, config.port)
    return config


__all__ = ["ClientConfig", "load_client_config"]
