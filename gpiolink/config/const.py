"""Default values for gpiolink configuration."""

from __future__ import annotations

from typing import Final

from ..protocol.protocol import DEFAULT_HOST, DEFAULT_PORT

DEFAULT_DAEMON_HOST: Final[str] = DEFAULT_HOST
DEFAULT_DAEMON_PORT: Final[int] = DEFAULT_PORT
DEFAULT_COMMAND_TIMEOUT: Final[float] = 5.0
DEFAULT_CONNECT_TIMEOUT: Final[float] = 5.0
DEFAULT_CONNECT_ATTEMPTS: Final[int] = 1
DEFAULT_CONNECT_BACKOFF: Final[float] = 0.5
DEFAULT_CONNECT_BACKOFF_MAX: Final[float] = 10.0
DEFAULT_CLOSE_TIMEOUT: Final[float] = 1.0
DEFAULT_DEBUG_LOGGING: Final[bool] = False
DEFAULT_LOG_STREAM: Final[bool] = True

# Environment variables understood by load_client_config().
ENV_DAEMON_HOST: Final[str] = "PIGPIO_ADDR"
ENV_DAEMON_PORT: Final[str] = "PIGPIO_PORT"
ENV_PREFIX: Final[str] = "GPIOLINK_"
