"""Logging setup for gpiolink.

Every ``gpiolink.*`` logger writes one JSON object per line. Values passed
through ``extra=`` are kept under an ``extra`` key; frames and other bytes
are shown as uppercase hex so binary payloads survive the log pipeline.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from logging import Handler
from logging.config import dictConfig
from logging.handlers import SysLogHandler
from pathlib import Path
from typing import Any

import msgspec

from .settings import ClientConfig

SYSLOG_SOCKET = Path("/dev/log")
ROOT_LOGGER = "gpiolink"

# Attributes every LogRecord carries; anything else came from ``extra=``.
_STANDARD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


def _hex(data: bytes | bytearray | memoryview) -> str:
    return "[" + bytes(data).hex(" ").upper() + "]"


def _serialise_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return _hex(value)
    return str(value)


class StructuredLogFormatter(logging.Formatter):
    """JSON line formatter; logger names are shown relative to ``gpiolink``."""

    PREFIX = ROOT_LOGGER + "."

    def format(self, record: logging.LogRecord) -> str:
        name = record.name.removeprefix(self.PREFIX)
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "ts": created.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": name,
            "message": record.getMessage(),
        }

        extra = {
            key: _serialise_value(value)
            for key, value in vars(record).items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        }
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        elif record.stack_info:
            payload["stack"] = self.formatStack(record.stack_info)

        return msgspec.json.encode(payload).decode("utf-8")


def _build_handler(log_stream: bool = True) -> Handler:
    """Stream handler, or syslog when requested and a local socket exists."""
    if log_stream or not SYSLOG_SOCKET.exists():
        return logging.StreamHandler()
    handler = SysLogHandler(address=str(SYSLOG_SOCKET), facility=SysLogHandler.LOG_USER)
    handler.ident = "gpiolink "
    return handler


def configure_logging(config: ClientConfig) -> None:
    """Install the structured handler on the ``gpiolink`` logger tree."""
    level = "DEBUG" if config.debug_logging else "INFO"

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {"()": StructuredLogFormatter},
            },
            "handlers": {
                ROOT_LOGGER: {
                    "()": _build_handler,
                    "log_stream": config.log_stream,
                    "level": level,
                    "formatter": "json",
                },
            },
            "loggers": {
                ROOT_LOGGER: {
                    "level": level,
                    "handlers": [ROOT_LOGGER],
                    "propagate": False,
                },
            },
        }
    )
    logging.getLogger(ROOT_LOGGER).info("Logging configured at level %s", level)


__all__ = ["StructuredLogFormatter", "configure_logging"]
