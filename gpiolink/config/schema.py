"""Marshmallow schema for ClientConfig validation."""

from __future__ import annotations

from typing import Any, Dict

from marshmallow import EXCLUDE, Schema, fields, post_load, validate

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
)
from .settings import ClientConfig


class ClientConfigSchema(Schema):
    """Declarative validation schema for gpiolink configuration."""

    class Meta:
        unknown = EXCLUDE

    # Endpoint
    host = fields.Str(load_default=DEFAULT_DAEMON_HOST, validate=validate.Length(min=1))
    port = fields.Int(load_default=DEFAULT_DAEMON_PORT, validate=validate.Range(min=1, max=65535))

    # Timing
    command_timeout = fields.Float(load_default=DEFAULT_COMMAND_TIMEOUT, validate=validate.Range(min=0.001))
    connect_timeout = fields.Float(load_default=DEFAULT_CONNECT_TIMEOUT, validate=validate.Range(min=0.001))
    close_timeout = fields.Float(load_default=DEFAULT_CLOSE_TIMEOUT, validate=validate.Range(min=0.001))
    connect_attempts = fields.Int(load_default=DEFAULT_CONNECT_ATTEMPTS, validate=validate.Range(min=1, max=100))
    connect_backoff = fields.Float(load_default=DEFAULT_CONNECT_BACKOFF, validate=validate.Range(min=0.0))

    # Logging
    debug_logging = fields.Bool(load_default=DEFAULT_DEBUG_LOGGING)
    log_stream = fields.Bool(load_default=DEFAULT_LOG_STREAM)

    @post_load
    def make_config(self, data: Dict[str, Any], **kwargs: Any) -> ClientConfig:
        return ClientConfig(**data)
