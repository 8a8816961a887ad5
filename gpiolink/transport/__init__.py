"""Socket channels used by :class:`gpiolink.connection.Connection`."""

from __future__ import annotations

from .command import CommandChannel, CommandResult
from .notify import NotificationChannel

__all__ = [
    "CommandChannel",
    "CommandResult",
    "NotificationChannel",
]
