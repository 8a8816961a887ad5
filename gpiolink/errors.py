"""Exception hierarchy for the gpiolink client.

Four kinds of failure surface to callers:

- :class:`ProtocolError`: malformed frame or unexpected extension length.
  Fatal to the connection.
- :class:`TransportError`: refused, reset, closed or timed-out socket.
  Fatal to the connection.
- :class:`DaemonError`: the daemon answered with a negative status.
  Recoverable per call.
- :class:`UsageError`: invalid local state or arguments. Recoverable.
"""

from __future__ import annotations

from .protocol.status import ErrorKind, describe, map_status


class GpioLinkError(Exception):
    """Base class for every error raised by gpiolink."""

    fatal: bool = False


class ProtocolError(GpioLinkError):
    """Frame could not be decoded or violated the wire contract."""

    fatal = True


class TransportError(GpioLinkError, ConnectionError):
    """Socket level failure (refused, reset, closed or timed out)."""

    fatal = True


class UsageError(GpioLinkError, ValueError):
    """Operation is not valid in the current local state."""


class DaemonError(GpioLinkError):
    """Negative status returned by the daemon for a single command."""

    def __init__(self, code: int, opcode: int | None = None) -> None:
        self.code = code
        self.opcode = opcode
        self.kind: ErrorKind = map_status(code) or ErrorKind.UNKNOWN
        self.description = describe(code)
        if opcode is None:
            message = f"{self.description} ({code})"
        else:
            message = f"{self.description} ({code}) for command {opcode}"
        super().__init__(message)


__all__ = [
    "DaemonError",
    "GpioLinkError",
    "ProtocolError",
    "TransportError",
    "UsageError",
]
