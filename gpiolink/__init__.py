"""Asyncio client for the GPIO daemon socket interface."""

__version__ = "1.0.0"

from .connection import Connection, connect
from .errors import DaemonError, GpioLinkError, ProtocolError, TransportError, UsageError
from .protocol import ErrorKind, GpioMode, Pull
from .registry import Edge, Level

__all__ = [
    "Connection",
    "DaemonError",
    "Edge",
    "ErrorKind",
    "GpioLinkError",
    "GpioMode",
    "Level",
    "ProtocolError",
    "Pull",
    "TransportError",
    "UsageError",
    "__version__",
    "connect",
]
