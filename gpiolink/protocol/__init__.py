"""Protocol helper utilities for gpiolink.

``frame`` is not re-exported here; import it as ``gpiolink.protocol.frame``.
"""

from . import protocol, status, structures
from .protocol import Command, EXTENSION_REPLY_COMMANDS, UNSIGNED_REPLY_COMMANDS, GpioMode, NotifyFlags, Pull
from .status import ErrorKind, describe, map_status

__all__ = [
    "Command",
    "EXTENSION_REPLY_COMMANDS",
    "ErrorKind",
    "GpioMode",
    "NotifyFlags",
    "Pull",
    "UNSIGNED_REPLY_COMMANDS",
    "describe",
    "map_status",
    "protocol",
    "status",
    "structures",
]
