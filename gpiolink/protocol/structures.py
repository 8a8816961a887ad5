"""Typed wire structures for gpiolink.

Hybrid msgspec/construct structures: construct validates and lays out the
bytes, msgspec gives a frozen, typed object to the rest of the code.
"""

from __future__ import annotations

from typing import Any, ClassVar, Type, TypeVar

import msgspec
from construct import (  # type: ignore
    Construct,
    GreedyBytes,
    Int32ul,
    Struct as BinStruct,
)

from . import protocol

T = TypeVar("T", bound="BaseStruct")


class BaseStruct(msgspec.Struct, frozen=True):
    """Base class for hybrid Msgspec/Construct structures."""

    _SCHEMA: ClassVar[Construct[Any]]

    @classmethod
    def decode(cls: Type[T], data: bytes | bytearray | memoryview) -> T:
        """Decode binary data into a typed Msgspec struct."""
        if not data:
            raise ValueError("Empty payload")
        container: Any = cls._SCHEMA.parse(bytes(data))
        return cls(**{k: v for k, v in container.items() if not k.startswith("_")})

    def encode(self) -> bytes:
        """Encode the typed Msgspec struct into binary data."""
        return self._SCHEMA.build(msgspec.structs.asdict(self))


# --- Headers ---


class CommandHeader(BaseStruct, frozen=True):
    opcode: int
    p1: int = 0
    p2: int = 0
    p3: int = 0

    _SCHEMA = protocol.COMMAND_HEADER_STRUCT


class ResponseHeader(BaseStruct, frozen=True):
    opcode: int
    p1: int
    p2: int
    status: int

    _SCHEMA = protocol.RESPONSE_HEADER_STRUCT

    @property
    def failed(self) -> bool:
        return self.status < 0


class NotificationRecord(BaseStruct, frozen=True):
    sequence: int
    flags: int
    tick: int
    level: int

    _SCHEMA = protocol.NOTIFICATION_STRUCT

    @property
    def is_level_report(self) -> bool:
        return self.flags == 0

    @property
    def is_watchdog(self) -> bool:
        return bool(self.flags & protocol.NotifyFlags.WDOG)

    @property
    def is_keepalive(self) -> bool:
        return bool(self.flags & protocol.NotifyFlags.ALIVE)

    @property
    def is_event(self) -> bool:
        return bool(self.flags & protocol.NotifyFlags.EVENT)

    @property
    def flag_gpio(self) -> int:
        """GPIO (or event id) carried in the low bits of ``flags``."""
        return self.flags & protocol.NTFY_GPIO_MASK


# --- Extension payloads ---


class Uint32Packet(BaseStruct, frozen=True):
    """Single 32-bit argument carried as an extension (trigger level, SPI flags...)."""

    value: int

    _SCHEMA = BinStruct("value" / Int32ul)


class SerialOpenPacket(BaseStruct, frozen=True):
    tty: bytes

    _SCHEMA = BinStruct("tty" / GreedyBytes)
