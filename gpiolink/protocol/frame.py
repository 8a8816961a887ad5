"""Command frame encoding and decoding for the daemon socket protocol.

Request layout (little-endian)::

    [opcode u32] [p1 u32] [p2 u32] [p3 u32] [extension (p3 bytes, optional)]

Response layout::

    [opcode u32] [p1 u32] [p2 u32] [status i32] [extension (status bytes)]

The response's fourth word is the signed status. For opcodes listed in
``EXTENSION_REPLY_COMMANDS`` a non-negative status is also the number of
extension bytes that follow the header.

Notification records on the second socket are fixed 12-byte structures::

    [sequence u16] [flags u16] [tick u32] [level u32]
"""

from __future__ import annotations

import asyncio

import msgspec
from construct import ConstructError

from ..errors import ProtocolError, TransportError
from . import protocol
from .structures import CommandHeader, NotificationRecord, ResponseHeader


class Frame(msgspec.Struct, frozen=True, kw_only=True):
    """A command frame: header words plus an optional extension payload.

    Attributes:
        opcode: Daemon command number.
        p1: First parameter.
        p2: Second parameter.
        p3: Third parameter; replaced by ``len(extension)`` on the wire
            when an extension is present.
        extension: Bytes sent immediately after the header.
    """

    opcode: int
    p1: int = 0
    p2: int = 0
    p3: int = 0
    extension: bytes = b""

    def to_bytes(self) -> bytes:
        return encode(self.opcode, self.p1, self.p2, self.p3, self.extension)

    @classmethod
    def from_bytes(cls, data: bytes | bytearray | memoryview) -> "Frame":
        """Parse a request frame (header plus extension) from *data*."""
        raw = bytes(data)
        if len(raw) < protocol.COMMAND_HEADER_SIZE:
            raise ProtocolError(f"Incomplete frame: {len(raw)} bytes, need {protocol.COMMAND_HEADER_SIZE}")
        header = CommandHeader.decode(raw[: protocol.COMMAND_HEADER_SIZE])
        extension = raw[protocol.COMMAND_HEADER_SIZE :]
        if extension and len(extension) != header.p3:
            raise ProtocolError(f"Extension length mismatch: header says {header.p3}, got {len(extension)}")
        return cls(opcode=header.opcode, p1=header.p1, p2=header.p2, p3=header.p3, extension=extension)


def _u32(value: int) -> int:
    return int(value) & protocol.UINT32_MASK


def encode(opcode: int, p1: int = 0, p2: int = 0, p3: int = 0, extension: bytes = b"") -> bytes:
    """Build the wire bytes for one request.

    Parameters are masked to 32 bits; range checks are left to the daemon,
    which reports them through the reply status.
    """
    if extension:
        p3 = len(extension)
    header = CommandHeader(opcode=_u32(opcode), p1=_u32(p1), p2=_u32(p2), p3=_u32(p3))
    return header.encode() + bytes(extension)


def decode_header(data: bytes | bytearray | memoryview) -> ResponseHeader:
    """Decode a 16-byte response header."""
    if len(data) != protocol.RESPONSE_HEADER_SIZE:
        raise ProtocolError(f"Response header must be {protocol.RESPONSE_HEADER_SIZE} bytes, got {len(data)}")
    try:
        return ResponseHeader.decode(data)
    except ConstructError as e:
        raise ProtocolError(f"Response header parsing failed: {e}") from e


def decode_record(data: bytes | bytearray | memoryview) -> NotificationRecord:
    """Decode a 12-byte notification record."""
    if len(data) != protocol.NOTIFICATION_SIZE:
        raise ProtocolError(f"Notification record must be {protocol.NOTIFICATION_SIZE} bytes, got {len(data)}")
    try:
        return NotificationRecord.decode(data)
    except ConstructError as e:
        raise ProtocolError(f"Notification parsing failed: {e}") from e


def expects_extension(opcode: int) -> bool:
    return opcode in protocol.EXTENSION_REPLY_COMMANDS


async def read_exactly(reader: asyncio.StreamReader, size: int) -> bytes:
    """Read exactly *size* bytes or fail with :class:`TransportError`."""
    try:
        return await reader.readexactly(size)
    except asyncio.IncompleteReadError as e:
        raise TransportError(f"Connection closed after {len(e.partial)} of {size} bytes") from e
    except OSError as e:
        raise TransportError(f"Socket read failed: {e}") from e


async def read_extension(reader: asyncio.StreamReader, length: int) -> bytes:
    """Read an extension payload of exactly *length* bytes."""
    if length < 0 or length > protocol.MAX_EXTENSION_SIZE:
        raise ProtocolError(f"Unexpected extension length {length}")
    if length == 0:
        return b""
    return await read_exactly(reader, length)


__all__ = [
    "Frame",
    "decode_header",
    "decode_record",
    "encode",
    "expects_extension",
    "read_exactly",
    "read_extension",
]
