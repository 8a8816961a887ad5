"""Tests for the command frame codec."""

from __future__ import annotations

import asyncio
import struct

import pytest

from gpiolink.errors import ProtocolError, TransportError
from gpiolink.protocol import frame, protocol
from gpiolink.protocol.protocol import Command
from gpiolink.protocol.structures import NotificationRecord, Uint32Packet

from mocks import record_bytes, reply_bytes


def test_encode_header_layout() -> None:
    data = frame.encode(Command.WRITE, 4, 1)
    assert data == struct.pack("<IIII", 4, 4, 1, 0)
    assert len(data) == protocol.COMMAND_HEADER_SIZE == 16


def test_encode_extension_sets_length_word() -> None:
    data = frame.encode(Command.TRIG, 17, 10, 999, b"\x01\x00\x00\x00")
    opcode, p1, p2, p3 = struct.unpack("<IIII", data[:16])
    assert (opcode, p1, p2, p3) == (Command.TRIG, 17, 10, 4)
    assert data[16:] == b"\x01\x00\x00\x00"


def test_encode_masks_negative_and_wide_values() -> None:
    data = frame.encode(Command.BS1, -1, 1 << 33)
    _, p1, p2, _ = struct.unpack("<IIII", data)
    assert p1 == 0xFFFFFFFF
    assert p2 == 0


@pytest.mark.parametrize(
    ("opcode", "p1", "p2", "status"),
    [
        (Command.READ, 4, 0, 1),
        (Command.MODEG, 31, 0, 0),
        (Command.TICK, 0, 0, -1),
        (Command.HWVER, 0xFFFFFFFF, 0xFFFFFFFF, 0x7FFFFFFF),
        (Command.I2CO, 1, 0x48, -(2**31)),
    ],
)
def test_decode_header_reads_echoed_request(opcode: int, p1: int, p2: int, status: int) -> None:
    header = frame.decode_header(reply_bytes(opcode, status, p1=p1, p2=p2))
    assert (header.opcode, header.p1, header.p2, header.status) == (opcode, p1, p2, status)
    assert header.failed is (status < 0)


@pytest.mark.parametrize("size", [0, 15, 17, 32])
def test_decode_header_rejects_wrong_length(size: int) -> None:
    with pytest.raises(ProtocolError):
        frame.decode_header(b"\x00" * size)


def test_decode_record_fields_and_flags() -> None:
    record = frame.decode_record(record_bytes(7, 0x20 | 17, 123456, 0x0000_0011))
    assert isinstance(record, NotificationRecord)
    assert record.sequence == 7
    assert record.tick == 123456
    assert record.level == 0x11
    assert record.is_watchdog
    assert not record.is_level_report
    assert record.flag_gpio == 17

    plain = frame.decode_record(record_bytes(8, 0, 1, 1))
    assert plain.is_level_report
    assert not plain.is_keepalive

    alive = frame.decode_record(record_bytes(9, 0x40, 1, 1))
    assert alive.is_keepalive


def test_decode_record_rejects_wrong_length() -> None:
    with pytest.raises(ProtocolError):
        frame.decode_record(b"\x00" * 11)


def test_frame_struct_round_trip() -> None:
    original = frame.Frame(opcode=Command.I2CWD, p1=2, extension=b"\xde\xad\xbe")
    parsed = frame.Frame.from_bytes(original.to_bytes())
    assert parsed.opcode == Command.I2CWD
    assert parsed.p1 == 2
    assert parsed.p3 == 3
    assert parsed.extension == b"\xde\xad\xbe"


def test_frame_from_bytes_rejects_truncated_input() -> None:
    with pytest.raises(ProtocolError):
        frame.Frame.from_bytes(b"\x00" * 10)

    header = struct.pack("<IIII", Command.SPIW, 0, 0, 4)
    with pytest.raises(ProtocolError, match="mismatch"):
        frame.Frame.from_bytes(header + b"\x01\x02")


def test_frame_is_immutable() -> None:
    built = frame.Frame(opcode=Command.READ, p1=3)
    with pytest.raises(AttributeError):
        built.p1 = 4  # type: ignore[misc]


def test_uint32_packet_encoding() -> None:
    assert Uint32Packet(value=0x01020304).encode() == b"\x04\x03\x02\x01"
    assert Uint32Packet.decode(b"\x04\x03\x02\x01").value == 0x01020304


def test_expects_extension_only_for_payload_commands() -> None:
    assert frame.expects_extension(Command.I2CRD)
    assert frame.expects_extension(Command.SPIX)
    assert frame.expects_extension(Command.SERR)
    assert not frame.expects_extension(Command.READ)
    assert not frame.expects_extension(Command.SPIW)


def test_read_exactly_short_read_is_transport_error() -> None:
    async def _run() -> None:
        reader = asyncio.StreamReader()
        reader.feed_data(b"\x01\x02\x03")
        reader.feed_eof()
        with pytest.raises(TransportError, match="3 of 16"):
            await frame.read_exactly(reader, 16)

    asyncio.run(_run())


def test_read_extension_bounds() -> None:
    async def _run() -> None:
        reader = asyncio.StreamReader()
        reader.feed_data(b"abcd")
        assert await frame.read_extension(reader, 0) == b""
        assert await frame.read_extension(reader, 4) == b"abcd"
        with pytest.raises(ProtocolError):
            await frame.read_extension(reader, -1)
        with pytest.raises(ProtocolError):
            await frame.read_extension(reader, protocol.MAX_EXTENSION_SIZE + 1)

    asyncio.run(_run())
