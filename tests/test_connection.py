"""End-to-end tests for Connection against an in-process fake daemon."""

from __future__ import annotations

import asyncio
import dataclasses
import struct

import pytest

from gpiolink import connect
from gpiolink.config.settings import ClientConfig
from gpiolink.connection import Connection
from gpiolink.errors import DaemonError, GpioLinkError, TransportError, UsageError
from gpiolink.protocol.protocol import Command
from gpiolink.protocol.status import ErrorKind
from gpiolink.registry import Edge, Level

from mocks import FakeDaemon, Request, wait_until


async def _open(daemon: FakeDaemon, config: ClientConfig, **kwargs) -> Connection:
    return await Connection.open(port=daemon.port, config=config, **kwargs)


@pytest.mark.asyncio
async def test_open_binds_notification_handle(client_config: ClientConfig) -> None:
    daemon = await FakeDaemon(handle=5, bank1=0b1010).start()
    try:
        conn = await _open(daemon, client_config)
        try:
            assert conn.fsm_state == Connection.STATE_OPEN
            assert conn.handle == 5
            assert daemon.opcodes() == [Command.NOIB, Command.BR1, Command.NB]
            nb = daemon.requests[-1]
            assert (nb.p1, nb.p2) == (5, 0)
            assert conn.watch_mask == 0
            assert conn.watched == frozenset()
        finally:
            await conn.close()
    finally:
        await daemon.stop()


@pytest.mark.asyncio
async def test_open_with_gpio31_high_and_tick_past_bit_31(client_config: ClientConfig) -> None:
    daemon = await FakeDaemon(bank1=0x80000001).start()
    daemon.handlers[Command.TICK] = lambda request: 0x80000010
    daemon.handlers[Command.HWVER] = lambda request: 0xA02082
    try:
        conn = await _open(daemon, client_config)
        try:
            assert conn.fsm_state == Connection.STATE_OPEN
            assert await conn.read_bank_1() == 0x80000001
            assert await conn.get_current_tick() == 0x80000010
            assert await conn.get_hardware_revision() == 0xA02082
        finally:
            await conn.close()
    finally:
        await daemon.stop()


@pytest.mark.asyncio
async def test_register_then_unregister_restores_mask(client_config: ClientConfig) -> None:
    daemon = await FakeDaemon().start()
    try:
        conn = await _open(daemon, client_config)
        calls: list[tuple[int, int, int]] = []
        try:
            await conn.register_alert(4, lambda *args: calls.append(args))
            assert conn.watch_mask == 1 << 4
            await conn.unregister_alert(4)

            assert conn.watch_mask == 0
            assert daemon.masks == [0, 1 << 4, 0]
            await daemon.send_records((0, 0, 1, 1 << 4))
            await wait_until(lambda: conn.stats.notifications_received == 1)
            assert calls == []
        finally:
            await conn.close()
    finally:
        await daemon.stop()


@pytest.mark.asyncio
async def test_unregister_keeps_explicit_watch(client_config: ClientConfig) -> None:
    daemon = await FakeDaemon().start()
    try:
        conn = await _open(daemon, client_config)
        try:
            await conn.add_watch(6)
            await conn.register_alert(6, lambda *args: None)
            await conn.unregister_alert(6)
            assert conn.watched == frozenset({6})
            assert daemon.masks == [0, 1 << 6]

            await conn.remove_watch(6)
            await conn.remove_watch(6)
            assert daemon.masks == [0, 1 << 6, 0]

            with pytest.raises(UsageError):
                await conn.unregister_alert(6)
            with pytest.raises(UsageError):
                await conn.add_watch(32)
        finally:
            await conn.close()
    finally:
        await daemon.stop()


@pytest.mark.asyncio
async def test_rejected_mask_leaves_watch_set_unchanged(client_config: ClientConfig) -> None:
    daemon = await FakeDaemon().start()

    def reject_nonzero(request: Request) -> int:
        return -25 if request.p2 else 0

    daemon.handlers[Command.NB] = reject_nonzero
    try:
        conn = await _open(daemon, client_config)
        try:
            with pytest.raises(DaemonError) as excinfo:
                await conn.register_alert(3, lambda *args: None)
            assert excinfo.value.kind is ErrorKind.BAD_HANDLE
            assert conn.watched == frozenset()
            assert 3 not in conn.registry
            assert not conn.closed
        finally:
            await conn.close()
    finally:
        await daemon.stop()


@pytest.mark.asyncio
async def test_level_changes_reach_callbacks(client_config: ClientConfig) -> None:
    daemon = await FakeDaemon().start()
    try:
        conn = await _open(daemon, client_config)
        calls: list[tuple[int, int, int]] = []
        try:
            await conn.register_alert(0, lambda *args: calls.append(args))
            await conn.register_alert(2, lambda *args: calls.append(args), Edge.FALLING)
            await daemon.send_records(
                (0, 0, 10, 0b0000),
                (1, 0, 20, 0b0101),
                (2, 0, 30, 0b0111),
                (3, 0, 40, 0b0001),
                (4, 0x20 | 2, 50, 0),
            )
            await wait_until(lambda: conn.stats.notifications_received == 5)
            assert calls == [
                (0, Level.HIGH, 20),
                (2, Level.LOW, 40),
                (2, Level.TIMEOUT, 50),
            ]
        finally:
            await conn.close()
    finally:
        await daemon.stop()


@pytest.mark.asyncio
async def test_close_is_idempotent_and_releases_handle(client_config: ClientConfig) -> None:
    daemon = await FakeDaemon(handle=9).start()
    try:
        conn = await _open(daemon, client_config)
        await conn.register_alert(1, lambda *args: None)

        await conn.close()
        await conn.close()

        assert conn.closed
        assert conn.fsm_state == Connection.STATE_CLOSED
        nc = [r for r in daemon.requests if r.opcode == Command.NC]
        assert len(nc) == 1
        assert nc[0].p1 == 9
        assert len(conn.registry) == 0
        assert conn.watched == frozenset()
        with pytest.raises(UsageError):
            await conn.read(4)
        with pytest.raises(UsageError):
            await conn.register_alert(1, lambda *args: None)
    finally:
        await daemon.stop()


@pytest.mark.asyncio
async def test_close_while_command_blocked(client_config: ClientConfig) -> None:
    daemon = await FakeDaemon().start()
    daemon.handlers[Command.READ] = lambda request: None
    config = dataclasses.replace(client_config, command_timeout=30.0)
    try:
        conn = await _open(daemon, config)
        pending = asyncio.create_task(conn.read(4))
        await wait_until(lambda: Command.READ in daemon.opcodes())

        await asyncio.wait_for(conn.close(), 2.0)
        with pytest.raises(TransportError):
            await asyncio.wait_for(pending, 2.0)

        assert Command.NC not in daemon.opcodes()
        await conn.close()
    finally:
        await daemon.stop()


@pytest.mark.asyncio
async def test_listener_death_is_surfaced(client_config: ClientConfig) -> None:
    daemon = await FakeDaemon().start()
    lost: list[GpioLinkError] = []
    try:
        conn = await _open(daemon, client_config, on_connection_lost=lost.append)
        daemon.drop_notify()
        await asyncio.wait_for(conn.wait_closed(), 2.0)

        assert conn.closed
        assert isinstance(conn.listener_error, TransportError)
        assert lost == [conn.listener_error]
        assert conn.failure is conn.listener_error
        with pytest.raises(UsageError):
            await conn.write(4, 1)
        await conn.close()
    finally:
        await daemon.stop()


@pytest.mark.asyncio
async def test_command_timeout_closes_connection(client_config: ClientConfig) -> None:
    daemon = await FakeDaemon().start()
    daemon.handlers[Command.TICK] = lambda request: None
    lost: list[GpioLinkError] = []
    config = dataclasses.replace(client_config, command_timeout=0.1)
    try:
        conn = await _open(daemon, config, on_connection_lost=lost.append)
        with pytest.raises(TransportError, match="timed out"):
            await conn.get_current_tick()
        assert conn.closed
        assert len(lost) == 1
        assert conn.listener_error is None
    finally:
        await daemon.stop()


@pytest.mark.asyncio
async def test_open_fails_when_daemon_refuses_handle(client_config: ClientConfig) -> None:
    daemon = await FakeDaemon().start()
    daemon.handlers[Command.NOIB] = lambda request: -24
    try:
        with pytest.raises(DaemonError) as excinfo:
            await _open(daemon, client_config)
        assert excinfo.value.kind is ErrorKind.NO_HANDLE
        assert Command.BR1 not in daemon.opcodes()
    finally:
        await daemon.stop()


@pytest.mark.asyncio
async def test_open_refused_is_transport_error(client_config: ClientConfig) -> None:
    daemon = await FakeDaemon().start()
    port = daemon.port
    await daemon.stop()
    config = dataclasses.replace(client_config, connect_attempts=2, connect_backoff=0.0)
    with pytest.raises(TransportError, match="Could not connect"):
        await Connection.open(port=port, config=config)


@pytest.mark.asyncio
async def test_extension_reply_and_next_command(client_config: ClientConfig) -> None:
    daemon = await FakeDaemon().start()
    daemon.handlers[Command.I2CRD] = lambda request: (4, b"\x01\x02\x03\x04")
    daemon.handlers[Command.READ] = lambda request: 1
    try:
        conn = await _open(daemon, client_config)
        try:
            assert await conn.i2c_read_device(0, 4) == b"\x01\x02\x03\x04"
            assert await conn.read(17) == 1
        finally:
            await conn.close()
    finally:
        await daemon.stop()


@pytest.mark.asyncio
async def test_peripheral_requests_on_the_wire(client_config: ClientConfig) -> None:
    daemon = await FakeDaemon().start()
    daemon.handlers[Command.SERO] = lambda request: 2
    daemon.handlers[Command.SPIX] = lambda request: (len(request.extension), request.extension[::-1])
    try:
        async with connect(port=daemon.port, config=client_config) as conn:
            await conn.write(4, 1)
            await conn.gpio_trigger(17, 15, 0)
            await conn.set_noise_filter(5, 1000, 200)
            assert await conn.serial_open("/dev/ttyAMA0", 9600) == 2
            assert await conn.spi_xfer(0, b"\x01\x02") == b"\x02\x01"
            result = await conn.command(Command.HWVER)
            assert result.value == 0

        assert conn.closed
        by_opcode = {r.opcode: r for r in daemon.requests}
        assert (by_opcode[Command.WRITE].p1, by_opcode[Command.WRITE].p2) == (4, 1)
        trig = by_opcode[Command.TRIG]
        assert (trig.p1, trig.p2, trig.p3) == (17, 15, 4)
        assert trig.extension == struct.pack("<I", 0)
        assert by_opcode[Command.FN].extension == struct.pack("<I", 200)
        sero = by_opcode[Command.SERO]
        assert (sero.p1, sero.p2) == (9600, 0)
        assert sero.extension == b"/dev/ttyAMA0"
    finally:
        await daemon.stop()


@pytest.mark.asyncio
async def test_daemon_error_does_not_close_connection(client_config: ClientConfig) -> None:
    daemon = await FakeDaemon().start()
    daemon.handlers[Command.MODES] = lambda request: -4
    try:
        conn = await _open(daemon, client_config)
        try:
            with pytest.raises(DaemonError) as excinfo:
                await conn.set_mode(4, 9)
            assert excinfo.value.kind is ErrorKind.BAD_MODE
            assert not conn.closed
            assert await conn.read(4) == 0
        finally:
            await conn.close()
    finally:
        await daemon.stop()


@pytest.mark.asyncio
async def test_daemon_closing_notify_socket_on_nc_is_orderly(client_config: ClientConfig) -> None:
    daemon = await FakeDaemon().start()
    lost: list[GpioLinkError] = []

    def close_handle(request: Request) -> int:
        daemon.drop_notify()
        return 0

    daemon.handlers[Command.NC] = close_handle
    try:
        conn = await _open(daemon, client_config, on_connection_lost=lost.append)
        await conn.close()
        assert conn.listener_error is None
        assert conn.failure is None
        assert lost == []
    finally:
        await daemon.stop()
