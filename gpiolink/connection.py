"""Connection to a GPIO daemon: two sockets, one identity.

A :class:`Connection` owns a command channel (request/reply) and a
notification channel (listener task). Both are opened together, share the
notification handle granted by the daemon, and are closed together.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from types import TracebackType
from typing import TYPE_CHECKING, Any

import tenacity
from transitions import Machine

from .config.const import DEFAULT_CONNECT_BACKOFF_MAX
from .config.settings import ClientConfig, load_client_config
from .errors import DaemonError, GpioLinkError, ProtocolError, TransportError, UsageError
from .metrics import ClientStats
from .protocol import frame, protocol
from .protocol.protocol import Command
from .protocol.structures import SerialOpenPacket, Uint32Packet
from .registry import AlertCallback, CallbackRegistry, Edge, check_pin
from .transport.command import CommandChannel, CommandResult
from .transport.notify import NotificationChannel
from .util import pins_to_mask

logger = logging.getLogger("gpiolink.connection")

LostHook = Callable[[GpioLinkError], None]
Streams = tuple[asyncio.StreamReader, asyncio.StreamWriter]


def _log_retry_attempt(retry_state: tenacity.RetryCallState) -> None:
    logger.info(
        "Connect attempt %d failed, retrying in %.2fs...",
        retry_state.attempt_number,
        retry_state.next_action.sleep if retry_state.next_action else 0,
    )


def _u32(value: int) -> bytes:
    return Uint32Packet(value=value & protocol.UINT32_MASK).encode()


class Connection:
    """Client session with a GPIO daemon."""

    if TYPE_CHECKING:
        fsm_state: str
        begin_open: Callable[[], bool]
        opened: Callable[[], bool]
        begin_close: Callable[[], bool]
        finish_close: Callable[[], bool]

    STATE_NEW = "new"
    STATE_OPENING = "opening"
    STATE_OPEN = "open"
    STATE_CLOSING = "closing"
    STATE_CLOSED = "closed"

    def __init__(
        self,
        config: ClientConfig,
        *,
        on_connection_lost: LostHook | None = None,
    ) -> None:
        self.config = config
        self._on_connection_lost = on_connection_lost
        self._stats = ClientStats()
        self._registry = CallbackRegistry()
        self._watched: set[int] = set()
        self._watch_lock = asyncio.Lock()
        self._command: CommandChannel | None = None
        self._notify: NotificationChannel | None = None
        self._handle: int | None = None
        self._failure: GpioLinkError | None = None
        self._closed_event = asyncio.Event()

        self.machine = Machine(
            model=self,
            states=[
                self.STATE_NEW,
                self.STATE_OPENING,
                self.STATE_OPEN,
                self.STATE_CLOSING,
                self.STATE_CLOSED,
            ],
            initial=self.STATE_NEW,
            model_attribute="fsm_state",
            ignore_invalid_triggers=True,
        )
        self.machine.add_transition("begin_open", self.STATE_NEW, self.STATE_OPENING)
        self.machine.add_transition("opened", self.STATE_OPENING, self.STATE_OPEN)
        self.machine.add_transition(
            "begin_close",
            [self.STATE_NEW, self.STATE_OPENING, self.STATE_OPEN],
            self.STATE_CLOSING,
        )
        self.machine.add_transition("finish_close", self.STATE_CLOSING, self.STATE_CLOSED)

    # --- Lifecycle ---

    @classmethod
    async def open(
        cls,
        host: str | None = None,
        port: int | None = None,
        *,
        config: ClientConfig | None = None,
        on_connection_lost: LostHook | None = None,
    ) -> Connection:
        """Connect both sockets and start the notification listener.

        Raises:
            TransportError: A socket could not be opened.
            DaemonError: The daemon refused a notification handle.
        """
        overrides: dict[str, Any] = {k: v for k, v in (("host", host), ("port", port)) if v is not None}
        if config is None:
            config = load_client_config(overrides)
        elif overrides:
            config = dataclasses.replace(config, **overrides)

        connection = cls(config, on_connection_lost=on_connection_lost)
        try:
            await connection._open()
        except BaseException:
            await connection._abort()
            raise
        return connection

    async def _open(self) -> None:
        self.begin_open()
        logger.info("Connecting to daemon at %s:%d", self.host, self.port)

        reader, writer = await self._connect_socket()
        self._command = CommandChannel(
            reader,
            writer,
            timeout=self.config.command_timeout,
            on_fatal=self._on_fatal,
            stats=self._stats,
        )

        n_reader, n_writer = await self._connect_socket()
        try:
            self._handle = await self._request_handle(n_reader, n_writer)
        except BaseException:
            n_writer.close()
            raise

        try:
            initial = (await self._command.call(Command.BR1)).value
        except BaseException:
            n_writer.close()
            raise

        self._notify = NotificationChannel(
            n_reader,
            n_writer,
            registry=self._registry,
            watch_mask=lambda: self.watch_mask,
            initial_level=initial,
            on_lost=self._on_listener_lost,
            stats=self._stats,
        )
        await self._command.call(Command.NB, self._handle, 0)
        self._notify.start()
        self.opened()
        logger.info("Connected to daemon at %s:%d (notify handle %d)", self.host, self.port, self._handle)

    async def _connect_socket(self) -> Streams:
        retryer = tenacity.AsyncRetrying(
            stop=tenacity.stop_after_attempt(self.config.connect_attempts),
            wait=tenacity.wait_exponential(
                multiplier=self.config.connect_backoff,
                max=DEFAULT_CONNECT_BACKOFF_MAX,
            ),
            retry=tenacity.retry_if_exception_type((OSError, asyncio.TimeoutError)),
            before_sleep=_log_retry_attempt,
            reraise=True,
        )
        streams: Streams | None = None
        try:
            async for attempt in retryer:
                with attempt:
                    streams = await asyncio.wait_for(
                        asyncio.open_connection(self.host, self.port),
                        self.config.connect_timeout,
                    )
        except (OSError, asyncio.TimeoutError) as e:
            raise TransportError(f"Could not connect to {self.host}:{self.port}: {e}") from e
        assert streams is not None
        return streams

    async def _request_handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> int:
        """Ask for a notification handle on the notification socket itself."""
        request = frame.encode(Command.NOIB)
        try:
            writer.write(request)
            await writer.drain()
            raw = await asyncio.wait_for(
                frame.read_exactly(reader, protocol.RESPONSE_HEADER_SIZE),
                self.config.command_timeout,
            )
        except asyncio.TimeoutError as e:
            raise TransportError("Timed out waiting for a notification handle") from e
        except TransportError:
            raise
        except (ConnectionError, OSError) as e:
            raise TransportError(f"Notification socket failed: {e}") from e

        header = frame.decode_header(raw)
        if header.opcode != Command.NOIB:
            raise ProtocolError(f"Reply opcode {header.opcode} does not match request {Command.NOIB}")
        if header.failed:
            raise DaemonError(header.status, Command.NOIB)
        return header.status

    async def close(self) -> None:
        """Release the notification handle and close both sockets.

        Safe to call any number of times; later calls wait for the first.
        """
        if self.fsm_state in (self.STATE_CLOSING, self.STATE_CLOSED):
            await self.wait_closed()
            return

        self.begin_close()
        logger.info("Closing connection to %s:%d", self.host, self.port)
        try:
            await self._release_handle()
        finally:
            self._teardown()
            await self._wait_sockets()
            self.finish_close()
            self._closed_event.set()

    async def _release_handle(self) -> None:
        command = self._command
        if command is None or self._handle is None or command.closed:
            return
        if self._notify is not None:
            self._notify.expect_eof()
        if command.busy:
            logger.debug("Command in flight; not sending NC for handle %d", self._handle)
            return
        try:
            await asyncio.wait_for(command.call(Command.NC, self._handle), self.config.close_timeout)
        except (GpioLinkError, asyncio.TimeoutError) as e:
            logger.warning("Could not release notification handle %d: %s", self._handle, e)

    def _teardown(self) -> None:
        if self._notify is not None:
            self._notify.stop()
        if self._command is not None:
            self._command.close()
        self._registry.clear()
        self._watched.clear()

    async def _wait_sockets(self) -> None:
        if self._notify is not None:
            await self._notify.wait_stopped()
        if self._command is not None:
            await self._command.wait_closed()

    async def _abort(self) -> None:
        if self.fsm_state == self.STATE_CLOSED:
            return
        self.begin_close()
        self._teardown()
        await self._wait_sockets()
        self.finish_close()
        self._closed_event.set()

    def _fail(self, exc: GpioLinkError) -> None:
        """Tear the connection down after a fatal error on either socket."""
        if self.fsm_state != self.STATE_OPEN:
            return
        self._failure = exc
        self.begin_close()
        logger.error("Connection to %s:%d lost: %s", self.host, self.port, exc)
        self._teardown()
        self.finish_close()
        self._closed_event.set()
        if self._on_connection_lost is not None:
            try:
                self._on_connection_lost(exc)
            except Exception:
                logger.exception("on_connection_lost hook raised")

    def _on_fatal(self, exc: GpioLinkError) -> None:
        self._fail(exc)

    def _on_listener_lost(self, exc: GpioLinkError) -> None:
        self._fail(exc)

    async def wait_closed(self) -> None:
        await self._closed_event.wait()

    async def __aenter__(self) -> Connection:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    # --- State ---

    @property
    def host(self) -> str:
        return self.config.host

    @property
    def port(self) -> int:
        return self.config.port

    @property
    def closed(self) -> bool:
        return self.fsm_state in (self.STATE_CLOSING, self.STATE_CLOSED)

    @property
    def handle(self) -> int | None:
        return self._handle

    @property
    def stats(self) -> ClientStats:
        return self._stats

    @property
    def failure(self) -> GpioLinkError | None:
        """Fatal error that closed the connection, if any."""
        return self._failure

    @property
    def listener_error(self) -> GpioLinkError | None:
        """Exception that stopped the notification listener, or ``None``."""
        return self._notify.error if self._notify is not None else None

    @property
    def registry(self) -> CallbackRegistry:
        return self._registry

    @property
    def watched(self) -> frozenset[int]:
        return frozenset(self._watched)

    @property
    def watch_mask(self) -> int:
        return pins_to_mask(self._watched)

    def _ensure_open(self) -> CommandChannel:
        if self.fsm_state != self.STATE_OPEN or self._command is None:
            raise UsageError(f"Connection is {self.fsm_state}")
        return self._command

    # --- Commands ---

    async def command(
        self,
        opcode: int,
        p1: int = 0,
        p2: int = 0,
        p3: int = 0,
        extension: bytes = b"",
    ) -> CommandResult:
        """Issue any daemon command and return its status and extension."""
        return await self._ensure_open().call(opcode, p1, p2, p3, extension)

    async def _value(self, opcode: int, p1: int = 0, p2: int = 0, extension: bytes = b"") -> int:
        return (await self.command(opcode, p1, p2, 0, extension)).value

    async def _payload(self, opcode: int, p1: int = 0, p2: int = 0, extension: bytes = b"") -> bytes:
        return (await self.command(opcode, p1, p2, 0, extension)).extension

    # --- Watch set and alerts ---

    async def _apply_watch(self, pins: set[int]) -> None:
        """Send the mask for *pins*; adopt it locally only once accepted."""
        command = self._ensure_open()
        assert self._handle is not None
        mask = pins_to_mask(pins)
        await command.call(Command.NB, self._handle, mask)
        self._watched = set(pins)
        logger.debug("Watch mask now 0x%08X", mask)

    async def add_watch(self, pin: int) -> None:
        check_pin(pin)
        self._ensure_open()
        async with self._watch_lock:
            if pin not in self._watched:
                await self._apply_watch(self._watched | {pin})

    async def remove_watch(self, pin: int) -> None:
        check_pin(pin)
        self._ensure_open()
        async with self._watch_lock:
            if pin in self._watched:
                await self._apply_watch(self._watched - {pin})

    async def register_alert(
        self,
        pin: int,
        callback: AlertCallback,
        edge: Edge = Edge.EITHER,
    ) -> None:
        """Call *callback(pin, level, tick)* when *pin* changes.

        The pin is added to the watch set if it was not already watched;
        :meth:`unregister_alert` removes it again in that case.
        """
        check_pin(pin)
        if not callable(callback):
            raise UsageError("callback must be callable")
        self._ensure_open()
        async with self._watch_lock:
            owns_watch = pin not in self._watched
            if owns_watch:
                await self._apply_watch(self._watched | {pin})
            self._registry.register(pin, callback, edge, owns_watch=owns_watch)

    async def unregister_alert(self, pin: int) -> None:
        check_pin(pin)
        self._ensure_open()
        async with self._watch_lock:
            entry = self._registry.unregister(pin)
            if entry.owns_watch and pin in self._watched:
                await self._apply_watch(self._watched - {pin})

    # --- GPIO ---

    async def set_mode(self, gpio: int, mode: int) -> None:
        await self._value(Command.MODES, gpio, mode)

    async def get_mode(self, gpio: int) -> int:
        return await self._value(Command.MODEG, gpio)

    async def set_pull_up_down(self, gpio: int, pud: int) -> None:
        await self._value(Command.PUD, gpio, pud)

    async def read(self, gpio: int) -> int:
        return await self._value(Command.READ, gpio)

    async def write(self, gpio: int, level: int) -> None:
        await self._value(Command.WRITE, gpio, level)

    async def read_bank_1(self) -> int:
        return await self._value(Command.BR1)

    async def read_bank_2(self) -> int:
        return await self._value(Command.BR2)

    async def set_bank_1(self, bits: int) -> None:
        await self._value(Command.BS1, bits)

    async def clear_bank_1(self, bits: int) -> None:
        await self._value(Command.BC1, bits)

    async def set_pwm_dutycycle(self, gpio: int, dutycycle: int) -> None:
        await self._value(Command.PWM, gpio, dutycycle)

    async def get_pwm_dutycycle(self, gpio: int) -> int:
        return await self._value(Command.GDC, gpio)

    async def set_pwm_range(self, gpio: int, range_: int) -> int:
        """Set the dutycycle range; returns the real range in use."""
        return await self._value(Command.PRS, gpio, range_)

    async def get_pwm_range(self, gpio: int) -> int:
        return await self._value(Command.PRG, gpio)

    async def set_pwm_frequency(self, gpio: int, frequency: int) -> int:
        """Set the PWM frequency; returns the frequency actually selected."""
        return await self._value(Command.PFS, gpio, frequency)

    async def get_pwm_frequency(self, gpio: int) -> int:
        return await self._value(Command.PFG, gpio)

    async def set_servo_pulsewidth(self, gpio: int, pulsewidth: int) -> None:
        await self._value(Command.SERVO, gpio, pulsewidth)

    async def get_servo_pulsewidth(self, gpio: int) -> int:
        return await self._value(Command.GPW, gpio)

    async def gpio_trigger(self, gpio: int, pulse_len: int = 10, level: int = 1) -> None:
        await self._value(Command.TRIG, gpio, pulse_len, _u32(level))

    async def set_watchdog(self, gpio: int, timeout_ms: int) -> None:
        """Report ``Level.TIMEOUT`` for *gpio* after *timeout_ms* without change (0 disables)."""
        await self._value(Command.WDOG, gpio, timeout_ms)

    async def set_glitch_filter(self, gpio: int, steady: int) -> None:
        await self._value(Command.FG, gpio, steady)

    async def set_noise_filter(self, gpio: int, steady: int, active: int) -> None:
        await self._value(Command.FN, gpio, steady, _u32(active))

    async def get_current_tick(self) -> int:
        return await self._value(Command.TICK)

    async def get_hardware_revision(self) -> int:
        return await self._value(Command.HWVER)

    async def get_daemon_version(self) -> int:
        return await self._value(Command.PIGPV)

    # --- I2C ---

    async def i2c_open(self, bus: int, address: int, flags: int = 0) -> int:
        return await self._value(Command.I2CO, bus, address, _u32(flags))

    async def i2c_close(self, handle: int) -> None:
        await self._value(Command.I2CC, handle)

    async def i2c_write_quick(self, handle: int, bit: int) -> None:
        await self._value(Command.I2CWQ, handle, bit)

    async def i2c_read_byte(self, handle: int) -> int:
        return await self._value(Command.I2CRS, handle)

    async def i2c_write_byte(self, handle: int, value: int) -> None:
        await self._value(Command.I2CWS, handle, value)

    async def i2c_read_byte_data(self, handle: int, register: int) -> int:
        return await self._value(Command.I2CRB, handle, register)

    async def i2c_write_byte_data(self, handle: int, register: int, value: int) -> None:
        await self._value(Command.I2CWB, handle, register, _u32(value))

    async def i2c_read_word_data(self, handle: int, register: int) -> int:
        return await self._value(Command.I2CRW, handle, register)

    async def i2c_write_word_data(self, handle: int, register: int, value: int) -> None:
        await self._value(Command.I2CWW, handle, register, _u32(value))

    async def i2c_read_device(self, handle: int, count: int) -> bytes:
        return await self._payload(Command.I2CRD, handle, count)

    async def i2c_write_device(self, handle: int, data: bytes) -> None:
        await self._value(Command.I2CWD, handle, 0, bytes(data))

    async def i2c_read_i2c_block_data(self, handle: int, register: int, count: int) -> bytes:
        return await self._payload(Command.I2CRI, handle, register, _u32(count))

    async def i2c_write_i2c_block_data(self, handle: int, register: int, data: bytes) -> None:
        await self._value(Command.I2CWI, handle, register, bytes(data))

    # --- SPI ---

    async def spi_open(self, channel: int, baud: int, flags: int = 0) -> int:
        return await self._value(Command.SPIO, channel, baud, _u32(flags))

    async def spi_close(self, handle: int) -> None:
        await self._value(Command.SPIC, handle)

    async def spi_read(self, handle: int, count: int) -> bytes:
        return await self._payload(Command.SPIR, handle, count)

    async def spi_write(self, handle: int, data: bytes) -> int:
        return await self._value(Command.SPIW, handle, 0, bytes(data))

    async def spi_xfer(self, handle: int, data: bytes) -> bytes:
        return await self._payload(Command.SPIX, handle, 0, bytes(data))

    # --- Serial ---

    async def serial_open(self, tty: str, baud: int, flags: int = 0) -> int:
        payload = SerialOpenPacket(tty=tty.encode("ascii")).encode()
        return await self._value(Command.SERO, baud, flags, payload)

    async def serial_close(self, handle: int) -> None:
        await self._value(Command.SERC, handle)

    async def serial_read_byte(self, handle: int) -> int:
        return await self._value(Command.SERRB, handle)

    async def serial_write_byte(self, handle: int, value: int) -> None:
        await self._value(Command.SERWB, handle, value)

    async def serial_read(self, handle: int, count: int) -> bytes:
        return await self._payload(Command.SERR, handle, count)

    async def serial_write(self, handle: int, data: bytes) -> None:
        await self._value(Command.SERW, handle, 0, bytes(data))

    async def serial_data_available(self, handle: int) -> int:
        return await self._value(Command.SERDA, handle)


@asynccontextmanager
async def connect(
    host: str | None = None,
    port: int | None = None,
    *,
    config: ClientConfig | None = None,
    on_connection_lost: LostHook | None = None,
) -> AsyncIterator[Connection]:
    """Open a :class:`Connection` for the duration of an ``async with`` block."""
    connection = await Connection.open(host, port, config=config, on_connection_lost=on_connection_lost)
    try:
        yield connection
    finally:
        await connection.close()


__all__ = ["Connection", "connect"]
