"""Notification listener for the daemon's level-change stream.

The daemon reports the *full* level of bank 1 in every record, not a delta.
The listener keeps the previous bitmap and XORs it with each new one to find
the pins that actually changed, then dispatches those that are both watched
and registered.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from transitions import Machine

from ..errors import GpioLinkError, ProtocolError, TransportError
from ..metrics import ClientStats
from ..protocol import frame, protocol
from ..protocol.structures import NotificationRecord
from ..registry import AlertEntry, CallbackRegistry, Level
from ..util import bits_to_pins

logger = logging.getLogger("gpiolink.transport.notify")

LostCallback = Callable[[GpioLinkError], None]


class NotificationChannel:
    """Listener task reading fixed-size records from the notification socket."""

    if TYPE_CHECKING:
        fsm_state: str
        start_listening: Callable[[], bool]
        stop_listening: Callable[[], bool]

    STATE_IDLE = "idle"
    STATE_LISTENING = "listening"
    STATE_STOPPED = "stopped"

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        registry: CallbackRegistry,
        watch_mask: Callable[[], int],
        initial_level: int = 0,
        on_lost: LostCallback | None = None,
        stats: ClientStats | None = None,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._registry = registry
        self._watch_mask = watch_mask
        self._previous = initial_level & protocol.UINT32_MASK
        self._last_sequence: int | None = None
        self._on_lost = on_lost
        self._stats = stats if stats is not None else ClientStats()
        self._task: asyncio.Task[None] | None = None
        self._error: GpioLinkError | None = None
        self._closed = False
        self._expect_eof = False

        self.machine = Machine(
            model=self,
            states=[self.STATE_IDLE, self.STATE_LISTENING, self.STATE_STOPPED],
            initial=self.STATE_IDLE,
            model_attribute="fsm_state",
            auto_transitions=False,
            ignore_invalid_triggers=True,
        )
        self.machine.add_transition("start_listening", self.STATE_IDLE, self.STATE_LISTENING)
        self.machine.add_transition("stop_listening", [self.STATE_IDLE, self.STATE_LISTENING], self.STATE_STOPPED)

    @property
    def error(self) -> GpioLinkError | None:
        """Exception that stopped the listener, if it died rather than being stopped."""
        return self._error

    @property
    def previous_level(self) -> int:
        return self._previous

    @property
    def task(self) -> asyncio.Task[None] | None:
        return self._task

    def start(self) -> asyncio.Task[None]:
        if self._task is not None:
            return self._task
        self.start_listening()
        self._task = asyncio.create_task(self._run(), name="gpiolink-notify")
        return self._task

    async def _run(self) -> None:
        try:
            while True:
                raw = await frame.read_exactly(self._reader, protocol.NOTIFICATION_SIZE)
                self._stats.record_notification(len(raw))
                await self.process_record(frame.decode_record(raw))
        except asyncio.CancelledError:
            logger.debug("Notification listener cancelled.")
            raise
        except (TransportError, ProtocolError) as exc:
            if self._closed or self._expect_eof:
                logger.debug("Notification listener stopped after close: %s", exc)
                return
            self._error = exc
            self.stop_listening()
            logger.error("Notification listener lost its connection: %s", exc)
            self._close_socket()
            if self._on_lost is not None:
                self._on_lost(exc)
        finally:
            self.stop_listening()

    async def process_record(self, record: NotificationRecord) -> None:
        """Apply one decoded record: diff levels or handle flag reports."""
        self._check_sequence(record.sequence)

        if record.is_level_report:
            self._stats.level_reports += 1
            level = record.level & protocol.UINT32_MASK
            changed = (self._previous ^ level) & self._watch_mask()
            self._previous = level
            for entry in self._registry.snapshot(bits_to_pins(changed)):
                new_level = Level.HIGH if level & (1 << entry.pin) else Level.LOW
                await self._dispatch(entry, new_level, record.tick)
            return

        if record.is_watchdog:
            self._stats.watchdog_reports += 1
            pin = record.flag_gpio
            if self._watch_mask() & (1 << pin):
                for entry in self._registry.snapshot((pin,)):
                    await self._dispatch(entry, Level.TIMEOUT, record.tick)
            return

        if record.is_keepalive:
            self._stats.keepalives += 1
            return

        if record.is_event:
            self._stats.event_reports += 1
            logger.debug("Event %d reported at tick %d", record.flag_gpio, record.tick)
            return

        logger.debug("Ignoring notification with unknown flags 0x%04X", record.flags)

    def _check_sequence(self, sequence: int) -> None:
        last = self._last_sequence
        self._last_sequence = sequence
        if last is None or sequence == last:
            return
        missing = (sequence - last - 1) & protocol.UINT16_MASK
        if missing:
            self._stats.record_gap(missing)
            logger.debug("Notification sequence gap: %d -> %d (%d missing)", last, sequence, missing)

    async def _dispatch(self, entry: AlertEntry, level: int, tick: int) -> None:
        try:
            dispatched = CallbackRegistry.invoke(entry, level, tick)
            if not dispatched.invoked:
                return
            result: Any = dispatched.result
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            self._stats.callback_errors += 1
            logger.exception("Alert callback for pin %d raised", entry.pin)
            return
        self._stats.callbacks_dispatched += 1

    def _close_socket(self) -> None:
        if not self._writer.is_closing():
            self._writer.close()

    def expect_eof(self) -> None:
        """Treat end of stream as an orderly shutdown from now on."""
        self._expect_eof = True

    def stop(self) -> None:
        """Stop listening and close the notification socket; idempotent."""
        if self._closed:
            return
        self._closed = True
        self.stop_listening()
        self._close_socket()
        if self._task is not None and not self._task.done() and self._task is not asyncio.current_task():
            self._task.cancel()

    async def wait_stopped(self) -> None:
        task = self._task
        if task is not None and task is not asyncio.current_task():
            await asyncio.gather(task, return_exceptions=True)
        try:
            await self._writer.wait_closed()
        except (ConnectionError, OSError) as e:
            logger.debug("Notification socket closed with error: %s", e)
