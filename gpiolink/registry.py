"""Per-pin alert callbacks consulted by the notification listener."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Iterator
from enum import IntEnum

import msgspec

from .errors import UsageError
from .protocol.protocol import MAX_BANK1_GPIO

logger = logging.getLogger("gpiolink.registry")

AlertCallback = Callable[[int, int, int], Awaitable[None] | None]


class Level(IntEnum):
    LOW = 0
    HIGH = 1
    TIMEOUT = 2  # Watchdog expired without a level change


class Edge(IntEnum):
    RISING = 0
    FALLING = 1
    EITHER = 2

    def accepts(self, level: int) -> bool:
        if level == Level.TIMEOUT or self is Edge.EITHER:
            return True
        if self is Edge.RISING:
            return level == Level.HIGH
        return level == Level.LOW


class AlertEntry(msgspec.Struct):
    """Registry record for one pin."""

    pin: int
    callback: AlertCallback
    edge: Edge = Edge.EITHER
    last_level: int | None = None
    owns_watch: bool = False


class Dispatched(msgspec.Struct, frozen=True):
    """Whether a callback ran, and what it returned (an awaitable for coroutines)."""

    invoked: bool
    result: Awaitable[None] | None = None


def check_pin(pin: int) -> int:
    if not isinstance(pin, int) or isinstance(pin, bool) or not 0 <= pin <= MAX_BANK1_GPIO:
        raise UsageError(f"pin must be 0-{MAX_BANK1_GPIO}, got {pin!r}")
    return pin


class CallbackRegistry:
    """Map pin -> single active callback.

    Mutations replace whole entries in the backing dict, so a dispatch that
    already looked up an entry keeps running against that entry even if the
    pin is re-registered or removed meanwhile.
    """

    def __init__(self) -> None:
        self._entries: dict[int, AlertEntry] = {}

    def __contains__(self, pin: object) -> bool:
        return pin in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[AlertEntry]:
        return iter(list(self._entries.values()))

    def pins(self) -> frozenset[int]:
        return frozenset(self._entries)

    def get(self, pin: int) -> AlertEntry | None:
        return self._entries.get(pin)

    def register(
        self,
        pin: int,
        callback: AlertCallback,
        edge: Edge = Edge.EITHER,
        *,
        owns_watch: bool = False,
    ) -> AlertEntry | None:
        """Install *callback* for *pin*, returning the entry it replaced."""
        check_pin(pin)
        if not callable(callback):
            raise UsageError("callback must be callable")
        previous = self._entries.get(pin)
        if previous is not None:
            # A replaced entry keeps its claim on the watch set.
            owns_watch = owns_watch or previous.owns_watch
        self._entries[pin] = AlertEntry(pin=pin, callback=callback, edge=Edge(edge), owns_watch=owns_watch)
        logger.debug("Registered alert callback for pin %d (edge=%s)", pin, Edge(edge).name)
        return previous

    def unregister(self, pin: int) -> AlertEntry:
        entry = self._entries.pop(pin, None)
        if entry is None:
            raise UsageError(f"no alert callback registered for pin {pin}")
        logger.debug("Unregistered alert callback for pin %d", pin)
        return entry

    def clear(self) -> None:
        self._entries.clear()

    def snapshot(self, pins: Iterable[int]) -> list[AlertEntry]:
        """Entries currently registered for *pins*, in the order given."""
        return [entry for entry in map(self._entries.get, pins) if entry is not None]

    def dispatch(self, pin: int, level: int, tick: int) -> Dispatched:
        """Invoke the callback registered for *pin* if its edge filter accepts *level*."""
        entry = self._entries.get(pin)
        if entry is None:
            return Dispatched(invoked=False)
        return self.invoke(entry, level, tick)

    @staticmethod
    def invoke(entry: AlertEntry, level: int, tick: int) -> Dispatched:
        if level != Level.TIMEOUT:
            entry.last_level = level
        if not entry.edge.accepts(level):
            return Dispatched(invoked=False)
        return Dispatched(invoked=True, result=entry.callback(entry.pin, level, tick))


__all__ = [
    "AlertCallback",
    "AlertEntry",
    "CallbackRegistry",
    "Dispatched",
    "Edge",
    "Level",
    "check_pin",
]
