"""General-purpose utilities for gpiolink."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator


__all__ = [
    "bits_to_pins",
    "log_hexdump",
    "pins_to_mask",
]


def log_hexdump(logger_instance: logging.Logger, level: int, label: str, data: bytes) -> None:
    """Log binary data in hexadecimal format.

    Format: [HEXDUMP] %s: %s
    """
    if not logger_instance.isEnabledFor(level):
        return

    hex_str = data.hex(" ").upper()
    logger_instance.log(level, "[HEXDUMP] %s: %s", label, hex_str)


def pins_to_mask(pins: Iterable[int]) -> int:
    mask = 0
    for pin in pins:
        mask |= 1 << pin
    return mask


def bits_to_pins(mask: int) -> Iterator[int]:
    """Yield the bit positions set in *mask*, lowest first."""
    pin = 0
    while mask:
        if mask & 1:
            yield pin
        mask >>= 1
        pin += 1
