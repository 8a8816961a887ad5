"""Daemon status codes and their symbolic kinds.

The table below is data only. Each known negative status corresponds to a
single :class:`ErrorKind`; anything else negative maps to
``ErrorKind.UNKNOWN`` and keeps its raw value on the raised error.
"""

from __future__ import annotations

from enum import IntEnum
from types import MappingProxyType
from typing import Final, Mapping


class ErrorKind(IntEnum):
    UNKNOWN = 0
    INIT_FAILED = -1
    BAD_USER_GPIO = -2
    BAD_GPIO = -3
    BAD_MODE = -4
    BAD_LEVEL = -5
    BAD_PUD = -6
    BAD_PULSEWIDTH = -7
    BAD_DUTYCYCLE = -8
    BAD_WDOG_TIMEOUT = -15
    BAD_DUTYRANGE = -21
    NO_HANDLE = -24
    BAD_HANDLE = -25
    BAD_IF_FLAGS = -26
    BAD_CHANNEL = -27
    NOT_INITIALISED = -31
    TOO_MANY_PULSES = -36
    NOT_PERMITTED = -41
    SOME_PERMITTED = -42
    BAD_PULSELEN = -46
    GPIO_IN_USE = -50
    BAD_PARAM_NUM = -52
    NO_MEMORY = -58
    SOCK_READ_FAILED = -59
    SOCK_WRIT_FAILED = -60
    TOO_MANY_PARAM = -61
    I2C_OPEN_FAILED = -71
    SER_OPEN_FAILED = -72
    SPI_OPEN_FAILED = -73
    BAD_I2C_BUS = -74
    BAD_I2C_ADDR = -75
    BAD_SPI_CHANNEL = -76
    BAD_FLAGS = -77
    BAD_SPI_SPEED = -78
    BAD_SER_DEVICE = -79
    BAD_SER_SPEED = -80
    BAD_PARAM = -81
    I2C_WRITE_FAILED = -82
    I2C_READ_FAILED = -83
    BAD_SPI_COUNT = -84
    SER_WRITE_FAILED = -85
    SER_READ_FAILED = -86
    SER_READ_NO_DATA = -87
    UNKNOWN_COMMAND = -88
    SPI_XFER_FAILED = -89
    NOT_PWM_GPIO = -92
    NOT_SERVO_GPIO = -93
    NOT_HCLK_GPIO = -94
    NOT_HPWM_GPIO = -95
    BAD_HPWM_FREQ = -96
    BAD_HPWM_DUTY = -97
    BAD_HCLK_FREQ = -98
    BAD_HCLK_PASS = -99
    HPWM_ILLEGAL = -100
    MSG_TOOBIG = -103
    BAD_SMBUS_CMD = -107
    BAD_I2C_WLEN = -109
    BAD_I2C_RLEN = -110
    DEPRECATED = -120
    BAD_EDGE = -122
    BAD_FILTER = -125
    NOT_ON_BCM2711 = -146
    ONLY_ON_BCM2711 = -147


ERROR_DESCRIPTIONS: Final[Mapping[int, str]] = MappingProxyType(
    {
        ErrorKind.INIT_FAILED: "daemon initialisation failed",
        ErrorKind.BAD_USER_GPIO: "gpio not 0-31",
        ErrorKind.BAD_GPIO: "bad gpio number",
        ErrorKind.BAD_MODE: "bad mode",
        ErrorKind.BAD_LEVEL: "level not 0-1",
        ErrorKind.BAD_PUD: "bad pull-up/down",
        ErrorKind.BAD_PULSEWIDTH: "pulsewidth not 0 or 500-2500",
        ErrorKind.BAD_DUTYCYCLE: "dutycycle outside set range",
        ErrorKind.BAD_WDOG_TIMEOUT: "watchdog timeout not 0-60000",
        ErrorKind.BAD_DUTYRANGE: "dutycycle range not 25-40000",
        ErrorKind.NO_HANDLE: "no handle available",
        ErrorKind.BAD_HANDLE: "unknown handle",
        ErrorKind.BAD_IF_FLAGS: "bad interface flags",
        ErrorKind.BAD_CHANNEL: "bad channel",
        ErrorKind.NOT_INITIALISED: "daemon not initialised",
        ErrorKind.TOO_MANY_PULSES: "too many pulses",
        ErrorKind.NOT_PERMITTED: "not permitted",
        ErrorKind.SOME_PERMITTED: "some gpios not permitted",
        ErrorKind.BAD_PULSELEN: "trigger pulse length not 1-100",
        ErrorKind.GPIO_IN_USE: "gpio already in use",
        ErrorKind.BAD_PARAM_NUM: "bad parameter number",
        ErrorKind.NO_MEMORY: "can't allocate temporary memory",
        ErrorKind.SOCK_READ_FAILED: "daemon socket read failed",
        ErrorKind.SOCK_WRIT_FAILED: "daemon socket write failed",
        ErrorKind.TOO_MANY_PARAM: "too many parameters",
        ErrorKind.I2C_OPEN_FAILED: "can't open I2C device",
        ErrorKind.SER_OPEN_FAILED: "can't open serial device",
        ErrorKind.SPI_OPEN_FAILED: "can't open SPI device",
        ErrorKind.BAD_I2C_BUS: "bad I2C bus",
        ErrorKind.BAD_I2C_ADDR: "bad I2C address",
        ErrorKind.BAD_SPI_CHANNEL: "bad SPI channel",
        ErrorKind.BAD_FLAGS: "bad i2c/spi/ser open flags",
        ErrorKind.BAD_SPI_SPEED: "bad SPI speed",
        ErrorKind.BAD_SER_DEVICE: "bad serial device name",
        ErrorKind.BAD_SER_SPEED: "bad serial baud rate",
        ErrorKind.BAD_PARAM: "bad i2c/spi/ser parameter",
        ErrorKind.I2C_WRITE_FAILED: "I2C write failed",
        ErrorKind.I2C_READ_FAILED: "I2C read failed",
        ErrorKind.BAD_SPI_COUNT: "bad SPI count",
        ErrorKind.SER_WRITE_FAILED: "serial write failed",
        ErrorKind.SER_READ_FAILED: "serial read failed",
        ErrorKind.SER_READ_NO_DATA: "serial read no data available",
        ErrorKind.UNKNOWN_COMMAND: "unknown command",
        ErrorKind.SPI_XFER_FAILED: "SPI transfer failed",
        ErrorKind.NOT_PWM_GPIO: "gpio has no hardware PWM",
        ErrorKind.NOT_SERVO_GPIO: "gpio is not in use for servo pulses",
        ErrorKind.NOT_HCLK_GPIO: "gpio has no hardware clock",
        ErrorKind.NOT_HPWM_GPIO: "gpio has no hardware PWM",
        ErrorKind.BAD_HPWM_FREQ: "invalid hardware PWM frequency",
        ErrorKind.BAD_HPWM_DUTY: "hardware PWM dutycycle not 0-1M",
        ErrorKind.BAD_HCLK_FREQ: "invalid hardware clock frequency",
        ErrorKind.BAD_HCLK_PASS: "need password to use hardware clock 1",
        ErrorKind.HPWM_ILLEGAL: "illegal, PWM in use for main clock",
        ErrorKind.MSG_TOOBIG: "message too big",
        ErrorKind.BAD_SMBUS_CMD: "SMBus command not supported by driver",
        ErrorKind.BAD_I2C_WLEN: "bad I2C write length",
        ErrorKind.BAD_I2C_RLEN: "bad I2C read length",
        ErrorKind.DEPRECATED: "deprecated function removed",
        ErrorKind.BAD_EDGE: "bad edge specified",
        ErrorKind.BAD_FILTER: "bad filter parameter",
        ErrorKind.NOT_ON_BCM2711: "not available on BCM2711",
        ErrorKind.ONLY_ON_BCM2711: "only available on BCM2711",
    }
)

_KNOWN_CODES: Final[frozenset[int]] = frozenset(kind.value for kind in ErrorKind if kind is not ErrorKind.UNKNOWN)


def map_status(status: int) -> ErrorKind | None:
    """Return the error kind for *status*, or ``None`` when it is not an error."""
    if status >= 0:
        return None
    if status in _KNOWN_CODES:
        return ErrorKind(status)
    return ErrorKind.UNKNOWN


def describe(status: int) -> str:
    kind = map_status(status)
    if kind is None:
        return "ok"
    if kind is ErrorKind.UNKNOWN:
        return f"daemon error with code {status}"
    return ERROR_DESCRIPTIONS[kind]
