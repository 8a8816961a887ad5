"""Wire constants and binary layouts for the daemon socket interface."""
from __future__ import annotations
from construct import Int16ul, Int32sl, Int32ul, Struct as BinStruct  # type: ignore
from enum import IntEnum, IntFlag
from typing import Final

DEFAULT_HOST: Final[str] = "localhost"
DEFAULT_PORT: Final[int] = 8888
UINT16_MASK: Final[int] = 0xFFFF
UINT32_MASK: Final[int] = 0xFFFFFFFF
MAX_BANK1_GPIO: Final[int] = 31
MAX_EXTENSION_SIZE: Final[int] = 65536
NTFY_GPIO_MASK: Final[int] = 0x1F


class Command(IntEnum):
    MODES = 0  # Set GPIO mode
    MODEG = 1  # Get GPIO mode
    PUD = 2  # Set pull-up/down
    READ = 3  # Read level
    WRITE = 4  # Write level
    PWM = 5  # Set PWM dutycycle
    PRS = 6  # Set PWM range
    PFS = 7  # Set PWM frequency
    SERVO = 8  # Set servo pulsewidth
    WDOG = 9  # Set watchdog timeout
    BR1 = 10  # Read bank 1 levels
    BR2 = 11  # Read bank 2 levels
    BC1 = 12  # Clear bank 1 levels
    BC2 = 13  # Clear bank 2 levels
    BS1 = 14  # Set bank 1 levels
    BS2 = 15  # Set bank 2 levels
    TICK = 16  # Current tick
    HWVER = 17  # Hardware revision
    NO = 18  # Open notification handle (pipe)
    NB = 19  # Begin notifications with mask
    NP = 20  # Pause notifications
    NC = 21  # Close notification handle
    PRG = 22  # Get PWM range
    PFG = 23  # Get PWM frequency
    PRRG = 24  # Get real PWM range
    HELP = 25
    PIGPV = 26  # Daemon version
    TRIG = 37  # Send trigger pulse
    GDC = 83  # Get PWM dutycycle
    GPW = 84  # Get servo pulsewidth
    HC = 85  # Hardware clock
    HP = 86  # Hardware PWM
    I2CO = 54  # I2C open
    I2CC = 55  # I2C close
    I2CRD = 56  # I2C read device
    I2CWD = 57  # I2C write device
    I2CWQ = 58  # I2C write quick
    I2CRS = 59  # I2C read byte
    I2CWS = 60  # I2C write byte
    I2CRB = 61  # I2C read byte data
    I2CWB = 62  # I2C write byte data
    I2CRW = 63  # I2C read word data
    I2CWW = 64  # I2C write word data
    I2CRK = 65  # I2C read block data
    I2CWK = 66  # I2C write block data
    I2CRI = 67  # I2C read I2C block data
    I2CWI = 68  # I2C write I2C block data
    I2CPC = 69  # I2C process call
    I2CPK = 70  # I2C block process call
    SPIO = 71  # SPI open
    SPIC = 72  # SPI close
    SPIR = 73  # SPI read
    SPIW = 74  # SPI write
    SPIX = 75  # SPI transfer
    SERO = 76  # Serial open
    SERC = 77  # Serial close
    SERRB = 78  # Serial read byte
    SERWB = 79  # Serial write byte
    SERR = 80  # Serial read
    SERW = 81  # Serial write
    SERDA = 82  # Serial data available
    FG = 97  # Glitch filter
    FN = 98  # Noise filter
    NOIB = 99  # Open notification handle in-band (socket)


# Opcodes whose non-negative status is the byte count of a trailing payload.
EXTENSION_REPLY_COMMANDS: Final[frozenset[int]] = frozenset(
    {
        Command.I2CRD,
        Command.I2CRK,
        Command.I2CRI,
        Command.I2CPK,
        Command.SPIR,
        Command.SPIX,
        Command.SERR,
    }
)

# Opcodes whose status word is an unsigned 32-bit value and never an error code.
UNSIGNED_REPLY_COMMANDS: Final[frozenset[int]] = frozenset(
    {
        Command.BR1,
        Command.BR2,
        Command.TICK,
        Command.HWVER,
    }
)


class GpioMode(IntEnum):
    INPUT = 0
    OUTPUT = 1
    ALT0 = 4
    ALT1 = 5
    ALT2 = 6
    ALT3 = 7
    ALT4 = 3
    ALT5 = 2


class Pull(IntEnum):
    OFF = 0
    DOWN = 1
    UP = 2


class NotifyFlags(IntFlag):
    NONE = 0
    WDOG = 1 << 5  # Watchdog timeout, GPIO in low 5 bits
    ALIVE = 1 << 6  # Keep-alive, no level change
    EVENT = 1 << 7  # Event report, event id in low 5 bits


COMMAND_HEADER_FORMAT: Final[str] = "<IIII"
COMMAND_HEADER_STRUCT: Final = BinStruct(
    "opcode" / Int32ul,
    "p1" / Int32ul,
    "p2" / Int32ul,
    "p3" / Int32ul,
)
RESPONSE_HEADER_FORMAT: Final[str] = "<IIIi"
RESPONSE_HEADER_STRUCT: Final = BinStruct(
    "opcode" / Int32ul,
    "p1" / Int32ul,
    "p2" / Int32ul,
    "status" / Int32sl,
)
NOTIFICATION_FORMAT: Final[str] = "<HHII"
NOTIFICATION_STRUCT: Final = BinStruct(
    "sequence" / Int16ul,
    "flags" / Int16ul,
    "tick" / Int32ul,
    "level" / Int32ul,
)
UINT32_FORMAT: Final[str] = "<I"
UINT32_STRUCT: Final = Int32ul

COMMAND_HEADER_SIZE: Final[int] = COMMAND_HEADER_STRUCT.sizeof()  # type: ignore
RESPONSE_HEADER_SIZE: Final[int] = RESPONSE_HEADER_STRUCT.sizeof()  # type: ignore
NOTIFICATION_SIZE: Final[int] = NOTIFICATION_STRUCT.sizeof()  # type: ignore
UINT32_SIZE: Final[int] = UINT32_STRUCT.sizeof()  # type: ignore
