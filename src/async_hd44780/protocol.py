"""
HD44780 Protocol Constants
==========================

Instruction codes, flag sets and timings for HD44780-class character LCD
controllers driven through the 4-bit parallel interface.

Instruction Encoding
--------------------
The command register decodes the highest set bit of the byte:

    1AAAAAAA  Set DDRAM address
    01AAAAAA  Set CGRAM address
    001DNFxx  Function set (D: 8-bit bus, N: two lines, F: 5x10 font)
    0001SRxx  Cursor/display shift
    00001DCB  Display control (display, cursor, blink)
    000001IS  Entry mode set (increment, shift)
    0000001x  Return home
    00000001  Clear display

4-bit Wake-up
-------------
After power-up the controller is in 8-bit mode and only samples D4..D7.
Sending ``0x33`` then ``0x32`` as nibble pairs presents 3, 3, 3, 2 on the
bus: three 8-bit function sets (the first needing > 4.1 ms of settle time)
followed by the switch to 4-bit mode.

Timing
------
All delays are milliseconds and are protocol minimums rounded up to what a
general-purpose scheduler can deliver. They are not caller-configurable.
"""

from enum import Enum, IntEnum, IntFlag
from typing import Final


# =============================================================================
# Instruction Codes
# =============================================================================

class Command(IntEnum):
    """HD44780 instruction codes (upper bits of the command byte)."""

    CLEAR_DISPLAY = 0x01
    RETURN_HOME = 0x02
    ENTRY_MODE_SET = 0x04
    DISPLAY_CONTROL = 0x08
    CURSOR_SHIFT = 0x10
    FUNCTION_SET = 0x20
    SET_CGRAM_ADDRESS = 0x40
    SET_DDRAM_ADDRESS = 0x80


class EntryModeFlag(IntFlag):
    """Flags for ``Command.ENTRY_MODE_SET``."""

    ENTRY_RIGHT = 0x00
    ENTRY_LEFT = 0x02
    SHIFT_INCREMENT = 0x01
    SHIFT_DECREMENT = 0x00


class DisplayControlFlag(IntFlag):
    """Flags for ``Command.DISPLAY_CONTROL``."""

    DISPLAY_ON = 0x04
    DISPLAY_OFF = 0x00
    CURSOR_ON = 0x02
    CURSOR_OFF = 0x00
    BLINK_ON = 0x01
    BLINK_OFF = 0x00


class FunctionSetFlag(IntFlag):
    """Flags for ``Command.FUNCTION_SET``."""

    EIGHT_BIT_MODE = 0x10
    FOUR_BIT_MODE = 0x00
    TWO_LINE = 0x08
    ONE_LINE = 0x00
    FIVE_BY_TEN_DOTS = 0x04
    FIVE_BY_EIGHT_DOTS = 0x00


class RegisterMode(Enum):
    """
    Value of the register-select (RS) line for a byte transfer.

    COMMAND drives RS low (instruction register), DATA drives RS high
    (data register, i.e. characters).
    """

    COMMAND = False
    DATA = True

    @property
    def level(self) -> bool:
        """Line level to apply to RS."""
        return self.value


# =============================================================================
# Byte Sequences
# =============================================================================

# Legacy wake-up bytes that force the controller into 4-bit mode
RESET_BYTES: Final[tuple[int, int]] = (0x33, 0x32)

# Display on, cursor off, blink off
DISPLAY_CONTROL_BYTE: Final[int] = int(
    Command.DISPLAY_CONTROL
    | DisplayControlFlag.DISPLAY_ON
    | DisplayControlFlag.CURSOR_OFF
    | DisplayControlFlag.BLINK_OFF
)

# 4-bit bus, two lines, 5x8 font
FUNCTION_SET_BYTE: Final[int] = int(
    Command.FUNCTION_SET
    | FunctionSetFlag.FOUR_BIT_MODE
    | FunctionSetFlag.TWO_LINE
    | FunctionSetFlag.FIVE_BY_EIGHT_DOTS
)

# Left to right, no display shift
ENTRY_MODE_BYTE: Final[int] = int(
    Command.ENTRY_MODE_SET
    | EntryModeFlag.ENTRY_LEFT
    | EntryModeFlag.SHIFT_DECREMENT
)


# =============================================================================
# Row Addressing
# =============================================================================

# DDRAM base address of each display row
ROW_OFFSETS: Final[tuple[int, ...]] = (0x00, 0x40, 0x14, 0x54)

# Maximum number of rows the controller can address
MAX_ROWS: Final[int] = len(ROW_OFFSETS)


def row_address(row: int, rows: int) -> int:
    """
    Return the DDRAM base address for ``row`` on a display with ``rows`` rows.

    Rows beyond the display wrap around modulo ``rows`` (negative rows count
    from the bottom), so the table is never indexed out of range as long as
    ``rows <= MAX_ROWS``.

    Raises:
        ValueError: If rows is out of range.
    """
    if not 1 <= rows <= MAX_ROWS:
        raise ValueError(f"rows must be 1-{MAX_ROWS}, got {rows}")
    return ROW_OFFSETS[row % rows]


def set_address_byte(row: int, rows: int) -> int:
    """Command byte that moves the cursor to the start of ``row``."""
    return int(Command.SET_DDRAM_ADDRESS) | row_address(row, rows)


# =============================================================================
# Timing (milliseconds)
# =============================================================================

# Minimum time between enable line transitions
ENABLE_PULSE_DELAY_MS: Final[int] = 1

# Busy time after the first wake-up byte
RESET_SETTLE_DELAY_MS: Final[int] = 5

# Delay before each regular command or data byte
COMMAND_DELAY_MS: Final[int] = 1
