"""
HD44780 Controller Emulator
===========================

A software model of the display controller, driven through its bus lines.
It lets the whole stack run without hardware: the session writes lines on
an EmulatedLineDriver, the emulator latches nibbles on the falling edge of
the enable line, and tests (or ``hd44780 --simulate``) read the resulting
text back.

Interface Mode
--------------
After power-on the controller is in 8-bit mode. Only D4..D7 are wired, so
each latched nibble is taken as the high half of a byte with D0..D3 low.
A function-set command with the DL bit clear (0x2X) switches to 4-bit
mode, where bytes arrive high nibble first and are assembled from two
latches. This is why the wake-up bytes 0x33/0x32 work from any state.

Display RAM
-----------
128 bytes of DDRAM. Screen row ``r`` starts at ``ROW_OFFSETS[r]``, the
same table the driver uses to address rows:

    16x2: row 0 = 0x00-0x0F, row 1 = 0x40-0x4F
    20x4: row 0 = 0x00, row 1 = 0x40, row 2 = 0x14, row 3 = 0x54

In 2-line mode the address counter runs 0x00-0x27 then 0x40-0x67, and
wraps back to 0x00.

Example:
    >>> emulator = HD44780Emulator(columns=16, rows=2)
    >>> emulator.command(0x0C)          # display on
    >>> emulator.command(0x80)          # row 0, column 0
    >>> emulator.set_data(ord("H"))
    >>> emulator.set_data(ord("i"))
    >>> emulator.get_text_grid()[0]
    'Hi              '
"""

import logging
from dataclasses import dataclass
from typing import Optional

from async_hd44780.config import DeviceConfiguration
from async_hd44780.lines import MemoryLineDriver
from async_hd44780.protocol import MAX_ROWS, ROW_OFFSETS, RegisterMode

# Configure module logger
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BusTransaction:
    """One complete byte as seen by the controller."""

    mode: RegisterMode
    value: int

    def __str__(self) -> str:
        return f"{self.mode.name.lower()}:0x{self.value:02X}"


@dataclass
class ControllerState:
    """
    Controller registers that are not RAM.

    Attributes:
        four_bit: Interface width selected by the last function set
        two_line: N bit of the last function set
        address: DDRAM address counter
        cgram_address: CGRAM address counter
        increment: I/D bit of entry mode
        display_on: D bit of display control
        cursor_on: C bit of display control
        blink_on: B bit of display control
        ptr_to_screen: True if data goes to DDRAM, False for CGRAM
    """

    four_bit: bool = False
    two_line: bool = False
    address: int = 0
    cgram_address: int = 0
    increment: bool = True
    display_on: bool = False
    cursor_on: bool = False
    blink_on: bool = False
    ptr_to_screen: bool = True


class HD44780Emulator:
    """
    HD44780-compatible controller with a 4-bit bus interface.

    Args:
        columns: Visible columns
        rows: Visible rows (1-4)

    Attributes:
        transactions: Every complete byte received, in order
    """

    DISPLAY_RAM_SIZE = 128
    CGRAM_SIZE = 64

    def __init__(self, columns: int = 16, rows: int = 2):
        if not 1 <= rows <= MAX_ROWS:
            raise ValueError(f"rows must be between 1 and {MAX_ROWS}, got {rows}")
        if columns < 1:
            raise ValueError(f"columns must be positive, got {columns}")

        self.columns = columns
        self.rows = rows
        self.transactions: list[BusTransaction] = []
        self._state = ControllerState()
        self._display_data = bytearray(b" " * self.DISPLAY_RAM_SIZE)
        self._cgram_data = bytearray(self.CGRAM_SIZE)
        self._high_nibble: Optional[int] = None

    @property
    def state(self) -> ControllerState:
        """Current controller registers."""
        return self._state

    @property
    def four_bit(self) -> bool:
        """True once the controller has been switched to 4-bit mode."""
        return self._state.four_bit

    @property
    def display_on(self) -> bool:
        return self._state.display_on

    @property
    def address(self) -> int:
        """Current DDRAM address counter."""
        return self._state.address

    def power_cycle(self) -> None:
        """Return to the power-on state (8-bit mode, display off, RAM blank)."""
        self._state = ControllerState()
        self._display_data[:] = b" " * self.DISPLAY_RAM_SIZE
        self._cgram_data[:] = bytes(self.CGRAM_SIZE)
        self._high_nibble = None
        self.transactions.clear()

    # =========================================================================
    # Bus interface
    # =========================================================================

    def latch(self, register_select: bool, nibble: int) -> None:
        """
        Accept the nibble on D4..D7 at a falling edge of the enable line.

        Args:
            register_select: Level of RS (True selects the data register)
            nibble: D4..D7 as the low four bits
        """
        nibble &= 0x0F
        mode = RegisterMode.DATA if register_select else RegisterMode.COMMAND

        if not self._state.four_bit:
            self._receive(mode, nibble << 4)
            return

        if self._high_nibble is None:
            self._high_nibble = nibble
            return

        value = (self._high_nibble << 4) | nibble
        self._high_nibble = None
        self._receive(mode, value)

    def _receive(self, mode: RegisterMode, value: int) -> None:
        self.transactions.append(BusTransaction(mode, value))
        logger.debug("Controller received %s byte 0x%02X", mode.name.lower(), value)
        if mode is RegisterMode.DATA:
            self.set_data(value)
        else:
            self.command(value)

    def clear_transactions(self) -> None:
        self.transactions.clear()

    def commands(self) -> list[int]:
        """Command bytes received so far."""
        return [t.value for t in self.transactions if t.mode is RegisterMode.COMMAND]

    def data_bytes(self) -> bytes:
        """Data bytes received so far."""
        return bytes(t.value for t in self.transactions if t.mode is RegisterMode.DATA)

    # =========================================================================
    # Register interface
    # =========================================================================

    def command(self, data: int) -> None:
        """
        Execute a command byte.

        Command encoding (from the HD44780 datasheet):
        - 1AAAAAAA: Set DDRAM address
        - 01AAAAAA: Set CGRAM address
        - 001DNFxx: Function set (interface width, lines, font)
        - 0001SRxx: Cursor/display shift
        - 00001DCB: Display on/off control
        - 000001IS: Entry mode set
        - 0000001x: Return home
        - 00000001: Clear display
        """
        state = self._state

        if data & 0x80:
            state.address = data & 0x7F
            state.ptr_to_screen = True

        elif data & 0x40:
            state.cgram_address = data & 0x3F
            state.ptr_to_screen = False

        elif data & 0x20:
            four_bit = not (data & 0x10)
            if four_bit != state.four_bit:
                logger.debug("Interface switched to %d-bit", 4 if four_bit else 8)
                self._high_nibble = None
            state.four_bit = four_bit
            state.two_line = bool(data & 0x08)

        elif data & 0x10:
            # Cursor move only; display shift is not modelled
            if not data & 0x08:
                step = 1 if data & 0x04 else -1
                state.address = (state.address + step) & 0x7F

        elif data & 0x08:
            state.display_on = bool(data & 0x04)
            state.cursor_on = bool(data & 0x02)
            state.blink_on = bool(data & 0x01)

        elif data & 0x04:
            state.increment = bool(data & 0x02)

        elif data & 0x02:
            state.address = 0
            state.ptr_to_screen = True

        elif data & 0x01:
            self._display_data[:] = b" " * self.DISPLAY_RAM_SIZE
            state.address = 0
            state.increment = True
            state.ptr_to_screen = True

    def set_data(self, data: int) -> None:
        """Write a data byte to DDRAM or CGRAM and advance the counter."""
        data &= 0xFF
        state = self._state

        if not state.ptr_to_screen:
            self._cgram_data[state.cgram_address] = data
            state.cgram_address = (state.cgram_address + 1) & 0x3F
            return

        self._display_data[state.address] = data
        state.address = self._next_address(state.address)

    def _next_address(self, address: int) -> int:
        step = 1 if self._state.increment else -1
        address = (address + step) & 0x7F
        if not self._state.two_line:
            return address % 0x50
        # Two-line mode: 0x00-0x27 and 0x40-0x67
        if address == 0x28:
            return 0x40
        if address == 0x68:
            return 0x00
        if address == 0x3F:
            return 0x27
        if address == 0x7F:
            return 0x67
        return address

    # =========================================================================
    # Text access API (for testing and debugging)
    # =========================================================================

    def get_text_grid(self) -> list[str]:
        """
        Get display contents as a list of strings, one per row.

        Rows are blank while the display is switched off.
        """
        if not self._state.display_on:
            return [" " * self.columns for _ in range(self.rows)]

        result = []
        for row in range(self.rows):
            chars = []
            for col in range(self.columns):
                code = self._display_data[(ROW_OFFSETS[row] + col) & 0x7F]
                chars.append(chr(code) if 32 <= code < 127 else " ")
            result.append("".join(chars))
        return result

    def get_text(self) -> str:
        """Display contents with '\\n' separating rows."""
        return "\n".join(self.get_text_grid())

    def get_char_at(self, row: int, col: int) -> int:
        """
        Get the character code at a screen position.

        Raises:
            ValueError: If the position is outside the display.
        """
        if not (0 <= row < self.rows and 0 <= col < self.columns):
            raise ValueError(f"Invalid position ({row}, {col})")
        return self._display_data[(ROW_OFFSETS[row] + col) & 0x7F]

    def render(self) -> str:
        """Display contents framed in a box, for terminal output."""
        border = "+" + "-" * self.columns + "+"
        body = [f"|{line}|" for line in self.get_text_grid()]
        return "\n".join([border, *body, border])


class EmulatedLineDriver(MemoryLineDriver):
    """
    Line driver wired to an HD44780Emulator.

    The configuration tells the driver which line plays which role on the
    bus. Every falling edge of the enable line latches RS and D4..D7 into
    the emulator.

    Args:
        config: Line assignment of the display
        emulator: Controller to drive (a new one sized from config if None)

    Example:
        >>> config = DeviceConfiguration()
        >>> driver = EmulatedLineDriver(config)
        >>> session = Session(driver, VirtualScheduler())
    """

    def __init__(
        self,
        config: Optional[DeviceConfiguration] = None,
        emulator: Optional[HD44780Emulator] = None,
    ):
        super().__init__()
        self.config = config or DeviceConfiguration()
        self.emulator = emulator or HD44780Emulator(self.config.columns, self.config.rows)
        self._enable_level = False

    @property
    def backlight_on(self) -> bool:
        if not self.config.has_backlight:
            return False
        return self.levels.get(self.config.line_backlight, False)

    def _level_changed(self, line: int, level: bool) -> None:
        if line != self.config.line_enable:
            return
        falling = self._enable_level and not level
        self._enable_level = level
        if falling:
            nibble = 0
            for bit, data_line in enumerate(self.config.data_lines):
                if self.levels.get(data_line, False):
                    nibble |= 1 << bit
            register_select = self.levels.get(self.config.line_register_select, False)
            self.emulator.latch(register_select, nibble)

    def release_all(self) -> None:
        self._enable_level = False
        super().release_all()
