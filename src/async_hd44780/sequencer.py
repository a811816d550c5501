"""
Command Sequencer
=================

Composes byte transfers into the operations the session exposes:

- **reset**: wake-up bytes plus the initialization commands
- **clear_screen**: a single clear-display command
- **print_line**: cursor address followed by one data byte per character

Each operation is a flat list of named steps run with ``run_series``, so
the order in which bytes reach the bus is exactly the order of the list.

Print-line Progression
----------------------
    Start -> AddressSet -> Character[0] -> ... -> Character[n-1] -> Done

Any failure jumps straight to Failed(error); the remaining characters are
never sent.
"""

import logging

from async_hd44780.config import DeviceConfiguration
from async_hd44780.protocol import (
    COMMAND_DELAY_MS,
    DISPLAY_CONTROL_BYTE,
    ENTRY_MODE_BYTE,
    FUNCTION_SET_BYTE,
    RESET_BYTES,
    RESET_SETTLE_DELAY_MS,
    Command,
    RegisterMode,
    set_address_byte,
)
from async_hd44780.steps import Completion, OperationContext, Step, run_series
from async_hd44780.transfer import BusTransfer

# Configure module logger
logger = logging.getLogger(__name__)


class CommandSequencer:
    """
    Builds and runs the byte sequences of display operations.

    Args:
        transfer: Bus used for every byte
        config: Geometry used for addressing and truncation
    """

    def __init__(self, transfer: BusTransfer, config: DeviceConfiguration):
        self.transfer = transfer
        self.config = config

    def _byte_step(
        self,
        ctx: OperationContext,
        name: str,
        value: int,
        mode: RegisterMode = RegisterMode.COMMAND,
        pre_delay: float = COMMAND_DELAY_MS,
        settle_delay: float = 0,
    ) -> Step:
        return Step(name, lambda done: self.transfer.write_byte(
            ctx, value, mode, pre_delay, settle_delay, done))

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def reset(self, ctx: OperationContext, callback: Completion) -> None:
        """
        Run the power-up initialization sequence.

        The two wake-up bytes put the controller into 4-bit mode; the first
        one needs the long settle delay while the controller is busy. Then
        display on (cursor and blink off), 4-bit/2-line/5x8 function set,
        left-to-right entry mode, and a clear.
        """
        first, second = RESET_BYTES
        steps = [
            self._byte_step(ctx, "wake-up-1", first, pre_delay=0,
                            settle_delay=RESET_SETTLE_DELAY_MS),
            self._byte_step(ctx, "wake-up-2", second, pre_delay=0),
            self._byte_step(ctx, "display-control", DISPLAY_CONTROL_BYTE),
            self._byte_step(ctx, "function-set", FUNCTION_SET_BYTE),
            self._byte_step(ctx, "entry-mode", ENTRY_MODE_BYTE),
            self._byte_step(ctx, "clear-display", Command.CLEAR_DISPLAY),
        ]
        logger.debug("Initializing LCD...")
        run_series(ctx, steps, callback)

    def clear_screen(self, ctx: OperationContext, callback: Completion) -> None:
        """Clear the display and move the cursor home."""
        logger.debug("Clearing LCD...")
        run_series(ctx, [
            self._byte_step(ctx, "clear-display", Command.CLEAR_DISPLAY),
        ], callback)

    def print_line(
        self,
        ctx: OperationContext,
        message: str,
        line: int,
        callback: Completion,
    ) -> None:
        """
        Print ``message`` at the start of row ``line``.

        The row wraps modulo the configured row count. Messages longer than
        the display are truncated (logged as a warning). Characters already
        on the row past the end of ``message`` are left untouched.
        """
        row = line % self.config.rows
        data = self.prepare_message(message)
        logger.debug("Printing line %r on row=#%d", data.decode("latin-1"), row)

        steps = [
            self._byte_step(ctx, "address-set", set_address_byte(row, self.config.rows)),
        ]
        steps.extend(
            self._byte_step(ctx, f"character[{index}]", code, mode=RegisterMode.DATA)
            for index, code in enumerate(data)
        )
        run_series(ctx, steps, callback)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def prepare_message(self, message: str) -> bytes:
        """
        Truncate ``message`` to the display width and encode it.

        Characters are sent as their Latin-1 code; anything outside Latin-1
        is replaced by ``?``.
        """
        if len(message) > self.config.columns:
            logger.warning(
                "Message larger than display (%d > %d), output will be truncated",
                len(message), self.config.columns,
            )
            message = message[:self.config.columns]

        if any(ord(char) > 0xFF for char in message):
            logger.debug("Replacing unsupported characters in %r", message)
        return message.encode("latin-1", errors="replace")
