"""
4-bit Bus Transfers
===================

The lowest protocol layer: the enable strobe, nibble writes and byte
writes. Everything here is non-blocking and completes through a callback.

Byte Transfer
-------------
One byte is written as two nibbles, high nibble first:

    [pre-delay] RS:=mode  D4..D7:=high  strobe  [settle]  D4..D7:=low  strobe

The controller latches the nibble presented on D4..D7 when the enable line
falls, so the strobe must run only after all four data lines are set, and
the next nibble must not be presented before the strobe has completed.

A byte transfer is not atomic at the hardware level. What the session
guarantees instead is that no other operation, and no teardown, is ever
interleaved with it.
"""

import logging

from async_hd44780.config import DeviceConfiguration
from async_hd44780.errors import LineWriteError
from async_hd44780.lines import LineDriver
from async_hd44780.protocol import ENABLE_PULSE_DELAY_MS, RegisterMode
from async_hd44780.steps import Completion, OperationContext, Step, run_parallel, run_series

# Configure module logger
logger = logging.getLogger(__name__)


class BusTransfer:
    """
    Writes nibbles and bytes onto the display's 4-bit bus.

    Args:
        driver: Line driver owning the output lines
        config: Line assignment of the display
    """

    def __init__(self, driver: LineDriver, config: DeviceConfiguration):
        self.driver = driver
        self.config = config

    def _set_level(self, line: int, level: bool, done: Completion) -> None:
        """Apply one line level and report the outcome to ``done``."""
        try:
            self.driver.set_level(line, level)
        except LineWriteError as e:
            done(e)
            return
        done(None)

    # -------------------------------------------------------------------------
    # Pulse primitive
    # -------------------------------------------------------------------------

    def strobe_enable(self, ctx: OperationContext, callback: Completion) -> None:
        """
        Pulse the enable line so the controller latches the current nibble.

        Enable low, wait, enable high, wait, enable low, wait. Each sub-step
        starts only after the previous level has been applied.
        """
        enable = self.config.line_enable
        delay = ENABLE_PULSE_DELAY_MS
        run_series(ctx, [
            Step("enable-low", lambda done: self._set_level(enable, False, done)),
            Step("enable-high", lambda done: ctx.delay(
                delay, lambda: self._set_level(enable, True, done))),
            Step("enable-fall", lambda done: ctx.delay(
                delay, lambda: self._set_level(enable, False, done))),
            Step("enable-hold", lambda done: ctx.delay(delay, done)),
        ], callback)

    # -------------------------------------------------------------------------
    # Nibble and byte transfer
    # -------------------------------------------------------------------------

    def write_nibble(self, ctx: OperationContext, value: int, callback: Completion) -> None:
        """
        Present the low four bits of ``value`` on the data lines.

        The four line writes are independent and joined before ``callback``
        runs.
        """
        steps = [
            Step(
                f"data{bit}",
                lambda done, line=line, level=bool((value >> bit) & 0x01):
                    self._set_level(line, level, done),
            )
            for bit, line in enumerate(self.config.data_lines)
        ]
        run_parallel(ctx, steps, callback)

    def write_byte(
        self,
        ctx: OperationContext,
        value: int,
        mode: RegisterMode,
        pre_delay: float,
        settle_delay: float,
        callback: Completion,
    ) -> None:
        """
        Write one command or data byte.

        Args:
            ctx: Operation the transfer belongs to
            value: Byte to write (0-255)
            mode: RegisterMode.COMMAND or RegisterMode.DATA
            pre_delay: Milliseconds to wait before setting RS (0 for none)
            settle_delay: Milliseconds to wait between the two nibbles
            callback: Completion, called with the first error if any

        Raises:
            ValueError: If value is not a byte.
        """
        if not 0 <= value <= 0xFF:
            raise ValueError(f"Byte value out of range: {value}")

        logger.debug(
            "Writing %s byte 0x%02X (pre=%s settle=%s)",
            mode.name.lower(), value, pre_delay, settle_delay,
        )

        rs = self.config.line_register_select
        steps = []
        if pre_delay > 0:
            steps.append(Step("pre-delay", lambda done: ctx.delay(pre_delay, done)))
        steps.append(Step("register-select",
                          lambda done: self._set_level(rs, mode.level, done)))
        steps.append(Step("high-nibble",
                          lambda done: self.write_nibble(ctx, value >> 4, done)))
        steps.append(Step("high-strobe", lambda done: self.strobe_enable(ctx, done)))
        if settle_delay > 0:
            steps.append(Step("settle", lambda done: ctx.delay(settle_delay, done)))
        steps.append(Step("low-nibble",
                          lambda done: self.write_nibble(ctx, value & 0x0F, done)))
        steps.append(Step("low-strobe", lambda done: self.strobe_enable(ctx, done)))

        run_series(ctx, steps, callback)
