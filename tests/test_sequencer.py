"""
Command Sequencer Tests
=======================

Byte sequences of reset, clear and print operations as received by the
controller emulator.
"""

import logging

import pytest

from async_hd44780.config import DeviceConfiguration
from async_hd44780.emulator import EmulatedLineDriver
from async_hd44780.errors import LineWriteError
from async_hd44780.sequencer import CommandSequencer
from async_hd44780.steps import OperationContext
from async_hd44780.transfer import BusTransfer


def make_sequencer(driver, config):
    for line in config.output_lines:
        driver.configure(line)
    return CommandSequencer(BusTransfer(driver, config), config)


@pytest.fixture
def sequencer(driver, config):
    return make_sequencer(driver, config)


@pytest.fixture
def ctx(scheduler):
    return OperationContext("sequence", scheduler)


@pytest.fixture
def reset_done(sequencer, ctx, driver, scheduler, recorder):
    """Sequencer whose controller has been reset, recordings cleared."""
    done = recorder()
    sequencer.reset(ctx, done)
    scheduler.run_until_idle()
    assert done.error is None
    driver.emulator.clear_transactions()
    return sequencer


# =============================================================================
# Reset
# =============================================================================

class TestReset:
    """Test the initialization sequence."""

    def test_command_bytes(self, sequencer, ctx, driver, scheduler, recorder):
        """Wake-up nibbles in 8-bit mode, then the four init commands."""
        done = recorder()
        sequencer.reset(ctx, done)
        scheduler.run_until_idle()
        assert done.error is None
        assert driver.emulator.commands() == [
            0x30, 0x30, 0x30, 0x20,
            0x0C, 0x28, 0x06, 0x01,
        ]
        assert driver.emulator.data_bytes() == b""

    def test_controller_state(self, sequencer, ctx, driver, scheduler, recorder):
        sequencer.reset(ctx, recorder())
        scheduler.run_until_idle()
        state = driver.emulator.state
        assert state.four_bit
        assert state.two_line
        assert state.display_on
        assert not state.cursor_on
        assert state.increment
        assert state.address == 0

    def test_duration(self, sequencer, ctx, scheduler, recorder):
        """Settle after the first wake-up byte, 1 ms before each init command."""
        sequencer.reset(ctx, recorder())
        scheduler.run_until_idle()
        assert scheduler.now == (6 + 5) + 6 + 4 * (1 + 6)

    def test_step_names(self, sequencer, ctx, driver, config, scheduler, recorder):
        """A failure reports the innermost step that failed."""
        done = recorder()
        driver.fail_writes(config.line_register_select, after=2)
        sequencer.reset(ctx, done)
        scheduler.run_until_idle()
        assert isinstance(done.error, LineWriteError)
        assert done.error.step == "register-select"
        assert driver.emulator.commands() == [0x30, 0x30, 0x30, 0x20]


# =============================================================================
# Clear
# =============================================================================

class TestClearScreen:
    """Test the clear operation."""

    def test_single_clear_byte(self, reset_done, ctx, driver, scheduler, recorder):
        done = recorder()
        reset_done.clear_screen(ctx, done)
        scheduler.run_until_idle()
        assert done.error is None
        assert driver.emulator.commands() == [0x01]


# =============================================================================
# Print Line
# =============================================================================

class TestPrintLine:
    """Test cursor addressing and character transfer."""

    def test_hello_on_first_row(self, reset_done, ctx, driver, scheduler, recorder):
        done = recorder()
        reset_done.print_line(ctx, "Hello", 0, done)
        scheduler.run_until_idle()
        assert done.error is None
        assert driver.emulator.commands() == [0x80]
        assert driver.emulator.data_bytes() == b"Hello"
        assert driver.emulator.get_text_grid()[0] == "Hello           "

    def test_address_precedes_characters(self, reset_done, ctx, driver, scheduler, recorder):
        reset_done.print_line(ctx, "Hi", 1, recorder())
        scheduler.run_until_idle()
        assert [str(t) for t in driver.emulator.transactions] == [
            "command:0xC0", "data:0x48", "data:0x69",
        ]

    def test_line_wraps(self, reset_done, ctx, driver, scheduler, recorder):
        """Line 5 on a 2-row display is row 1."""
        reset_done.print_line(ctx, "X", 5, recorder())
        scheduler.run_until_idle()
        assert driver.emulator.commands() == [0xC0]
        assert driver.emulator.get_text_grid()[1].startswith("X")

    def test_truncated_to_columns(self, reset_done, ctx, driver, scheduler, recorder, caplog):
        done = recorder()
        with caplog.at_level(logging.WARNING, logger="async_hd44780.sequencer"):
            reset_done.print_line(ctx, "0123456789ABCDEFGHIJ", 0, done)
            scheduler.run_until_idle()
        assert done.error is None
        assert driver.emulator.data_bytes() == b"0123456789ABCDEF"
        assert "truncated" in caplog.text

    def test_exact_width_not_truncated(self, reset_done, ctx, driver, scheduler, recorder, caplog):
        with caplog.at_level(logging.WARNING, logger="async_hd44780.sequencer"):
            reset_done.print_line(ctx, "=" * 16, 0, recorder())
            scheduler.run_until_idle()
        assert len(driver.emulator.data_bytes()) == 16
        assert caplog.text == ""

    def test_empty_message(self, reset_done, ctx, driver, scheduler, recorder):
        """Only the cursor moves."""
        done = recorder()
        reset_done.print_line(ctx, "", 1, done)
        scheduler.run_until_idle()
        assert done.error is None
        assert driver.emulator.commands() == [0xC0]
        assert driver.emulator.data_bytes() == b""

    def test_unsupported_characters_replaced(self, reset_done, ctx, driver, scheduler, recorder):
        reset_done.print_line(ctx, "a€b", 0, recorder())
        scheduler.run_until_idle()
        assert driver.emulator.data_bytes() == b"a?b"

    def test_latin1_characters_sent_as_is(self, reset_done):
        assert reset_done.prepare_message("°C") == b"\xb0C"

    def test_failure_skips_remaining_characters(
        self, reset_done, ctx, driver, config, scheduler, recorder
    ):
        """Address byte, 'H', 'e' succeed; the third character fails."""
        done = recorder()
        driver.fail_writes(config.line_register_select, after=3)
        reset_done.print_line(ctx, "Hello", 0, done)
        scheduler.run_until_idle()
        assert isinstance(done.error, LineWriteError)
        assert done.error.step == "register-select"
        assert driver.emulator.data_bytes() == b"He"

    def test_four_row_display(self, scheduler, recorder):
        config = DeviceConfiguration(columns=20, rows=4)
        driver = EmulatedLineDriver(config)
        sequencer = make_sequencer(driver, config)
        ctx = OperationContext("sequence", scheduler)
        sequencer.reset(ctx, recorder())
        scheduler.run_until_idle()
        for row in range(4):
            sequencer.print_line(ctx, f"Row {row}", row, recorder())
            scheduler.run_until_idle()
        assert driver.emulator.get_text_grid() == [
            f"Row {row}".ljust(20) for row in range(4)
        ]
        assert [c for c in driver.emulator.commands()[-8:] if c & 0x80] == [
            0x80, 0xC0, 0x94, 0xD4,
        ]
