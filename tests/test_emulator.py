"""
Controller Emulator Unit Tests
==============================

Tests for the bus-level HD44780 emulation used by the test-suite and by
``hd44780 --simulate``.
"""

import pytest

from async_hd44780.config import DeviceConfiguration
from async_hd44780.emulator import BusTransaction, EmulatedLineDriver, HD44780Emulator
from async_hd44780.protocol import RegisterMode


# =============================================================================
# Initialization Tests
# =============================================================================

class TestEmulatorInit:
    """Test emulator power-on state."""

    def test_geometry(self):
        emulator = HD44780Emulator(20, 4)
        assert (emulator.columns, emulator.rows) == (20, 4)

    def test_starts_in_8bit_mode(self):
        assert not HD44780Emulator().four_bit

    def test_display_starts_off(self):
        emulator = HD44780Emulator()
        assert not emulator.display_on
        assert emulator.get_text_grid() == [" " * 16, " " * 16]

    @pytest.mark.parametrize("rows", [0, 5])
    def test_invalid_rows(self, rows):
        with pytest.raises(ValueError):
            HD44780Emulator(16, rows)

    def test_power_cycle(self):
        emulator = HD44780Emulator()
        emulator.command(0x28)
        emulator.command(0x0C)
        emulator.set_data(ord("A"))
        emulator.power_cycle()
        assert not emulator.four_bit
        assert not emulator.display_on
        assert emulator.get_char_at(0, 0) == 0x20


# =============================================================================
# HD44780 Command Tests
# =============================================================================

class TestEmulatorCommands:
    """Test command register handling."""

    @pytest.fixture
    def emulator(self):
        """2-line emulator, display on, 4-bit mode."""
        e = HD44780Emulator(16, 2)
        e.command(0x28)
        e.command(0x0C)
        e.command(0x06)
        return e

    def test_clear_display(self, emulator):
        for c in "Hello":
            emulator.set_data(ord(c))
        emulator.command(0x01)
        assert emulator.get_text().strip() == ""
        assert emulator.address == 0

    def test_return_home(self, emulator):
        emulator.command(0x80 | 5)
        emulator.command(0x02)
        assert emulator.address == 0

    def test_set_ddram_address(self, emulator):
        emulator.command(0x80 | 0x40)
        assert emulator.address == 0x40

    def test_display_control(self, emulator):
        emulator.command(0x0F)
        assert emulator.state.cursor_on
        assert emulator.state.blink_on
        emulator.command(0x08)
        assert not emulator.display_on

    def test_entry_mode_decrement(self, emulator):
        emulator.command(0x04)
        emulator.command(0x80 | 5)
        emulator.set_data(ord("A"))
        assert emulator.address == 4

    def test_cursor_shift(self, emulator):
        emulator.command(0x80 | 5)
        emulator.command(0x14)
        assert emulator.address == 6
        emulator.command(0x10)
        assert emulator.address == 5

    def test_function_set_8bit(self, emulator):
        emulator.command(0x38)
        assert not emulator.four_bit

    def test_cgram_write_does_not_touch_screen(self, emulator):
        emulator.command(0x40)
        emulator.set_data(0x1F)
        assert emulator.get_text().strip() == ""
        emulator.command(0x80)
        emulator.set_data(ord("A"))
        assert emulator.get_char_at(0, 0) == ord("A")


# =============================================================================
# Character Data Tests
# =============================================================================

class TestEmulatorData:
    """Test character writes and the text API."""

    @pytest.fixture
    def emulator(self):
        e = HD44780Emulator(16, 2)
        e.command(0x28)
        e.command(0x0C)
        return e

    def test_write_row_0(self, emulator):
        emulator.command(0x80)
        for c in "Hi":
            emulator.set_data(ord(c))
        assert emulator.get_text_grid()[0] == "Hi" + " " * 14

    def test_write_row_1(self, emulator):
        emulator.command(0xC0)
        emulator.set_data(ord("X"))
        assert emulator.get_char_at(1, 0) == ord("X")

    def test_two_line_wrap(self, emulator):
        """The address counter jumps from 0x27 to 0x40."""
        emulator.command(0x80 | 0x27)
        emulator.set_data(ord("A"))
        assert emulator.address == 0x40
        emulator.command(0x80 | 0x67)
        emulator.set_data(ord("B"))
        assert emulator.address == 0x00

    def test_non_printable_shown_as_space(self, emulator):
        emulator.command(0x80)
        emulator.set_data(0x05)
        assert emulator.get_text_grid()[0][0] == " "
        assert emulator.get_char_at(0, 0) == 0x05

    def test_get_char_at_out_of_range(self, emulator):
        with pytest.raises(ValueError):
            emulator.get_char_at(2, 0)
        with pytest.raises(ValueError):
            emulator.get_char_at(0, 16)

    def test_four_row_layout(self):
        emulator = HD44780Emulator(20, 4)
        emulator.command(0x28)
        emulator.command(0x0C)
        emulator.command(0x80 | 0x54)
        emulator.set_data(ord("Z"))
        assert emulator.get_text_grid()[3].startswith("Z")

    def test_render(self, emulator):
        emulator.command(0x80)
        emulator.set_data(ord("A"))
        lines = emulator.render().splitlines()
        assert lines[0] == "+" + "-" * 16 + "+"
        assert lines[1] == "|A" + " " * 15 + "|"
        assert len(lines) == 4


# =============================================================================
# Bus Interface Tests
# =============================================================================

class TestEmulatorBus:
    """Test nibble latching and interface mode switching."""

    def test_8bit_nibble_is_high_half(self):
        emulator = HD44780Emulator()
        emulator.latch(False, 0x3)
        assert emulator.transactions == [BusTransaction(RegisterMode.COMMAND, 0x30)]

    def test_wakeup_switches_to_4bit(self):
        emulator = HD44780Emulator()
        for nibble in (0x3, 0x3, 0x3, 0x2):
            emulator.latch(False, nibble)
        assert emulator.four_bit
        assert emulator.commands() == [0x30, 0x30, 0x30, 0x20]

    def test_4bit_byte_from_two_nibbles(self):
        emulator = HD44780Emulator()
        emulator.command(0x28)
        emulator.latch(True, 0x4)
        assert emulator.transactions == []
        emulator.latch(True, 0x1)
        assert emulator.transactions == [BusTransaction(RegisterMode.DATA, 0x41)]
        assert emulator.data_bytes() == b"A"

    def test_transaction_str(self):
        assert str(BusTransaction(RegisterMode.DATA, 0x41)) == "data:0x41"


class TestEmulatedLineDriver:
    """Test the line-to-bus wiring."""

    @pytest.fixture
    def config(self):
        return DeviceConfiguration()

    @pytest.fixture
    def driver(self, config):
        d = EmulatedLineDriver(config)
        for line in config.output_lines:
            d.configure(line)
        return d

    def present(self, driver, config, rs, nibble):
        driver.set_level(config.line_register_select, rs)
        for bit, line in enumerate(config.data_lines):
            driver.set_level(line, bool(nibble >> bit & 1))

    def test_latch_on_falling_edge_only(self, driver, config):
        self.present(driver, config, False, 0x3)
        driver.set_level(config.line_enable, True)
        assert driver.emulator.transactions == []
        driver.set_level(config.line_enable, False)
        assert driver.emulator.commands() == [0x30]

    def test_low_to_low_is_not_an_edge(self, driver, config):
        driver.set_level(config.line_enable, False)
        driver.set_level(config.line_enable, False)
        assert driver.emulator.transactions == []

    def test_register_select_sampled(self, driver, config):
        driver.emulator.command(0x28)
        for nibble in (0x4, 0x2):
            self.present(driver, config, True, nibble)
            driver.set_level(config.line_enable, True)
            driver.set_level(config.line_enable, False)
        assert driver.emulator.data_bytes() == b"B"

    def test_default_emulator_sized_from_config(self):
        driver = EmulatedLineDriver(DeviceConfiguration(columns=20, rows=4))
        assert (driver.emulator.columns, driver.emulator.rows) == (20, 4)

    def test_backlight(self, driver, config):
        assert not driver.backlight_on
        driver.set_level(config.line_backlight, True)
        assert driver.backlight_on
