"""
Shared Test Fixtures
====================

Every timing-dependent test runs on a VirtualScheduler, so the whole
protocol (including its millisecond delays) executes instantly and
deterministically. Bus-level assertions use the EmulatedLineDriver, which
records every line write and feeds the controller emulator.
"""

from typing import Optional

import pytest

from async_hd44780.config import DeviceConfiguration
from async_hd44780.emulator import EmulatedLineDriver
from async_hd44780.errors import HD44780Error
from async_hd44780.lines import MemoryLineDriver
from async_hd44780.scheduler import VirtualScheduler
from async_hd44780.session import Session


class CallbackRecorder:
    """Completion callback that records every invocation."""

    def __init__(self) -> None:
        self.calls: list[Optional[HD44780Error]] = []

    def __call__(self, error: Optional[HD44780Error] = None) -> None:
        self.calls.append(error)

    @property
    def count(self) -> int:
        return len(self.calls)

    @property
    def error(self) -> Optional[HD44780Error]:
        """The single reported outcome."""
        assert self.count == 1, f"expected exactly one call, got {self.calls}"
        return self.calls[0]


@pytest.fixture
def recorder():
    """Factory for completion callbacks."""
    return CallbackRecorder


@pytest.fixture
def scheduler():
    return VirtualScheduler()


@pytest.fixture
def config():
    """Default 16x2 display with backlight."""
    return DeviceConfiguration()


@pytest.fixture
def memory_driver():
    return MemoryLineDriver()


@pytest.fixture
def driver(config):
    """Emulated bus for the default configuration."""
    return EmulatedLineDriver(config)


@pytest.fixture
def session(driver, scheduler):
    return Session(driver, scheduler)


@pytest.fixture
def ready_session(session, scheduler, config, recorder):
    """Session that has completed initialization, with recordings cleared."""
    done = recorder()
    session.initialize(config, done)
    scheduler.run_until_idle()
    assert done.error is None
    session.driver.emulator.clear_transactions()
    session.driver.clear_events()
    return session
