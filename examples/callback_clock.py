#!/usr/bin/env python3
"""
Callback-style Clock Demo
=========================

This script shows the callback API of the Session directly:
1. Initialize the display
2. Print the time and the date once per second, chaining the two prints
3. On Ctrl-C, cancel the refresh timer and finalize with a clear

The Ctrl-C handler calls ``finalize`` even if a print is still running;
the session defers the shutdown until that print has completed.

Usage:
    python examples/callback_clock.py             # GPIO (needs lgpio)
    python examples/callback_clock.py --simulate  # emulator, prints the screen
"""

import asyncio
import signal
import sys
from datetime import datetime

from async_hd44780 import (
    AsyncioScheduler,
    DeviceConfiguration,
    EmulatedLineDriver,
    LgpioLineDriver,
    Session,
)


def main():
    simulate = "--simulate" in sys.argv[1:]
    config = DeviceConfiguration()
    driver = EmulatedLineDriver(config) if simulate else LgpioLineDriver()

    loop = asyncio.new_event_loop()
    session = Session(driver, AsyncioScheduler(loop))
    refresh_timer = None

    # ==========================================================================
    # Clean shutdown on Ctrl-C
    # ==========================================================================

    def shutdown():
        if refresh_timer is not None:
            refresh_timer.cancel()
        session.finalize(True, lambda error: loop.stop())

    loop.add_signal_handler(signal.SIGINT, shutdown)
    loop.add_signal_handler(signal.SIGTERM, shutdown)

    # ==========================================================================
    # Refresh chain: time, then date, then wait for the next second
    # ==========================================================================

    def refresh():
        nonlocal refresh_timer
        refresh_timer = None
        now = datetime.now()

        def date_printed(error):
            nonlocal refresh_timer
            if error:
                print(f"Print failed: {error}")
            if simulate:
                print(driver.emulator.render())
            refresh_timer = loop.call_later(1 - now.microsecond / 1e6, refresh)

        def time_printed(error):
            if error:
                date_printed(error)
                return
            session.print_line(now.strftime("%x"), 1, date_printed)

        session.print_line(now.strftime("%X"), 0, time_printed)

    def initialized(error):
        if error:
            print(f"Cannot initialize display: {error}")
            loop.stop()
            return
        refresh()

    session.initialize(config, initialized)
    try:
        loop.run_forever()
    finally:
        loop.close()


if __name__ == "__main__":
    main()
