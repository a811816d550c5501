"""
async-hd44780 - Non-blocking Driver for HD44780 Character LCDs
==============================================================

This package drives HD44780-class character displays over six (or seven,
with backlight) GPIO lines using the 4-bit parallel protocol. Nothing in
it blocks: every timed step of the protocol is handed to a scheduler, and
every operation reports completion through a callback (or an await).

Its core guarantee is safe teardown: a shutdown requested while bytes are
being written to the display never cuts a byte transfer in half. It is
deferred until the operation in flight completes.

Main Components
---------------
- **session**: Session state machine (initialize, clear, print, finalize)
- **sequencer**: Byte sequences for reset, clear and print operations
- **transfer**: Enable strobe, nibble and byte transfers
- **lines**: Line drivers (in-memory, lgpio)
- **scheduler**: Timer schedulers (asyncio, virtual clock)
- **emulator**: Bus-level HD44780 emulator for tests and dry runs
- **aio**: Awaitable facade for asyncio applications

Quick Start
-----------
Callback style:
    >>> from async_hd44780 import Session, LgpioLineDriver, AsyncioScheduler
    >>> session = Session(LgpioLineDriver(), AsyncioScheduler())
    >>> session.initialize(None, lambda err: session.print_line("Hello", 0))

asyncio style:
    >>> from async_hd44780 import AsyncDisplay, LgpioLineDriver
    >>> async with AsyncDisplay(LgpioLineDriver()) as lcd:
    ...     await lcd.print_line("Hello World!", 0)

Or use the command-line tool:
    $ hd44780 print "Hello World!" "================"
    $ hd44780 --simulate clock

Reference Documentation
-----------------------
- HD44780 datasheet (Hitachi), instruction set and 4-bit interface timing

Version History
---------------
1.0.0 - Initial release with session, emulator, asyncio facade and CLI
"""

__version__ = "1.0.0"

# =============================================================================
# Public API Exports
# =============================================================================

from async_hd44780.errors import (
    HD44780Error,
    InvalidConfigurationError,
    NotInitializedError,
    DeviceBusyError,
    OperationAbortedError,
    ShutdownSupersededError,
    LineError,
    LineWriteError,
    LineConfigError,
)

from async_hd44780.protocol import (
    Command,
    EntryModeFlag,
    DisplayControlFlag,
    FunctionSetFlag,
    RegisterMode,
    ROW_OFFSETS,
    row_address,
)

from async_hd44780.config import DeviceConfiguration
from async_hd44780.lines import (
    Direction,
    LineDriver,
    MemoryLineDriver,
    LgpioLineDriver,
)
from async_hd44780.scheduler import (
    Scheduler,
    AsyncioScheduler,
    VirtualScheduler,
)
from async_hd44780.session import (
    Session,
    Phase,
    ShutdownKind,
    PendingShutdown,
)
from async_hd44780.emulator import (
    HD44780Emulator,
    EmulatedLineDriver,
)
from async_hd44780.aio import AsyncDisplay

__all__ = [
    # Version info
    "__version__",
    # Exception hierarchy
    "HD44780Error",
    "InvalidConfigurationError",
    "NotInitializedError",
    "DeviceBusyError",
    "OperationAbortedError",
    "ShutdownSupersededError",
    "LineError",
    "LineWriteError",
    "LineConfigError",
    # Protocol
    "Command",
    "EntryModeFlag",
    "DisplayControlFlag",
    "FunctionSetFlag",
    "RegisterMode",
    "ROW_OFFSETS",
    "row_address",
    # Configuration
    "DeviceConfiguration",
    # Line drivers
    "Direction",
    "LineDriver",
    "MemoryLineDriver",
    "LgpioLineDriver",
    # Schedulers
    "Scheduler",
    "AsyncioScheduler",
    "VirtualScheduler",
    # Session
    "Session",
    "Phase",
    "ShutdownKind",
    "PendingShutdown",
    # Emulator
    "HD44780Emulator",
    "EmulatedLineDriver",
    # asyncio facade
    "AsyncDisplay",
]
