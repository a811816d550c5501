"""
asyncio Facade
==============

Awaitable wrapper around Session for asyncio applications.

Each method starts the corresponding session operation with a completion
callback that resolves a future, and awaits it. Errors delivered to the
callback are raised from the await.

Superseded Results
------------------
When ``finalize`` is requested while an operation is in flight, the session
never invokes that operation's callback (the deferred shutdown takes it
over). An await on such an operation would otherwise hang forever, so the
facade fails it with ShutdownSupersededError once the shutdown completes.

Usage
-----
    async with AsyncDisplay(LgpioLineDriver(), {"columns": 20, "rows": 4}) as lcd:
        await lcd.print_line("Hello World!", 0)
        await lcd.print_line("=" * 20, 1)
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from async_hd44780.errors import HD44780Error, ShutdownSupersededError
from async_hd44780.lines import LineDriver
from async_hd44780.scheduler import AsyncioScheduler, Scheduler
from async_hd44780.session import ConfigOptions, Phase, Session, SessionCallback

# Configure module logger
logger = logging.getLogger(__name__)


def _resolve(future: asyncio.Future, error: Optional[HD44780Error]) -> None:
    if future.done():
        return
    if error is None:
        future.set_result(None)
    else:
        future.set_exception(error)


class AsyncDisplay:
    """
    Awaitable HD44780 display.

    Args:
        driver: Line driver owning the display's lines
        config: Configuration used by ``async with`` (mapping,
                DeviceConfiguration or None for the defaults)
        scheduler: Timer scheduler (an AsyncioScheduler by default)

    Attributes:
        session: Underlying callback-based Session
    """

    def __init__(
        self,
        driver: LineDriver,
        config: ConfigOptions = None,
        scheduler: Optional[Scheduler] = None,
    ):
        self.session = Session(driver, scheduler or AsyncioScheduler())
        self.config = config
        self._waiting: list[tuple[str, asyncio.Future]] = []

    @property
    def phase(self) -> Phase:
        """Lifecycle phase of the underlying session."""
        return self.session.phase

    @property
    def is_ready(self) -> bool:
        """True if a display operation would be accepted right now."""
        return self.session.is_ready

    async def _run(self, name: str, start: Callable[[SessionCallback], None]) -> None:
        """Start an operation and wait for its completion."""
        future = asyncio.get_running_loop().create_future()
        entry = (name, future)
        self._waiting.append(entry)
        try:
            start(lambda error=None: _resolve(future, error))
            await future
        finally:
            self._waiting.remove(entry)

    def _supersede_waiting(self) -> None:
        """Fail every operation await whose callback a shutdown consumed."""
        for name, future in list(self._waiting):
            if not future.done():
                logger.debug("Result of '%s' superseded by shutdown", name)
                future.set_exception(ShutdownSupersededError(name))

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def initialize(self, config: ConfigOptions = None) -> None:
        """Initialize the display (no-op if already initialized)."""
        await self._run(
            "initialize",
            lambda done: self.session.initialize(config, done),
        )

    async def clear_screen(self) -> None:
        """Clear the display."""
        await self._run("clear_screen", self.session.clear_screen)

    async def print_line(self, message: str, line: int = 0) -> None:
        """Print ``message`` on row ``line``."""
        await self._run(
            "print_line",
            lambda done: self.session.print_line(message, line, done),
        )

    async def finalize(self, clear_screen_first: bool = False) -> None:
        """
        Shut the display down and release its lines.

        If an operation is in flight, this waits for it to complete first;
        the await of that operation then raises ShutdownSupersededError.
        """
        future = asyncio.get_running_loop().create_future()

        def done(error: Optional[HD44780Error] = None) -> None:
            self._supersede_waiting()
            _resolve(future, error)

        self.session.finalize(clear_screen_first, done)
        await future

    def abort(self) -> None:
        """
        Tear the display down immediately (safe from signal handlers).

        A pending operation await raises OperationAbortedError, or
        ShutdownSupersededError if a finalize was already requested.
        """
        self.session.abort()
        self._supersede_waiting()

    # -------------------------------------------------------------------------
    # Async context manager
    # -------------------------------------------------------------------------

    async def __aenter__(self) -> "AsyncDisplay":
        await self.initialize(self.config)
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.finalize(clear_screen_first=True)

    def __repr__(self) -> str:
        return f"AsyncDisplay({self.session!r})"
