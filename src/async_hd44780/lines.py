"""
Digital Output Line Drivers
===========================

The session talks to the display exclusively through a LineDriver: it
configures each line as an output, sets line levels, and releases all lines
on shutdown. Line identifiers are plain integers (BCM GPIO numbers for the
lgpio backend).

Implementations
---------------
- **MemoryLineDriver**: keeps levels in memory and records every call;
  supports fault injection. Used for tests and dry runs, and as the base of
  the emulated bus in ``async_hd44780.emulator``.
- **LgpioLineDriver**: Linux GPIO character device backend through the
  ``lgpio`` library (install the ``gpio`` extra).

Error Contract
--------------
Drivers raise LineConfigError from ``configure``/``release_all`` and
LineWriteError from ``set_level``. Backend-specific exceptions never leak
out of a driver.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from async_hd44780.errors import LineConfigError, LineWriteError

# Configure module logger
logger = logging.getLogger(__name__)


class Direction(Enum):
    """Direction of a digital line."""

    OUTPUT = "out"
    INPUT = "in"


class LineDriver(ABC):
    """Minimal digital line interface needed by the display session."""

    @abstractmethod
    def configure(self, line: int, direction: Direction = Direction.OUTPUT) -> None:
        """
        Configure ``line`` for use.

        Raises:
            LineConfigError: If the line cannot be claimed.
        """

    @abstractmethod
    def set_level(self, line: int, level: bool) -> None:
        """
        Drive ``line`` high (True) or low (False).

        Raises:
            LineWriteError: If the level cannot be applied.
        """

    @abstractmethod
    def release_all(self) -> None:
        """
        Release every configured line.

        Raises:
            LineConfigError: If releasing fails.
        """


# =============================================================================
# In-memory driver
# =============================================================================

@dataclass(frozen=True)
class LineEvent:
    """
    One call recorded by MemoryLineDriver.

    Attributes:
        kind: "configure", "set" or "release"
        line: Line involved (None for "release")
        level: Level applied (only for "set")
    """

    kind: str
    line: Optional[int] = None
    level: Optional[bool] = None


class MemoryLineDriver(LineDriver):
    """
    Line driver that keeps line levels in memory.

    Every call is appended to ``events``. Writing to a line that has not
    been configured (or was released) raises LineWriteError, which makes
    writes after a teardown easy to catch in tests.

    Fault injection:
        driver.fail_writes(22, after=3)   # 4th write to line 22 fails
        driver.fail_configure(25)         # configuring line 25 fails
        driver.fail_release()             # release_all fails (lines still freed)

    Example:
        >>> driver = MemoryLineDriver()
        >>> driver.configure(22)
        >>> driver.set_level(22, True)
        >>> driver.levels[22]
        True
    """

    def __init__(self) -> None:
        self.levels: dict[int, bool] = {}
        self.directions: dict[int, Direction] = {}
        self.events: list[LineEvent] = []
        self._write_failures: dict[int, int] = {}
        self._config_failures: set[int] = set()
        self._release_failure = False

    # -------------------------------------------------------------------------
    # LineDriver interface
    # -------------------------------------------------------------------------

    def configure(self, line: int, direction: Direction = Direction.OUTPUT) -> None:
        self.events.append(LineEvent("configure", line))
        if line in self._config_failures:
            raise LineConfigError("Injected configuration failure", line=line)
        self.directions[line] = direction
        self.levels.setdefault(line, False)

    def set_level(self, line: int, level: bool) -> None:
        self.events.append(LineEvent("set", line, bool(level)))
        if self.directions.get(line) is not Direction.OUTPUT:
            raise LineWriteError("Line is not configured as output", line=line)
        remaining = self._write_failures.get(line)
        if remaining is not None:
            if remaining == 0:
                del self._write_failures[line]
                raise LineWriteError("Injected write failure", line=line)
            self._write_failures[line] = remaining - 1
        self.levels[line] = bool(level)
        self._level_changed(line, bool(level))

    def release_all(self) -> None:
        self.events.append(LineEvent("release"))
        self.directions.clear()
        self.levels.clear()
        if self._release_failure:
            self._release_failure = False
            raise LineConfigError("Injected release failure")

    def _level_changed(self, line: int, level: bool) -> None:
        """Hook for subclasses observing the bus."""

    # -------------------------------------------------------------------------
    # Fault injection
    # -------------------------------------------------------------------------

    def fail_writes(self, line: int, after: int = 0) -> None:
        """Make the write to ``line`` fail after ``after`` successful writes."""
        self._write_failures[line] = after

    def fail_configure(self, line: int) -> None:
        """Make every ``configure`` call for ``line`` fail."""
        self._config_failures.add(line)

    def fail_release(self) -> None:
        """Make the next ``release_all`` call fail."""
        self._release_failure = True

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    @property
    def configured(self) -> bool:
        """True while at least one line is configured."""
        return bool(self.directions)

    def writes(self, line: Optional[int] = None) -> list[tuple[int, bool]]:
        """Return recorded (line, level) writes, optionally for one line."""
        return [
            (event.line, event.level)
            for event in self.events
            if event.kind == "set" and (line is None or event.line == line)
        ]

    def clear_events(self) -> None:
        """Forget recorded events (levels are kept)."""
        self.events.clear()


# =============================================================================
# lgpio driver
# =============================================================================

def _import_lgpio() -> Any:
    """Import lgpio on first use so the package imports without it."""
    try:
        import lgpio
    except ImportError as e:
        raise LineConfigError(
            "lgpio is not installed; install async-hd44780[gpio]"
        ) from e
    return lgpio


class LgpioLineDriver(LineDriver):
    """
    Linux GPIO backend using lgpio.

    The GPIO chip is opened on the first ``configure`` call and closed by
    ``release_all``.

    Args:
        chip: gpiochip number (0 on most Raspberry Pi models, 4 on the Pi 5)
    """

    def __init__(self, chip: int = 0):
        self.chip = chip
        self._lgpio: Any = None
        self._handle: Optional[int] = None
        self._claimed: list[int] = []

    def _open(self) -> int:
        if self._lgpio is None:
            self._lgpio = _import_lgpio()
        if self._handle is None:
            try:
                self._handle = self._lgpio.gpiochip_open(self.chip)
            except self._lgpio.error as e:
                raise LineConfigError(f"Cannot open gpiochip{self.chip}: {e}") from e
            logger.debug("Opened gpiochip%d (handle=%d)", self.chip, self._handle)
        return self._handle

    def configure(self, line: int, direction: Direction = Direction.OUTPUT) -> None:
        handle = self._open()
        try:
            if direction is Direction.OUTPUT:
                self._lgpio.gpio_claim_output(handle, line, 0)
            else:
                self._lgpio.gpio_claim_input(handle, line)
        except self._lgpio.error as e:
            raise LineConfigError(f"Cannot claim line: {e}", line=line) from e
        self._claimed.append(line)
        logger.debug("Claimed GPIO %d as %s", line, direction.value)

    def set_level(self, line: int, level: bool) -> None:
        if self._handle is None:
            raise LineWriteError("GPIO chip is not open", line=line)
        try:
            self._lgpio.gpio_write(self._handle, line, 1 if level else 0)
        except self._lgpio.error as e:
            raise LineWriteError(f"Cannot write line: {e}", line=line) from e

    def release_all(self) -> None:
        if self._handle is None:
            return
        failures = []
        for line in self._claimed:
            try:
                self._lgpio.gpio_free(self._handle, line)
            except self._lgpio.error as e:
                failures.append(f"GPIO {line}: {e}")
        try:
            self._lgpio.gpiochip_close(self._handle)
        except self._lgpio.error as e:
            failures.append(f"gpiochip{self.chip}: {e}")
        self._claimed.clear()
        self._handle = None
        logger.debug("Released gpiochip%d", self.chip)
        if failures:
            raise LineConfigError("Release failed: " + "; ".join(failures))
