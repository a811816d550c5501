"""
Timer Schedulers
================

The sequencer never sleeps. Every timed step is handed to a Scheduler,
which calls it back once the delay has elapsed, and every scheduled step
returns a handle the session keeps so it can cancel the step during an
emergency teardown.

Implementations
---------------
- **AsyncioScheduler**: real time, backed by the running asyncio loop
- **VirtualScheduler**: virtual millisecond clock, advanced explicitly;
  deterministic and instantaneous, used by the test-suite and dry runs

Both run all callbacks on a single thread, one at a time, which is what
allows the session state to go without locks.
"""

import asyncio
import heapq
import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

# Configure module logger
logger = logging.getLogger(__name__)


TimerCallback = Callable[[], None]


class Scheduler(ABC):
    """Schedules callbacks after a delay expressed in milliseconds."""

    @abstractmethod
    def schedule(self, delay_ms: float, callback: TimerCallback) -> Any:
        """
        Run ``callback`` once ``delay_ms`` milliseconds have elapsed.

        A delay of zero still defers the callback; it never runs before
        ``schedule`` returns.

        Returns:
            Opaque handle accepted by ``cancel``.
        """

    @abstractmethod
    def cancel(self, handle: Any) -> None:
        """Cancel a scheduled callback. Cancelling a fired handle is a no-op."""


# =============================================================================
# asyncio
# =============================================================================

class AsyncioScheduler(Scheduler):
    """
    Scheduler backed by an asyncio event loop.

    Args:
        loop: Loop to schedule on. Defaults to the loop running at the time
              of each ``schedule`` call.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        """Event loop used for scheduling."""
        if self._loop is not None:
            return self._loop
        return asyncio.get_running_loop()

    def schedule(self, delay_ms: float, callback: TimerCallback) -> asyncio.Handle:
        if delay_ms <= 0:
            return self.loop.call_soon(callback)
        return self.loop.call_later(delay_ms / 1000.0, callback)

    def cancel(self, handle: asyncio.Handle) -> None:
        handle.cancel()


# =============================================================================
# Virtual clock
# =============================================================================

@dataclass
class VirtualTimer:
    """Handle returned by VirtualScheduler.schedule."""

    due: float
    callback: TimerCallback = field(repr=False)
    cancelled: bool = False
    fired: bool = False

    @property
    def pending(self) -> bool:
        """True if the timer has neither fired nor been cancelled."""
        return not (self.cancelled or self.fired)


class VirtualScheduler(Scheduler):
    """
    Deterministic scheduler driven by a virtual millisecond clock.

    Nothing happens until the clock is advanced. Timers due at the same
    instant fire in the order they were scheduled.

    Example:
        >>> scheduler = VirtualScheduler()
        >>> fired = []
        >>> _ = scheduler.schedule(5, lambda: fired.append(scheduler.now))
        >>> scheduler.run_until_idle()
        1
        >>> fired
        [5.0]
    """

    def __init__(self) -> None:
        self._now = 0.0
        self._counter = itertools.count()
        self._queue: list[tuple[float, int, VirtualTimer]] = []
        self.fired_count = 0

    @property
    def now(self) -> float:
        """Current virtual time in milliseconds."""
        return self._now

    @property
    def pending(self) -> int:
        """Number of timers waiting to fire."""
        return sum(1 for _, _, timer in self._queue if timer.pending)

    def schedule(self, delay_ms: float, callback: TimerCallback) -> VirtualTimer:
        timer = VirtualTimer(due=self._now + max(delay_ms, 0), callback=callback)
        heapq.heappush(self._queue, (timer.due, next(self._counter), timer))
        return timer

    def cancel(self, handle: VirtualTimer) -> None:
        if handle.pending:
            handle.cancelled = True

    def _fire_next(self, limit: Optional[float]) -> bool:
        """Fire the earliest pending timer due at or before ``limit``."""
        while self._queue:
            due, _, timer = self._queue[0]
            if limit is not None and due > limit:
                return False
            heapq.heappop(self._queue)
            if not timer.pending:
                continue
            self._now = max(self._now, due)
            timer.fired = True
            self.fired_count += 1
            timer.callback()
            return True
        return False

    def advance(self, delay_ms: float) -> int:
        """
        Move the clock forward by ``delay_ms``, firing every timer due.

        Returns:
            Number of timers fired.
        """
        limit = self._now + delay_ms
        count = 0
        while self._fire_next(limit):
            count += 1
        self._now = limit
        return count

    def run_until_idle(self, max_timers: int = 1_000_000) -> int:
        """
        Fire timers until none are left.

        Args:
            max_timers: Safety limit against self-rescheduling loops.

        Returns:
            Number of timers fired.

        Raises:
            RuntimeError: If max_timers is exceeded.
        """
        count = 0
        while self._fire_next(None):
            count += 1
            if count >= max_timers:
                raise RuntimeError(
                    f"Scheduler still busy after {max_timers} timers"
                )
        logger.debug("Scheduler idle at t=%.1fms after %d timers", self._now, count)
        return count
