"""
Named Step Execution
====================

Every operation on the display is a chain of small steps: set a line, wait
a millisecond, set another line, and so on. This module runs such chains
without blocking and without ever reordering them.

Building Blocks
---------------
- **Step**: a name plus an action. The action receives a ``done`` callable
  and must call it exactly once, with an exception on failure.
- **run_series**: runs steps strictly one after another; the first failure
  skips the rest.
- **run_parallel**: starts independent steps together and joins them.
- **OperationContext**: per-operation state shared by all of its steps:
  the timer currently scheduled (so it can be cancelled) and an aborted
  flag that stops the chain dead.

Completion Convention
---------------------
All completions follow ``done(error=None)``: called with no argument (or
None) on success, with an HD44780Error instance on failure.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

from async_hd44780.errors import HD44780Error, LineError
from async_hd44780.scheduler import Scheduler

# Configure module logger
logger = logging.getLogger(__name__)


Completion = Callable[..., None]
StepAction = Callable[[Completion], None]


@dataclass(frozen=True)
class Step:
    """A named unit of work in a sequence."""

    name: str
    action: StepAction


class OperationContext:
    """
    Runtime state of one in-flight operation.

    Attributes:
        name: Operation name ("initialize", "print_line", ...)
        current_step: Name of the step most recently started
        active_timer: Handle of the scheduled, not yet fired timer step
        aborted: Set by ``abort``; no further step runs afterwards
    """

    def __init__(self, name: str, scheduler: Scheduler):
        self.name = name
        self.scheduler = scheduler
        self.current_step: Optional[str] = None
        self.active_timer: Any = None
        self.aborted = False

    def delay(self, delay_ms: float, then: Callable[[], None]) -> None:
        """
        Call ``then`` after ``delay_ms`` milliseconds.

        The timer handle is kept in ``active_timer`` until it fires. If the
        operation is aborted in the meantime, ``then`` is never called.
        """

        def fire() -> None:
            self.active_timer = None
            if self.aborted:
                return
            then()

        self.active_timer = self.scheduler.schedule(delay_ms, fire)

    def abort(self) -> None:
        """Stop the operation and cancel its pending timer."""
        self.aborted = True
        if self.active_timer is not None:
            self.scheduler.cancel(self.active_timer)
            self.active_timer = None
        logger.debug("Operation '%s' aborted at step %s", self.name, self.current_step)

    def __repr__(self) -> str:
        return (
            f"OperationContext(name={self.name!r}, step={self.current_step!r}, "
            f"aborted={self.aborted})"
        )


def _annotate(error: BaseException, step: str) -> None:
    """Record the innermost failing step on line errors."""
    if isinstance(error, LineError) and error.step is None:
        error.step = step


def run_series(ctx: OperationContext, steps: Sequence[Step], callback: Completion) -> None:
    """
    Run ``steps`` strictly in order, then call ``callback``.

    A step only starts once the previous one has called its ``done``. The
    first error skips all remaining steps and is passed to ``callback``.
    Nothing runs (and ``callback`` is not called) once ``ctx`` is aborted.
    """
    pending = iter(steps)
    finished = False

    def advance(error: Optional[BaseException] = None) -> None:
        nonlocal finished
        if finished or ctx.aborted:
            return
        if error is not None:
            finished = True
            callback(error)
            return

        step = next(pending, None)
        if step is None:
            finished = True
            callback(None)
            return

        ctx.current_step = step.name
        try:
            step.action(lambda error=None: _step_done(step, error))
        except HD44780Error as e:
            _step_done(step, e)

    def _step_done(step: Step, error: Optional[BaseException]) -> None:
        if error is not None:
            _annotate(error, step.name)
            logger.debug("Step '%s' of '%s' failed: %s", step.name, ctx.name, error)
        advance(error)

    advance()


def run_parallel(ctx: OperationContext, steps: Sequence[Step], callback: Completion) -> None:
    """
    Start all ``steps`` without ordering and join them.

    ``callback`` is called once every step has completed, with the first
    error reported (if any). Every step is attempted even if an earlier
    one failed.
    """
    steps = list(steps)
    remaining = len(steps)
    errors: list[BaseException] = []

    if not steps:
        callback(None)
        return

    def joined(step: Step, error: Optional[BaseException] = None) -> None:
        nonlocal remaining
        if error is not None:
            _annotate(error, step.name)
            errors.append(error)
        remaining -= 1
        if remaining == 0 and not ctx.aborted:
            callback(errors[0] if errors else None)

    for step in steps:
        try:
            step.action(lambda error=None, step=step: joined(step, error))
        except HD44780Error as e:
            joined(step, e)
