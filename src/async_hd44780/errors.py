"""
HD44780 Driver Error Hierarchy
==============================

This module defines the exception hierarchy for the whole driver.
All exceptions inherit from HD44780Error, allowing callers to catch all
driver-related errors with a single except clause if desired.

Exception Hierarchy
-------------------
HD44780Error (base)
├── InvalidConfigurationError - bad geometry or configuration file
├── NotInitializedError - operation attempted outside the READY phase
│   └── DeviceBusyError - another operation or a shutdown is running
├── OperationAbortedError - in-flight operation torn down by abort()
├── ShutdownSupersededError - result replaced by a deferred shutdown
└── LineError (line driver collaborator failures)
    ├── LineWriteError - setting a line level failed
    └── LineConfigError - configuring or releasing a line failed

Delivery
--------
The session never raises these from its public operations: every error is
delivered to the completion callback of the operation that caused it. The
asyncio facade (``async_hd44780.aio``) turns them back into exceptions
raised from the awaited call.
"""

from typing import Optional


# =============================================================================
# Base Exception Class
# =============================================================================

class HD44780Error(Exception):
    """
    Base exception for all driver errors.

    All exceptions in the package inherit from this class, allowing callers
    to catch everything with a single except clause:

        try:
            await display.print_line("Hello", 0)
        except HD44780Error as e:
            print(f"Error: {e}")
    """
    pass


# =============================================================================
# Session Exceptions
# =============================================================================

class InvalidConfigurationError(HD44780Error):
    """
    The device configuration cannot be used.

    Raised when:
    - rows exceeds the number of row base addresses (4)
    - rows or columns is not a positive integer
    - a configuration file cannot be read or has the wrong shape
    """
    pass


class NotInitializedError(HD44780Error):
    """
    An operation was requested while the session is not READY.

    Display operations (clear, print) are only accepted once ``initialize``
    has completed and no other operation is running.
    """
    pass


class DeviceBusyError(NotInitializedError):
    """
    The session is busy with another operation or with a shutdown.

    Operations are never queued: a request that arrives while another
    operation is in flight fails fast with this error. Only ``finalize`` is
    deferred instead of rejected.
    """

    def __init__(self, requested: str, running: Optional[str] = None):
        self.requested = requested
        self.running = running
        if running:
            message = f"cannot {requested}: '{running}' is in flight"
        else:
            message = f"cannot {requested}: display is shutting down"
        super().__init__(message)


class OperationAbortedError(HD44780Error):
    """
    The in-flight operation was torn down by ``Session.abort()``.

    Only reported when no shutdown was requested for the operation; a
    pending finalize takes precedence and receives the completion instead.
    """

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"operation '{operation}' aborted")


class ShutdownSupersededError(HD44780Error):
    """
    The awaited operation completed, but a deferred shutdown consumed its
    completion.

    Raised by the asyncio facade only; the callback API simply never invokes
    the superseded operation's callback.
    """

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(
            f"result of '{operation}' superseded by a deferred shutdown"
        )


# =============================================================================
# Line Driver Exceptions
# =============================================================================

class LineError(HD44780Error):
    """
    Base exception for line driver failures.

    Attributes:
        line: Identifier of the line involved (if known)
        step: Name of the sequencer step that was running (filled in by the
              step runner when the error crosses a step boundary)
    """

    def __init__(self, message: str, line: Optional[int] = None,
                 step: Optional[str] = None):
        self.message = message
        self.line = line
        self.step = step
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.line is not None:
            parts.append(f"line={self.line}")
        if self.step:
            parts.append(f"step={self.step}")
        if len(parts) == 1:
            return self.message
        return f"{parts[0]} ({', '.join(parts[1:])})"


class LineWriteError(LineError):
    """
    Setting the level of an output line failed.

    A byte transfer that hits this error is aborted immediately; the session
    is left READY so the whole operation can be retried.
    """
    pass


class LineConfigError(LineError):
    """
    Configuring or releasing an output line failed.

    Raised when:
    - the GPIO chip cannot be opened
    - a line cannot be claimed as output (already in use, bad number)
    - releasing the claimed lines fails during finalize
    """
    pass
