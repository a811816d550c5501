"""
Display Session State Machine
=============================

A Session owns one display: its configuration, its lines, and the single
operation allowed to be in flight at any time. It is the only place where
teardown and display operations meet.

Phases
------
    UNINITIALIZED --initialize--> INITIALIZING --lines ok--> OPERATION_IN_FLIGHT
    OPERATION_IN_FLIGHT --done--> READY
    OPERATION_IN_FLIGHT --done, shutdown pending--> FINALIZING
    READY --clear_screen/print_line--> OPERATION_IN_FLIGHT
    READY --finalize--> FINALIZING --lines released--> UNINITIALIZED

Deferred Shutdown
-----------------
``finalize`` never interrupts a byte transfer. If it arrives while an
operation is in flight, the request is recorded in ``pending_shutdown`` and
executed from that operation's completion path. When that happens the
shutdown's callback is invoked and the operation's own callback is not:
shutdown ordering wins over result visibility.

A second ``finalize`` while one is pending is coalesced: its callback is
chained (both callers are notified, once each) and a clear is performed if
either caller asked for one.

Busy Handling
-------------
Operations are never queued. ``clear_screen`` and ``print_line`` fail fast
with DeviceBusyError while another operation or a shutdown is running.

Emergency Teardown
------------------
``abort`` is for signal handlers: it cancels the pending timer of the
in-flight operation, so no line write fires after the lines are released,
and tears the session down immediately.

Threading
---------
Not thread-safe by design: all calls and all scheduler callbacks must run
on one thread (one asyncio loop, typically).
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Union

from async_hd44780.config import DeviceConfiguration
from async_hd44780.errors import (
    DeviceBusyError,
    HD44780Error,
    InvalidConfigurationError,
    LineConfigError,
    LineError,
    LineWriteError,
    NotInitializedError,
    OperationAbortedError,
)
from async_hd44780.lines import Direction, LineDriver
from async_hd44780.scheduler import Scheduler
from async_hd44780.sequencer import CommandSequencer
from async_hd44780.steps import Completion, OperationContext
from async_hd44780.transfer import BusTransfer

# Configure module logger
logger = logging.getLogger(__name__)


SessionCallback = Callable[[Optional[HD44780Error]], None]
ConfigOptions = Union[DeviceConfiguration, Mapping[str, Any], None]


class Phase(Enum):
    """Lifecycle phase of a Session."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    OPERATION_IN_FLIGHT = "operation-in-flight"
    FINALIZING = "finalizing"


class ShutdownKind(Enum):
    """What a finalize request asks for."""

    NORMAL = "normal"
    CLEAR_AND_SHUTDOWN = "clear-and-shutdown"

    @classmethod
    def for_request(cls, clear_screen_first: bool) -> "ShutdownKind":
        return cls.CLEAR_AND_SHUTDOWN if clear_screen_first else cls.NORMAL


@dataclass
class PendingShutdown:
    """
    A finalize request waiting for the in-flight operation to complete.

    Attributes:
        kind: Requested shutdown kind
        callbacks: Callbacks of every finalize caller, in arrival order
    """

    kind: ShutdownKind
    callbacks: list[Optional[SessionCallback]] = field(default_factory=list)

    def merge(self, kind: ShutdownKind, callback: Optional[SessionCallback]) -> None:
        """Coalesce another finalize request into this one."""
        if kind is ShutdownKind.CLEAR_AND_SHUTDOWN:
            self.kind = kind
        self.callbacks.append(callback)


def _notify(callback: Optional[SessionCallback], error: Optional[HD44780Error]) -> None:
    if callback is not None:
        callback(error)


class Session:
    """
    Non-blocking control of one HD44780 display.

    Every public operation returns immediately and reports its outcome by
    calling ``callback(error)`` with ``error=None`` on success. Display and
    line errors are never raised from these methods; they are delivered to
    the callback. Arguments of the wrong type (a non-str message, a line
    that is not an integer) raise TypeError or ValueError immediately.

    Args:
        driver: Line driver owning the display's lines
        scheduler: Scheduler used for every timed step

    Usage:
        session = Session(LgpioLineDriver(), AsyncioScheduler())

        def printed(error):
            if error:
                print(f"print failed: {error}")

        def ready(error):
            if error is None:
                session.print_line("Hello World!", 0, printed)

        session.initialize({"columns": 20, "rows": 4}, ready)
    """

    def __init__(self, driver: LineDriver, scheduler: Scheduler):
        self.driver = driver
        self.scheduler = scheduler
        self._phase = Phase.UNINITIALIZED
        self._configuration: Optional[DeviceConfiguration] = None
        self._sequencer: Optional[CommandSequencer] = None
        self._operation: Optional[OperationContext] = None
        self._operation_callback: Optional[SessionCallback] = None
        self._pending_shutdown: Optional[PendingShutdown] = None
        self._shutdown_callbacks: list[Optional[SessionCallback]] = []

    # -------------------------------------------------------------------------
    # State inspection
    # -------------------------------------------------------------------------

    @property
    def phase(self) -> Phase:
        """Current lifecycle phase."""
        return self._phase

    @property
    def configuration(self) -> Optional[DeviceConfiguration]:
        """Active configuration, None while uninitialized."""
        return self._configuration

    @property
    def is_ready(self) -> bool:
        """True if a display operation would be accepted right now."""
        return self._phase is Phase.READY

    @property
    def in_flight_operation(self) -> Optional[str]:
        """Name of the operation (or shutdown clear) currently running."""
        return self._operation.name if self._operation is not None else None

    @property
    def pending_shutdown(self) -> Optional[PendingShutdown]:
        """Deferred finalize request, if any."""
        return self._pending_shutdown

    @property
    def active_timer_handle(self) -> Any:
        """Handle of the scheduled, not yet fired step of the running operation."""
        if self._operation is None:
            return None
        return self._operation.active_timer

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    def initialize(
        self,
        config: ConfigOptions = None,
        callback: Optional[SessionCallback] = None,
    ) -> None:
        """
        Configure the lines and run the controller's initialization sequence.

        Calling this on a session that is already initialized (or still
        initializing) succeeds immediately without touching the lines.

        Args:
            config: DeviceConfiguration, or a mapping merged over the
                    defaults, or None for the default wiring
            callback: Completion; receives InvalidConfigurationError,
                      LineConfigError or LineWriteError on failure
        """
        if self._phase is Phase.FINALIZING:
            _notify(callback, DeviceBusyError("initialize"))
            return
        if self._phase is not Phase.UNINITIALIZED:
            logger.debug("LCD already initialized (ignored)")
            _notify(callback, None)
            return

        try:
            configuration = DeviceConfiguration.from_options(config)
        except InvalidConfigurationError as e:
            logger.debug("initialize failed: %s", e)
            _notify(callback, e)
            return

        self._phase = Phase.INITIALIZING
        self._configuration = configuration
        logger.debug("Setting up lines using config: %s", configuration)

        try:
            self._configure_lines(configuration)
        except LineError as e:
            logger.warning("Line setup failed: %s", e)
            self._release_lines()
            self._reset_state()
            _notify(callback, e)
            return

        transfer = BusTransfer(self.driver, configuration)
        self._sequencer = CommandSequencer(transfer, configuration)
        self._start("initialize", callback, self._sequencer.reset)

    def clear_screen(self, callback: Optional[SessionCallback] = None) -> None:
        """
        Clear the display.

        Fails immediately with NotInitializedError unless the session is
        READY (DeviceBusyError while another operation is running).

        Raises:
            TypeError: If ``message`` is not a str
            ValueError: If ``line`` cannot be converted to an int
        """
        if not self._accepts("clear_screen", callback):
            return
        self._start("clear_screen", callback, self._sequencer.clear_screen)

    def print_line(
        self,
        message: str,
        line: int = 0,
        callback: Optional[SessionCallback] = None,
    ) -> None:
        """
        Print ``message`` on row ``line`` (zero-based).

        ``line`` wraps modulo the number of rows; messages longer than the
        display are truncated with a logged warning, never an error.

        Fails immediately with NotInitializedError unless the session is
        READY (DeviceBusyError while another operation is running).
        """
        if not isinstance(message, str):
            raise TypeError(f"message must be str, got {type(message).__name__}")
        line = int(line)

        if not self._accepts("print_line", callback):
            return
        sequencer = self._sequencer
        self._start(
            "print_line",
            callback,
            lambda ctx, done: sequencer.print_line(ctx, message, line, done),
        )

    def finalize(
        self,
        clear_screen_first: bool = False,
        callback: Optional[SessionCallback] = None,
    ) -> None:
        """
        Shut the display down and release its lines.

        - Uninitialized: succeeds immediately.
        - Ready: optionally clears, then releases the lines.
        - Operation in flight: deferred until the operation completes; the
          operation's own callback is then never invoked.
        - Already finalizing: ``callback`` is chained to the running shutdown.

        After finalize the session can be initialized again.
        """
        kind = ShutdownKind.for_request(clear_screen_first)

        if self._phase is Phase.UNINITIALIZED:
            logger.debug("LCD not initialized, nothing to finalize")
            _notify(callback, None)
            return

        if self._phase is Phase.FINALIZING:
            logger.debug("Shutdown already running, chaining finalize callback")
            self._shutdown_callbacks.append(callback)
            return

        if self._phase in (Phase.OPERATION_IN_FLIGHT, Phase.INITIALIZING):
            if self._pending_shutdown is None:
                self._pending_shutdown = PendingShutdown(kind, [callback])
            else:
                self._pending_shutdown.merge(kind, callback)
            logger.info(
                "Finalize (%s) deferred until '%s' completes",
                self._pending_shutdown.kind.value,
                self.in_flight_operation or "initialize",
            )
            return

        self._shutdown(kind, [callback])

    def abort(self) -> None:
        """
        Tear the session down immediately.

        Cancels the pending timer of the running operation so that none of
        its remaining steps fires, then releases the lines. Callbacks of a
        requested or running shutdown are invoked with None; otherwise the
        running operation's callback receives OperationAbortedError.
        """
        if self._phase is Phase.UNINITIALIZED:
            return

        operation = self._operation
        operation_callback = self._operation_callback
        shutdown_requested = (
            self._pending_shutdown is not None or self._phase is Phase.FINALIZING
        )
        shutdown_callbacks = list(self._shutdown_callbacks)
        if self._pending_shutdown is not None:
            shutdown_callbacks.extend(self._pending_shutdown.callbacks)

        if operation is not None:
            operation.abort()

        self._release_lines()
        self._reset_state()
        logger.info("LCD session aborted")

        if shutdown_requested:
            for shutdown_callback in shutdown_callbacks:
                _notify(shutdown_callback, None)
        elif operation is not None:
            _notify(operation_callback, OperationAbortedError(operation.name))

    # -------------------------------------------------------------------------
    # Operation lifecycle
    # -------------------------------------------------------------------------

    def _accepts(self, requested: str, callback: Optional[SessionCallback]) -> bool:
        """Check that a display operation may start now, failing it if not."""
        if self._phase is Phase.READY:
            return True

        if self._phase in (Phase.OPERATION_IN_FLIGHT, Phase.INITIALIZING):
            error: HD44780Error = DeviceBusyError(
                requested, self.in_flight_operation or "initialize"
            )
        elif self._phase is Phase.FINALIZING:
            error = DeviceBusyError(requested)
        else:
            error = NotInitializedError("LCD not initialized")

        logger.debug("%s failed: %s", requested, error)
        _notify(callback, error)
        return False

    def _start(
        self,
        name: str,
        callback: Optional[SessionCallback],
        body: Callable[[OperationContext, Completion], None],
    ) -> None:
        """Mark ``name`` in flight and run ``body`` on a fresh context."""
        operation = OperationContext(name, self.scheduler)
        self._operation = operation
        self._operation_callback = callback
        self._phase = Phase.OPERATION_IN_FLIGHT
        body(operation, lambda error=None: self._completed(operation, error))

    def _completed(self, operation: OperationContext, error: Optional[HD44780Error]) -> None:
        """Resolve an operation: deferred shutdown first, then the caller."""
        if operation is not self._operation or operation.aborted:
            return

        callback = self._operation_callback
        pending = self._pending_shutdown
        self._operation = None
        self._operation_callback = None
        self._pending_shutdown = None

        failed_init = error is not None and operation.name == "initialize"

        if pending is not None:
            if error is not None:
                logger.warning(
                    "'%s' failed before deferred shutdown: %s", operation.name, error
                )
            logger.info(
                "'%s' completed, running deferred %s shutdown",
                operation.name, pending.kind.value,
            )
            self._shutdown(pending.kind, pending.callbacks, clear_allowed=not failed_init)
            return

        if failed_init:
            logger.warning("LCD initialization failed: %s", error)
            self._release_lines()
            self._reset_state()
        else:
            self._phase = Phase.READY
            if operation.name == "initialize":
                logger.info("LCD initialization completed successfully")
            elif error is not None:
                logger.debug("'%s' failed: %s", operation.name, error)

        _notify(callback, error)

    # -------------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------------

    def _shutdown(
        self,
        kind: ShutdownKind,
        callbacks: list[Optional[SessionCallback]],
        clear_allowed: bool = True,
    ) -> None:
        """Enter FINALIZING, clear if requested, then release the lines."""
        self._phase = Phase.FINALIZING
        self._shutdown_callbacks = list(callbacks)
        logger.debug("Finalizing GPIO subsystem...")

        if kind is ShutdownKind.CLEAR_AND_SHUTDOWN and clear_allowed:
            operation = OperationContext("finalize", self.scheduler)
            self._operation = operation
            self._sequencer.clear_screen(
                operation, lambda error=None: self._cleared(operation, error)
            )
        else:
            self._finish_shutdown(None)

    def _cleared(self, operation: OperationContext, error: Optional[HD44780Error]) -> None:
        if operation is not self._operation or operation.aborted:
            return
        self._operation = None
        if error is not None:
            logger.warning("Clear before shutdown failed: %s", error)
        self._finish_shutdown(error)

    def _finish_shutdown(self, error: Optional[HD44780Error]) -> None:
        release_error = self._release_lines()
        callbacks = self._shutdown_callbacks
        self._reset_state()
        logger.info("LCD finalized")
        for callback in callbacks:
            _notify(callback, error or release_error)

    # -------------------------------------------------------------------------
    # Line management
    # -------------------------------------------------------------------------

    def _configure_lines(self, configuration: DeviceConfiguration) -> None:
        """Claim every output line and switch the backlight on."""
        for line in configuration.output_lines:
            self.driver.configure(line, Direction.OUTPUT)
        if configuration.has_backlight:
            self.driver.set_level(configuration.line_backlight, True)

    def _release_lines(self) -> Optional[LineConfigError]:
        """Switch the backlight off and release all lines."""
        configuration = self._configuration
        if configuration is not None and configuration.has_backlight:
            try:
                self.driver.set_level(configuration.line_backlight, False)
            except LineWriteError as e:
                logger.warning("Cannot switch backlight off: %s", e)
        try:
            self.driver.release_all()
        except LineConfigError as e:
            logger.warning("Releasing lines failed: %s", e)
            return e
        return None

    def _reset_state(self) -> None:
        self._phase = Phase.UNINITIALIZED
        self._configuration = None
        self._sequencer = None
        self._operation = None
        self._operation_callback = None
        self._pending_shutdown = None
        self._shutdown_callbacks = []

    def __repr__(self) -> str:
        return (
            f"Session(phase={self._phase.value}, "
            f"operation={self.in_flight_operation!r}, "
            f"pending_shutdown={self._pending_shutdown is not None})"
        )
