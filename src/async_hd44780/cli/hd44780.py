"""
hd44780 - Character LCD Command-Line Interface
===============================================

This module implements the command-line interface for driving an
HD44780-class character display wired to GPIO lines (4-bit mode).

Usage Examples
--------------
Print two lines:
    $ hd44780 print "Hello World!" "================"

Clear the display:
    $ hd44780 clear

Run the clock demo until Ctrl-C:
    $ hd44780 clock

Try everything without hardware:
    $ hd44780 --simulate print "Hello World!"

Configuration
-------------
Line assignment and geometry come from the ``[display]`` table of a TOML
file given with ``--config``, or from the built-in defaults:

    [display]
    pin_rs = 27
    pin_e = 22
    pin_d4 = 25
    pin_d5 = 24
    pin_d6 = 23
    pin_d7 = 18
    pin_bl = 15
    columns = 16
    rows = 2

Exit Codes
----------
0 - Success
1 - Device or line error
2 - Invalid arguments or configuration error
3 - Internal error
"""

import asyncio
import logging
import signal
from datetime import datetime
from typing import Awaitable, Callable, Optional

import click

from async_hd44780 import __version__
from async_hd44780.aio import AsyncDisplay
from async_hd44780.cli.errors import handle_cli_exception
from async_hd44780.config import DeviceConfiguration
from async_hd44780.emulator import EmulatedLineDriver
from async_hd44780.errors import ShutdownSupersededError
from async_hd44780.lines import LgpioLineDriver, LineDriver

# Configure logging
logger = logging.getLogger(__name__)


# =============================================================================
# CLI Context and Utilities
# =============================================================================

class Context:
    """
    Shared context for CLI commands.

    Stores common options like the configuration file, GPIO chip and
    verbosity.
    """

    def __init__(self) -> None:
        self.config_path: Optional[str] = None
        self.chip: int = 0
        self.simulate: bool = False
        self.verbose: bool = False

    def setup_logging(self) -> None:
        """Configure logging based on verbosity."""
        level = logging.DEBUG if self.verbose else logging.WARNING
        logging.basicConfig(
            level=level,
            format="%(levelname)s: %(message)s" if self.verbose else "%(message)s",
        )

    def load_configuration(self) -> DeviceConfiguration:
        """Configuration from --config, or the defaults."""
        if self.config_path:
            return DeviceConfiguration.from_toml(self.config_path)
        return DeviceConfiguration()

    def create_driver(self, configuration: DeviceConfiguration) -> LineDriver:
        if self.simulate:
            return EmulatedLineDriver(configuration)
        return LgpioLineDriver(self.chip)


pass_context = click.make_pass_decorator(Context, ensure=True)


def echo_screen(driver: LineDriver) -> None:
    """Print the emulated screen when running with --simulate."""
    if isinstance(driver, EmulatedLineDriver):
        click.echo(driver.emulator.render())


def run_display(
    ctx: Context,
    action: Callable[[AsyncDisplay, DeviceConfiguration], Awaitable[None]],
    clear_on_exit: bool = False,
) -> LineDriver:
    """
    Initialize the display, run ``action``, and finalize.

    Errors are reported through handle_cli_exception, which exits.

    Returns:
        The line driver used (for echoing the emulated screen).
    """

    async def body(driver: LineDriver, configuration: DeviceConfiguration) -> None:
        display = AsyncDisplay(driver, configuration)
        await display.initialize(configuration)
        try:
            await action(display, configuration)
        finally:
            await display.finalize(clear_screen_first=clear_on_exit)

    try:
        configuration = ctx.load_configuration()
        driver = ctx.create_driver(configuration)
        asyncio.run(body(driver, configuration))
    except Exception as e:
        handle_cli_exception(e, ctx.verbose, "Display")
    return driver


# =============================================================================
# Main CLI Group
# =============================================================================

@click.group()
@click.option(
    "-c", "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="TOML file with a [display] table",
)
@click.option(
    "--chip",
    type=click.IntRange(min=0),
    default=0,
    help="GPIO chip number (default: 0)",
)
@click.option(
    "--simulate",
    is_flag=True,
    help="Drive the built-in controller emulator instead of GPIO lines",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Enable verbose output",
)
@click.version_option(version=__version__, prog_name="hd44780")
@pass_context
def main(
    ctx: Context,
    config_path: Optional[str],
    chip: int,
    simulate: bool,
    verbose: bool,
) -> None:
    """
    Drive an HD44780 character LCD over GPIO lines (4-bit mode).

    Every command initializes the display, does its work and releases
    the GPIO lines again before exiting.
    """
    ctx.config_path = config_path
    ctx.chip = chip
    ctx.simulate = simulate
    ctx.verbose = verbose
    ctx.setup_logging()


# =============================================================================
# Print Command
# =============================================================================

@main.command("print")
@click.argument("text", nargs=-1, required=True)
@click.option(
    "--clear",
    is_flag=True,
    help="Clear the display before printing",
)
@pass_context
def print_text(ctx: Context, text: tuple[str, ...], clear: bool) -> None:
    """
    Print each TEXT on consecutive rows, starting at row 0.

    Texts longer than the display are truncated. Extra texts wrap around
    to the first row.

    Example:
        hd44780 print "Hello World!" "================"
        hd44780 print --clear "Ready"
    """

    async def action(display: AsyncDisplay, configuration: DeviceConfiguration) -> None:
        if clear:
            await display.clear_screen()
        for row, message in enumerate(text):
            await display.print_line(message, row)

    driver = run_display(ctx, action)
    echo_screen(driver)


# =============================================================================
# Clear Command
# =============================================================================

@main.command()
@pass_context
def clear(ctx: Context) -> None:
    """
    Clear the display.

    Example:
        hd44780 clear
    """

    async def action(display: AsyncDisplay, configuration: DeviceConfiguration) -> None:
        await display.clear_screen()

    driver = run_display(ctx, action)
    echo_screen(driver)


# =============================================================================
# Clock Command
# =============================================================================

@main.command()
@click.option(
    "--interval-ms",
    type=click.IntRange(min=100),
    default=1000,
    help="Refresh interval in milliseconds (default: 1000)",
)
@click.option(
    "--count",
    type=click.IntRange(min=0),
    default=0,
    help="Stop after N refreshes (default: run until interrupted)",
)
@pass_context
def clock(ctx: Context, interval_ms: int, count: int) -> None:
    """
    Show the time on row 0 and the date on row 1.

    Runs until interrupted. On SIGINT or SIGTERM the display is cleared
    and the GPIO lines released before exiting with status 0; a refresh
    in progress is completed first, never cut in half.

    Example:
        hd44780 clock
        hd44780 --simulate clock --count 3
    """
    try:
        configuration = ctx.load_configuration()
        driver = ctx.create_driver(configuration)
        asyncio.run(run_clock(
            AsyncDisplay(driver, configuration), configuration, interval_ms, count,
            on_refresh=lambda: echo_screen(driver),
        ))
    except Exception as e:
        handle_cli_exception(e, ctx.verbose, "Display")


async def run_clock(
    display: AsyncDisplay,
    configuration: DeviceConfiguration,
    interval_ms: int,
    count: int = 0,
    on_refresh: Optional[Callable[[], None]] = None,
) -> int:
    """
    Clock loop of the ``clock`` command.

    A termination signal requests ``finalize(clear_screen_first=True)``
    right away: if a refresh is being printed, the shutdown is deferred
    until that print completes and the loop ends.

    Returns:
        Number of completed refreshes.
    """
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    shutdown: Optional[asyncio.Future] = None

    def request_shutdown() -> None:
        nonlocal shutdown
        if shutdown is None:
            logger.info("Signal received, shutting down")
            shutdown = asyncio.ensure_future(display.finalize(clear_screen_first=True))
        stop.set()

    signals = (signal.SIGINT, signal.SIGTERM)
    installed = []
    for signum in signals:
        try:
            loop.add_signal_handler(signum, request_shutdown)
        except (NotImplementedError, RuntimeError) as e:
            logger.debug("Cannot install handler for %s: %s", signum, e)
        else:
            installed.append(signum)

    refreshes = 0
    try:
        await display.initialize(configuration)
        while not stop.is_set():
            now = datetime.now()
            await display.print_line(now.strftime("%X"), 0)
            if configuration.rows > 1:
                if stop.is_set():
                    break
                await display.print_line(now.strftime("%x"), 1)

            refreshes += 1
            if on_refresh is not None:
                on_refresh()
            if count and refreshes >= count:
                break

            # Align the next refresh with the interval boundary
            elapsed_ms = (now.microsecond // 1000) % interval_ms
            try:
                await asyncio.wait_for(stop.wait(), (interval_ms - elapsed_ms) / 1000.0)
            except asyncio.TimeoutError:
                pass
    except ShutdownSupersededError:
        logger.debug("Refresh interrupted by shutdown after %d refreshes", refreshes)
    finally:
        for signum in installed:
            loop.remove_signal_handler(signum)
        if shutdown is None:
            await display.finalize(clear_screen_first=True)
        else:
            await shutdown
    return refreshes


# =============================================================================
# Config Command
# =============================================================================

@main.command("config")
@pass_context
def show_config(ctx: Context) -> None:
    """
    Show the effective display configuration.

    Example:
        hd44780 --config lcd.toml config
    """
    try:
        configuration = ctx.load_configuration()
    except Exception as e:
        handle_cli_exception(e, ctx.verbose)

    click.echo("[display]")
    for key, value in configuration.to_dict().items():
        click.echo(f"{key} = {'none' if value is None else value}")


if __name__ == "__main__":
    main()
