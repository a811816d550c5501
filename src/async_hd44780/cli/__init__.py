"""
HD44780 Command-Line Interface
==============================

This package provides the ``hd44780`` command-line tool:

- **print**: write text on consecutive rows
- **clear**: clear the display
- **clock**: time and date demo, refreshed once per second
- **config**: show the effective configuration

The tool is a Click-based CLI application. With ``--simulate`` it drives
the bundled controller emulator instead of GPIO lines and echoes the
virtual screen.
"""

__all__ = ["hd44780"]
