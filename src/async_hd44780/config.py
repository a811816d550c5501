"""
Device Configuration
====================

Pin assignment and geometry of the attached display.

Default Wiring
--------------
The defaults match the classic Raspberry Pi wiring (BCM numbering):

    Pin   LCD  DESCRIPTION             REMARKS
    ---------------------------------------------------------
     6     1   VSS (GND)
     2     2   VDD (5V)
           3   Contrast (0-5V)
    13     4   RS (Register Select)    GPIO 27
     6     5   R/W (Read Write)        GROUND THIS PIN
    15     6   Enable or Clock         GPIO 22
           7   Data Bit 0              NOT USED
           8   Data Bit 1              NOT USED
           9   Data Bit 2              NOT USED
          10   Data Bit 3              NOT USED
    22    11   Data Bit 4              GPIO 25
    18    12   Data Bit 5              GPIO 24
    16    13   Data Bit 6              GPIO 23
    12    14   Data Bit 7              GPIO 18
     2    15   LCD Backlight +5V       GPIO 15 (only for models with backlight)
     6    16   LCD Backlight GND

The four data lines of the 4-bit interface are called ``line_data0`` to
``line_data3`` here; they are wired to the controller's D4..D7 pins.

Configuration Sources
---------------------
- A mapping passed to ``Session.initialize`` (merged over the defaults)
- A ``[display]`` table in a TOML file (``DeviceConfiguration.from_toml``)

Both accept the field names below as well as the short aliases
``pin_rs``, ``pin_e``, ``pin_d4``..``pin_d7``, ``pin_bl`` and ``cols``.
"""

import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Final, Mapping, Optional, Union

import tomllib

from async_hd44780.errors import InvalidConfigurationError
from async_hd44780.protocol import MAX_ROWS

# Configure module logger
logger = logging.getLogger(__name__)


# Short option names accepted for compatibility with older configurations
OPTION_ALIASES: Final[dict[str, str]] = {
    "pin_rs": "line_register_select",
    "pin_e": "line_enable",
    "pin_d4": "line_data0",
    "pin_d5": "line_data1",
    "pin_d6": "line_data2",
    "pin_d7": "line_data3",
    "pin_bl": "line_backlight",
    "cols": "columns",
}

# Name of the TOML table holding the display options
TOML_SECTION: Final[str] = "display"


@dataclass(frozen=True)
class DeviceConfiguration:
    """
    Immutable description of one display.

    Attributes:
        line_register_select: Line wired to RS
        line_enable: Line wired to E
        line_data0: Line wired to D4
        line_data1: Line wired to D5
        line_data2: Line wired to D6
        line_data3: Line wired to D7
        line_backlight: Line switching the backlight, or None/0 for none
        columns: Characters per row
        rows: Number of rows (1 to 4)
    """

    line_register_select: int = 27
    line_enable: int = 22
    line_data0: int = 25
    line_data1: int = 24
    line_data2: int = 23
    line_data3: int = 18
    line_backlight: Optional[int] = 15
    columns: int = 16
    rows: int = 2

    def __post_init__(self) -> None:
        """Validate geometry after initialization."""
        if self.rows > MAX_ROWS:
            raise InvalidConfigurationError(
                f"Invalid row count {self.rows}: controller supports up to "
                f"{MAX_ROWS} rows"
            )
        if self.rows < 1:
            raise InvalidConfigurationError(
                f"Invalid row count {self.rows}: must be at least 1"
            )
        if self.columns < 1:
            raise InvalidConfigurationError(
                f"Invalid column count {self.columns}: must be at least 1"
            )

    @property
    def data_lines(self) -> tuple[int, int, int, int]:
        """Data lines in bit order (bit 0 of a nibble first)."""
        return (self.line_data0, self.line_data1, self.line_data2, self.line_data3)

    @property
    def has_backlight(self) -> bool:
        """True if a backlight control line is configured."""
        return bool(self.line_backlight)

    @property
    def output_lines(self) -> tuple[int, ...]:
        """Every line that must be configured as an output."""
        lines = (self.line_enable, self.line_register_select) + self.data_lines
        if self.has_backlight:
            lines += (self.line_backlight,)
        return lines

    def to_dict(self) -> dict[str, Any]:
        """Return the configuration as a plain dictionary."""
        return asdict(self)

    # -------------------------------------------------------------------------
    # Construction helpers
    # -------------------------------------------------------------------------

    @classmethod
    def from_options(
        cls,
        options: Union["DeviceConfiguration", Mapping[str, Any], None] = None,
    ) -> "DeviceConfiguration":
        """
        Build a configuration by merging ``options`` over the defaults.

        Every field not present in ``options`` takes its default value. A
        supplied value whose type does not match the field is ignored (with
        a log message) and the default is used instead, so a half-correct
        configuration still yields a working display.

        Args:
            options: Mapping of field names (or aliases) to values, an
                     existing DeviceConfiguration, or None for the defaults.

        Returns:
            New DeviceConfiguration.

        Raises:
            InvalidConfigurationError: If the merged geometry is invalid.
        """
        if options is None:
            logger.debug("Configuration not provided, using defaults")
            return cls()

        if isinstance(options, DeviceConfiguration):
            return options

        if not isinstance(options, Mapping):
            logger.debug("Invalid configuration: not a mapping, using defaults")
            return cls()

        defaults = cls()
        known = {f.name for f in fields(cls)}
        merged: dict[str, Any] = {}

        for key, value in options.items():
            name = OPTION_ALIASES.get(key, key)
            if name not in known:
                logger.debug("Ignoring unknown configuration option '%s'", key)
                continue
            if not _valid_option(name, value, getattr(defaults, name)):
                logger.debug(
                    "Invalid type for option '%s', using default value", key
                )
                continue
            merged[name] = value

        if merged.get("line_backlight", None) == 0:
            merged["line_backlight"] = None

        return cls(**merged)

    @classmethod
    def from_toml(cls, path: Union[str, Path]) -> "DeviceConfiguration":
        """
        Load a configuration from the ``[display]`` table of a TOML file.

        Example file:

            [display]
            pin_rs = 7
            pin_e = 8
            columns = 20
            rows = 4

        Raises:
            InvalidConfigurationError: If the file cannot be read or parsed,
                or the resulting geometry is invalid.
        """
        config_path = Path(path)
        try:
            with config_path.open("rb") as stream:
                raw_data = tomllib.load(stream)
        except OSError as e:
            raise InvalidConfigurationError(
                f"Cannot read configuration file {config_path}: {e}"
            ) from e
        except tomllib.TOMLDecodeError as e:
            raise InvalidConfigurationError(
                f"Invalid TOML in {config_path}: {e}"
            ) from e

        section = raw_data.get(TOML_SECTION, {})
        if not isinstance(section, dict):
            raise InvalidConfigurationError(
                f"[{TOML_SECTION}] in {config_path} must be a table"
            )

        logger.debug("Loaded configuration from %s: %s", config_path, section)
        return cls.from_options(section)


def _valid_option(name: str, value: Any, default: Any) -> bool:
    """Return True if ``value`` has an acceptable type for option ``name``."""
    if isinstance(value, bool):
        return False
    if name == "line_backlight":
        return value is None or isinstance(value, int)
    return isinstance(value, type(default))
