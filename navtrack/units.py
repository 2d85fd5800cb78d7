"""Unit conversions and display formatting for navigation values.

All functions here are pure. Internal values are always SI: meters per
second for speed, meters for distance, seconds for durations, and degrees
clockwise from north for headings. Conversions to display units happen only
at the edge, when a value is about to be shown.
"""

from datetime import datetime, timezone
from enum import Enum

__all__ = [
    "DistanceUnit",
    "SpeedUnit",
    "cardinal_direction",
    "format_clock_time",
    "format_decimal",
    "format_distance",
    "format_duration",
    "format_heading",
    "format_iso8601",
    "format_speed",
    "normalize_heading",
]

# --- conversion factors -------------------------------------------------------

_MPS_TO_KNOTS = 1.94384
_MPS_TO_MPH = 2.23694
_MPS_TO_KPH = 3.6

_METERS_PER_NAUTICAL_MILE = 1852.0
_METERS_PER_MILE = 1609.344
_METERS_PER_KILOMETER = 1000.0

# 16-point compass rose, clockwise from north
_CARDINAL_POINTS = (
    "N", "NNE", "NE", "ENE", "E", "ESE", "SE", "SSE",
    "S", "SSW", "SW", "WSW", "W", "WNW", "NW", "NNW",
)
_CARDINAL_SECTOR = 360.0 / len(_CARDINAL_POINTS)


class DistanceUnit(Enum):
    """Distance unit paired with a speed unit for display."""

    NAUTICAL_MILES = "nm"
    MILES = "mi"
    KILOMETERS = "km"

    @property
    def abbreviation(self) -> str:
        return self.value

    @property
    def display_name(self) -> str:
        return {
            DistanceUnit.NAUTICAL_MILES: "Nautical Miles",
            DistanceUnit.MILES: "Miles",
            DistanceUnit.KILOMETERS: "Kilometers",
        }[self]

    def convert(self, meters: float) -> float:
        """Convert a distance in meters to this unit."""
        divisor = {
            DistanceUnit.NAUTICAL_MILES: _METERS_PER_NAUTICAL_MILE,
            DistanceUnit.MILES: _METERS_PER_MILE,
            DistanceUnit.KILOMETERS: _METERS_PER_KILOMETER,
        }[self]
        return meters / divisor


class SpeedUnit(Enum):
    """User-selectable speed unit.

    Each speed unit implies a matching distance unit so that speed and
    distance read consistently (knots with nautical miles, mph with miles,
    kph with kilometers).

    Example:
        >>> SpeedUnit.KNOTS.convert(1.0)
        1.94384
        >>> SpeedUnit.KPH.distance_label
        'km'
    """

    KNOTS = "speed: kts"
    MPH = "speed: mph"
    KPH = "speed: kph"

    @property
    def display_name(self) -> str:
        return {
            SpeedUnit.KNOTS: "Knots",
            SpeedUnit.MPH: "MPH",
            SpeedUnit.KPH: "KPH",
        }[self]

    @property
    def distance_unit(self) -> DistanceUnit:
        return {
            SpeedUnit.KNOTS: DistanceUnit.NAUTICAL_MILES,
            SpeedUnit.MPH: DistanceUnit.MILES,
            SpeedUnit.KPH: DistanceUnit.KILOMETERS,
        }[self]

    @property
    def distance_label(self) -> str:
        return self.distance_unit.abbreviation

    def convert(self, meters_per_second: float) -> float:
        """Convert a speed in m/s to this unit."""
        factor = {
            SpeedUnit.KNOTS: _MPS_TO_KNOTS,
            SpeedUnit.MPH: _MPS_TO_MPH,
            SpeedUnit.KPH: _MPS_TO_KPH,
        }[self]
        return meters_per_second * factor

    def convert_distance(self, meters: float) -> float:
        """Convert a distance in meters to this unit's paired distance unit."""
        return self.distance_unit.convert(meters)


# --- headings -----------------------------------------------------------------


def normalize_heading(degrees: float) -> float:
    """Wrap any angle in degrees into the half-open range [0, 360).

    Example:
        >>> normalize_heading(-90.0)
        270.0
        >>> normalize_heading(720.0)
        0.0
    """
    return degrees % 360.0


def format_heading(degrees: float) -> str:
    """Format a heading as a zero-padded three digit bearing, e.g. ``"090°"``."""
    return f"{normalize_heading(degrees):03.0f}°"


def cardinal_direction(degrees: float) -> str:
    """Return the 16-point compass direction nearest to *degrees*.

    Each point covers a 22.5 degree sector centred on its bearing, so
    ``N`` spans 348.75 to 11.25 degrees.

    Example:
        >>> cardinal_direction(80.0)
        'E'
        >>> cardinal_direction(350.0)
        'N'
    """
    normalized = normalize_heading(degrees)
    index = int((normalized + _CARDINAL_SECTOR / 2.0) / _CARDINAL_SECTOR)
    return _CARDINAL_POINTS[index % len(_CARDINAL_POINTS)]


# --- numeric display ----------------------------------------------------------


def format_speed(speed: float, decimals: int = 1) -> str:
    """Format an already-converted speed; negative values render as ``"---"``."""
    if speed < 0:
        return "---"
    return f"{speed:.{decimals}f}"


def format_distance(distance: float, decimals: int = 2) -> str:
    """Format an already-converted distance; negative values render as ``"---"``."""
    if distance < 0:
        return "---"
    return f"{distance:.{decimals}f}"


def format_duration(seconds: float) -> str:
    """Format an elapsed duration for display.

    Durations under one hour render as ``MM:SS``; longer ones as
    ``H:MM:SS``. Negative durations render as ``"--:--"``.

    Example:
        >>> format_duration(75)
        '01:15'
        >>> format_duration(3725)
        '1:02:05'
    """
    if seconds < 0:
        return "--:--"
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


# --- time of day --------------------------------------------------------------


def format_clock_time(
    moment: datetime,
    use_24_hour: bool = False,
    with_seconds: bool = False,
) -> str:
    """Format a wall-clock time as ``h:mm`` (12-hour) or ``HH:mm`` (24-hour).

    The 12-hour form carries no leading zero and no AM/PM marker.
    """
    if use_24_hour:
        text = f"{moment.hour:02d}:{moment.minute:02d}"
    else:
        hour = moment.hour % 12 or 12
        text = f"{hour}:{moment.minute:02d}"
    if with_seconds:
        text += f":{moment.second:02d}"
    return text


def format_iso8601(moment: datetime) -> str:
    """Format a datetime as UTC ISO-8601 with a ``Z`` suffix.

    Naive datetimes are treated as UTC.

    Example:
        >>> format_iso8601(datetime(2025, 3, 1, 12, 35, 19, tzinfo=timezone.utc))
        '2025-03-01T12:35:19Z'
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    utc = moment.astimezone(timezone.utc)
    return utc.isoformat(timespec="seconds").replace("+00:00", "Z")


def format_decimal(value: float, max_decimals: int = 9) -> str:
    """Format a number as plain decimal text, never in scientific notation.

    Trailing zeros are dropped but at least one fractional digit is kept.

    Example:
        >>> format_decimal(1e-05)
        '0.00001'
        >>> format_decimal(3.0)
        '3.0'
    """
    text = f"{value:.{max_decimals}f}".rstrip("0")
    if text.endswith("."):
        text += "0"
    if text == "-0.0":
        text = "0.0"
    return text
