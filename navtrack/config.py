"""Tracking configuration and its environment-variable loader.

Configuration is supplied from outside the core; nothing here is persisted.
Every field has a default so ``TrackingConfig()`` is usable as-is.
"""

import math
import os
from collections.abc import Mapping
from dataclasses import dataclass

from navtrack.units import SpeedUnit

__all__ = ["InvalidConfigError", "TrackingConfig", "load_config"]

# --- defaults -----------------------------------------------------------------

DEFAULT_MINIMUM_ACCURACY = 20.0  # meters
DEFAULT_MINIMUM_SPEED_THRESHOLD = 0.3  # m/s, below this a fix is stationary
DEFAULT_GPSD_HOST = "localhost"
DEFAULT_GPSD_PORT = 2947

_ENV_PREFIX = "NAVTRACK_"

_SPEED_UNIT_NAMES: dict[str, SpeedUnit] = {
    "kts": SpeedUnit.KNOTS,
    "knots": SpeedUnit.KNOTS,
    "mph": SpeedUnit.MPH,
    "kph": SpeedUnit.KPH,
}

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off", "")

# TrackingConfig field -> environment variable suffix
_ENV_SUFFIXES = {
    "minimum_accuracy": "MIN_ACCURACY",
    "minimum_speed_threshold": "MIN_SPEED",
    "background_tracking_enabled": "BACKGROUND",
    "speed_unit": "SPEED_UNIT",
    "use_24_hour": "24_HOUR",
    "gpsd_host": "GPSD_HOST",
    "gpsd_port": "GPSD_PORT",
}


class InvalidConfigError(ValueError):
    """A configuration field holds an out-of-range value.

    Attributes:
        field: Name of the offending ``TrackingConfig`` field.
    """

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field


def _check_threshold(field: str, value: float) -> None:
    if not math.isfinite(value) or value < 0:
        raise InvalidConfigError(
            field, f"{field} must be a finite, non-negative number, got {value}"
        )


@dataclass(frozen=True)
class TrackingConfig:
    """Thresholds and display preferences for a tracking session.

    Attributes:
        minimum_accuracy: Fixes with a horizontal accuracy worse (larger)
            than this many meters are discarded.
        minimum_speed_threshold: Speeds below this many m/s are treated as
            stationary GPS jitter.
        background_tracking_enabled: Whether the sensor should keep
            delivering events while the app is in the background.
        speed_unit: Unit used when formatting values for display.
        use_24_hour: Clock style for formatted times of day.
        gpsd_host: Host of the gpsd daemon feeding fixes.
        gpsd_port: TCP port of the gpsd daemon.

    Raises:
        InvalidConfigError: If a threshold is negative or not finite, or the
            port is out of range.
    """

    minimum_accuracy: float = DEFAULT_MINIMUM_ACCURACY
    minimum_speed_threshold: float = DEFAULT_MINIMUM_SPEED_THRESHOLD
    background_tracking_enabled: bool = False
    speed_unit: SpeedUnit = SpeedUnit.KNOTS
    use_24_hour: bool = False
    gpsd_host: str = DEFAULT_GPSD_HOST
    gpsd_port: int = DEFAULT_GPSD_PORT

    def __post_init__(self) -> None:
        _check_threshold("minimum_accuracy", self.minimum_accuracy)
        _check_threshold("minimum_speed_threshold", self.minimum_speed_threshold)
        if not 0 < self.gpsd_port < 65536:
            raise InvalidConfigError(
                "gpsd_port", f"gpsd_port out of range: {self.gpsd_port}"
            )


def _parse_float(name: str, value: str) -> float:
    try:
        result = float(value)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {value!r}") from e
    if not math.isfinite(result):
        raise ValueError(f"{name} must be a finite number, got {value!r}")
    return result


def _parse_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got {value!r}") from e


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


def _parse_speed_unit(name: str, value: str) -> SpeedUnit:
    unit = _SPEED_UNIT_NAMES.get(value.strip().lower())
    if unit is None:
        choices = ", ".join(sorted(_SPEED_UNIT_NAMES))
        raise ValueError(f"{name} must be one of {choices}, got {value!r}")
    return unit


def load_config(environ: Mapping[str, str] | None = None) -> TrackingConfig:
    """Build a ``TrackingConfig`` from ``NAVTRACK_*`` environment variables.

    Recognised variables (all optional):

    * ``NAVTRACK_MIN_ACCURACY`` - meters
    * ``NAVTRACK_MIN_SPEED`` - m/s
    * ``NAVTRACK_BACKGROUND`` - boolean (``1/0``, ``true/false``, ``yes/no``)
    * ``NAVTRACK_SPEED_UNIT`` - ``kts``, ``mph`` or ``kph``
    * ``NAVTRACK_24_HOUR`` - boolean
    * ``NAVTRACK_GPSD_HOST`` / ``NAVTRACK_GPSD_PORT``

    Args:
        environ: Mapping to read from; defaults to ``os.environ``.

    Returns:
        The resulting configuration, with defaults for unset variables.

    Raises:
        ValueError: If a variable is set to an unparseable or invalid value.
            The message names the offending variable.
    """
    env = os.environ if environ is None else environ
    kwargs: dict[str, object] = {}

    def lookup(field: str) -> tuple[str, str | None]:
        name = _ENV_PREFIX + _ENV_SUFFIXES[field]
        return name, env.get(name)

    name, value = lookup("minimum_accuracy")
    if value is not None:
        kwargs["minimum_accuracy"] = _parse_float(name, value)
    name, value = lookup("minimum_speed_threshold")
    if value is not None:
        kwargs["minimum_speed_threshold"] = _parse_float(name, value)
    name, value = lookup("background_tracking_enabled")
    if value is not None:
        kwargs["background_tracking_enabled"] = _parse_bool(name, value)
    name, value = lookup("speed_unit")
    if value is not None:
        kwargs["speed_unit"] = _parse_speed_unit(name, value)
    name, value = lookup("use_24_hour")
    if value is not None:
        kwargs["use_24_hour"] = _parse_bool(name, value)
    name, value = lookup("gpsd_host")
    if value:
        kwargs["gpsd_host"] = value
    name, value = lookup("gpsd_port")
    if value is not None:
        kwargs["gpsd_port"] = _parse_int(name, value)

    try:
        return TrackingConfig(**kwargs)  # type: ignore[arg-type]
    except InvalidConfigError as e:
        name = _ENV_PREFIX + _ENV_SUFFIXES[e.field]
        raise ValueError(f"{name}: {e}") from e
