"""Data types exchanged between the sensor, the tracking core and its readers.

Design Decisions:
    1. Sentinel negatives instead of None on input: ``RawFix`` follows the
       positioning-sensor convention where a negative speed, course or
       horizontal accuracy means "invalid/unknown". The reading filter is the
       only place that interprets those sentinels.

    2. Immutable records: ``RawFix``, ``HeadingEvent``, ``TrackPoint`` and
       ``SessionSnapshot`` are frozen dataclasses. A snapshot handed to a
       reader can never change underneath it, so readers on other threads
       always observe a consistent set of aggregates.

    3. TrackPoint speed is the clamped sensor speed, not the thresholded
       display speed: the ledger keeps what the sensor reported, while the
       live ``current_speed`` reports zero below the motion threshold.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

__all__ = [
    "AuthorizationStatus",
    "Coordinate",
    "HeadingEvent",
    "RawFix",
    "SensorError",
    "SensorErrorKind",
    "SessionSnapshot",
    "TrackPoint",
]

Coordinate = tuple[float, float]


class AuthorizationStatus(Enum):
    """Permission state for receiving location events."""

    NOT_DETERMINED = "not_determined"
    DENIED = "denied"
    AUTHORIZED = "authorized"
    AUTHORIZED_ALWAYS = "authorized_always"

    @property
    def is_granted(self) -> bool:
        return self in (
            AuthorizationStatus.AUTHORIZED,
            AuthorizationStatus.AUTHORIZED_ALWAYS,
        )


class SensorErrorKind(Enum):
    """Failure categories reported by the sensor collaborator."""

    PERMISSION_DENIED = "permission_denied"
    TRANSIENT = "transient"
    OTHER = "other"


@dataclass(frozen=True)
class SensorError:
    """A failure reported by the sensor collaborator.

    Attributes:
        kind: Failure category; only ``PERMISSION_DENIED`` affects the
            authorization state.
        message: Human-readable detail from the sensor, used verbatim in
            the generic error text for ``OTHER`` failures.
    """

    kind: SensorErrorKind
    message: str = ""


@dataclass(frozen=True)
class RawFix:
    """A single unfiltered position/velocity reading.

    Attributes:
        latitude: Latitude in decimal degrees, positive=North.
        longitude: Longitude in decimal degrees, positive=East.
        speed: Speed over ground in m/s. Negative means invalid/unknown.
        course: Course over ground in degrees from true north.
            Negative means invalid/unknown.
        altitude: Altitude in meters.
        horizontal_accuracy: Radius of horizontal uncertainty in meters.
            Negative means the position itself is invalid.
        timestamp: Timezone-aware time of the reading.

    Example:
        >>> RawFix(48.1173, 11.5167, speed=2.8, course=54.7, altitude=545.4,
        ...        horizontal_accuracy=4.0, timestamp=now)
    """

    latitude: float
    longitude: float
    speed: float
    course: float
    altitude: float
    horizontal_accuracy: float
    timestamp: datetime

    @property
    def coordinate(self) -> Coordinate:
        return (self.latitude, self.longitude)


@dataclass(frozen=True)
class HeadingEvent:
    """A heading-only update from a magnetic compass.

    Attributes:
        magnetic_heading: Heading in degrees relative to magnetic north.
        accuracy: Heading uncertainty in degrees; negative means invalid.
        timestamp: Time of the reading, or None if the source does not
            report one.
    """

    magnetic_heading: float
    accuracy: float
    timestamp: datetime | None = None


@dataclass(frozen=True)
class TrackPoint:
    """An accepted fix recorded in the session ledger.

    Attributes:
        latitude: Latitude in decimal degrees.
        longitude: Longitude in decimal degrees.
        speed: Sensor speed in m/s clamped to be non-negative.
        heading: Course in degrees, or 0 if the course was unknown.
        timestamp: Time of the originating fix.
        altitude: Altitude in meters.
        horizontal_accuracy: Horizontal accuracy in meters.
        id: Opaque unique identity.
    """

    latitude: float
    longitude: float
    speed: float
    heading: float
    timestamp: datetime
    altitude: float
    horizontal_accuracy: float
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    @classmethod
    def from_fix(cls, fix: RawFix) -> "TrackPoint":
        """Capture a fix, clamping speed and defaulting an unknown course to 0."""
        return cls(
            latitude=fix.latitude,
            longitude=fix.longitude,
            speed=max(0.0, fix.speed),
            heading=fix.course if fix.course >= 0 else 0.0,
            timestamp=fix.timestamp,
            altitude=fix.altitude,
            horizontal_accuracy=fix.horizontal_accuracy,
        )

    @property
    def coordinate(self) -> Coordinate:
        return (self.latitude, self.longitude)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-ready mapping of this point."""
        return {
            "id": str(self.id),
            "latitude": self.latitude,
            "longitude": self.longitude,
            "speed": self.speed,
            "heading": self.heading,
            "timestamp": self.timestamp.isoformat(),
            "altitude": self.altitude,
            "horizontal_accuracy": self.horizontal_accuracy,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TrackPoint":
        """Rebuild a point from the mapping produced by ``to_dict``.

        Raises:
            KeyError: If a required key is missing.
            ValueError: If the id, timestamp or a numeric field is malformed.
        """
        return cls(
            id=uuid.UUID(data["id"]),
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            speed=float(data["speed"]),
            heading=float(data["heading"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            altitude=float(data["altitude"]),
            horizontal_accuracy=float(data["horizontal_accuracy"]),
        )


@dataclass(frozen=True)
class SessionSnapshot:
    """A consistent, point-in-time view of the navigation state.

    Speeds are in m/s, distance in meters, duration in seconds.
    """

    current_speed: float
    current_heading: float
    top_speed: float
    total_distance: float
    average_speed: float
    session_duration: float
    current_coordinate: Coordinate | None
    is_tracking: bool
    authorization_status: AuthorizationStatus
    last_error: str | None
    background_tracking: bool
    point_count: int
