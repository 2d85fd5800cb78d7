"""Running session statistics updated per accepted fix and heading event.

Aggregation rules:
    * Only moving fixes feed the speed sample pool, the top speed and the
      distance total. A parked receiver still wanders by a few meters per
      fix; counting that wander would accrue phantom distance.
    * Every accepted fix, moving or stationary, becomes a ``TrackPoint``,
      so the ledger is denser than the accumulated statistics.
    * Course over ground is the heading source while moving. The magnetic
      compass only takes over while the current speed is below the motion
      threshold, where course is noise.
"""

import logging
from dataclasses import dataclass

from navtrack.config import DEFAULT_MINIMUM_SPEED_THRESHOLD
from navtrack.filter import FilteredReading
from navtrack.geo import haversine_meters
from navtrack.ledger import TrackLedger
from navtrack.types import Coordinate, HeadingEvent, RawFix, TrackPoint

__all__ = ["SessionAggregator", "SessionDelta"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionDelta:
    """Outcome of applying one accepted fix.

    Attributes:
        point: The track point appended to the ledger.
        moving: Whether the fix was classified as moving.
        distance_added: Meters added to the distance total (0 if stationary
            or if this was the first accepted fix).
    """

    point: TrackPoint
    moving: bool
    distance_added: float


class SessionAggregator:
    """Owns the speed, heading, distance and coordinate statistics.

    The aggregator is not thread-safe on its own; ``TrackingSession`` calls
    it only while holding its single writer lock.

    Args:
        ledger: Ledger that receives one point per accepted fix.
        minimum_speed_threshold: Speed in m/s below which the magnetic
            heading fallback is allowed.
    """

    def __init__(
        self,
        ledger: TrackLedger,
        minimum_speed_threshold: float = DEFAULT_MINIMUM_SPEED_THRESHOLD,
    ) -> None:
        self._ledger = ledger
        self._minimum_speed_threshold = minimum_speed_threshold
        self.reset()

    def reset(self) -> None:
        """Zero every statistic and forget the previous fix and speed samples."""
        self.current_speed = 0.0
        self.current_heading = 0.0
        self.top_speed = 0.0
        self.total_distance = 0.0
        self.average_speed = 0.0
        self.current_coordinate: Coordinate | None = None
        self._previous_fix: RawFix | None = None
        self._speed_samples: list[float] = []

    @property
    def previous_fix(self) -> RawFix | None:
        return self._previous_fix

    @property
    def sample_count(self) -> int:
        return len(self._speed_samples)

    def apply_accepted(self, reading: FilteredReading) -> SessionDelta:
        """Fold an accepted fix into the statistics and record it.

        Args:
            reading: A fix that already passed the accuracy gate.

        Returns:
            A ``SessionDelta`` describing the recorded point and the distance
            added.
        """
        fix = reading.fix
        self.current_coordinate = fix.coordinate

        if reading.moving:
            self.current_speed = reading.speed
            self._speed_samples.append(reading.speed)
            self.top_speed = max(self.top_speed, reading.speed)
        else:
            self.current_speed = 0.0

        if self._speed_samples:
            self.average_speed = sum(self._speed_samples) / len(self._speed_samples)

        if reading.course is not None:
            self.current_heading = reading.course

        distance = 0.0
        previous = self._previous_fix
        if previous is not None and reading.moving:
            distance = haversine_meters(
                previous.latitude, previous.longitude, fix.latitude, fix.longitude
            )
            self.total_distance += distance

        point = TrackPoint.from_fix(fix)
        self._ledger.append(point)
        self._previous_fix = fix
        return SessionDelta(point=point, moving=reading.moving, distance_added=distance)

    def apply_heading(self, event: HeadingEvent) -> bool:
        """Use a magnetic heading while effectively stationary.

        Returns:
            True if ``current_heading`` was updated from the event.
        """
        if self.current_speed >= self._minimum_speed_threshold:
            return False
        if event.accuracy < 0:
            logger.debug("Ignoring heading event with invalid accuracy")
            return False
        self.current_heading = event.magnetic_heading
        return True
