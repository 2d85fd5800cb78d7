"""Reading filter: accuracy gate, motion classification and course validity."""

from dataclasses import dataclass

from navtrack.config import DEFAULT_MINIMUM_ACCURACY, DEFAULT_MINIMUM_SPEED_THRESHOLD
from navtrack.types import RawFix

__all__ = ["FilteredReading", "ReadingFilter"]


@dataclass(frozen=True)
class FilteredReading:
    """An accepted fix with its derived motion values.

    Attributes:
        fix: The accepted raw fix.
        speed: Sensor speed clamped to be non-negative (stored in the ledger).
        moving: True if ``speed`` meets the motion threshold.
        display_speed: ``speed`` when moving, else 0. This is the value
            reported as the live current speed.
        course: Course in degrees, or None if the sensor reported it invalid.
    """

    fix: RawFix
    speed: float
    moving: bool
    display_speed: float
    course: float | None


class ReadingFilter:
    """Decide whether a raw fix is usable and whether it counts as moving.

    The filter holds only its two thresholds; each call is independent.

    Args:
        minimum_accuracy: Largest acceptable horizontal accuracy in meters.
        minimum_speed_threshold: Smallest speed in m/s classified as moving.

    Example:
        >>> f = ReadingFilter()
        >>> f.evaluate(fix_with_accuracy_25) is None
        True
        >>> f.evaluate(fix_with_speed_0_1).display_speed
        0.0
    """

    def __init__(
        self,
        minimum_accuracy: float = DEFAULT_MINIMUM_ACCURACY,
        minimum_speed_threshold: float = DEFAULT_MINIMUM_SPEED_THRESHOLD,
    ) -> None:
        self.minimum_accuracy = minimum_accuracy
        self.minimum_speed_threshold = minimum_speed_threshold

    def accepts(self, fix: RawFix) -> bool:
        """Return True if the fix passes the horizontal accuracy gate."""
        accuracy = fix.horizontal_accuracy
        return 0 <= accuracy <= self.minimum_accuracy

    def is_moving(self, speed: float) -> bool:
        return speed >= self.minimum_speed_threshold

    def evaluate(self, fix: RawFix) -> FilteredReading | None:
        """Gate and classify one fix.

        Returns:
            A ``FilteredReading`` for an accepted fix, or None when the fix
            is rejected for poor or invalid accuracy. A rejected fix must be
            discarded entirely by the caller.
        """
        if not self.accepts(fix):
            return None
        speed = max(0.0, fix.speed)
        moving = self.is_moving(speed)
        return FilteredReading(
            fix=fix,
            speed=speed,
            moving=moving,
            display_speed=speed if moving else 0.0,
            course=fix.course if fix.course >= 0 else None,
        )
