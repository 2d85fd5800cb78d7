"""Append-only ledger of accepted track points for the current session."""

import threading

from navtrack.types import Coordinate, TrackPoint

__all__ = ["TrackLedger"]


class TrackLedger:
    """Ordered, append-only sequence of ``TrackPoint`` records.

    Points can only be appended or, on session reset, cleared all at once.
    Reads return tuples copied under the ledger's own lock, so an exporter
    running on another thread sees either all of a point or none of it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._points: list[TrackPoint] = []

    def append(self, point: TrackPoint) -> None:
        with self._lock:
            self._points.append(point)

    def clear(self) -> None:
        """Drop every point. Only a full session reset may call this."""
        with self._lock:
            self._points = []

    def snapshot(self) -> tuple[TrackPoint, ...]:
        """Return the points recorded so far, in insertion order."""
        with self._lock:
            return tuple(self._points)

    def coordinates(self) -> tuple[Coordinate, ...]:
        """Return ``(latitude, longitude)`` pairs, one per point, in order."""
        return tuple(point.coordinate for point in self.snapshot())

    @property
    def last(self) -> TrackPoint | None:
        with self._lock:
            return self._points[-1] if self._points else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._points)
