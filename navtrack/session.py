"""Tracking state machine: authorization, start/stop/reset and event intake.

``TrackingSession`` is the single owner of the navigation state. Sensor
events arrive asynchronously from a ``LocationSource`` (on its own thread),
the duration timer ticks on another, and readers poll or subscribe from
anywhere. All mutations go through one lock:

    fix event ─┐
    heading ───┤
    auth/error ┼──> [session lock] ──> filter -> aggregator -> ledger
    timer tick ┘                              │
                                              └──> snapshot ──> observers

Observers and collaborator calls always run with the lock released, so a
slow observer can never stall fix processing and a source may call back
into the session from inside ``start_location_updates``.

Session duration is computed lazily from an injectable clock rather than
accumulated by the timer; the timer only drives once-per-second change
notifications so displays can refresh the running clock.
"""

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Protocol

from navtrack.aggregator import SessionAggregator, SessionDelta
from navtrack.config import TrackingConfig
from navtrack.export import to_csv, to_gpx
from navtrack.filter import ReadingFilter
from navtrack.ledger import TrackLedger
from navtrack.types import (
    AuthorizationStatus,
    Coordinate,
    HeadingEvent,
    RawFix,
    SensorError,
    SensorErrorKind,
    SessionSnapshot,
    TrackPoint,
)

__all__ = [
    "LocationSource",
    "RepeatingTimer",
    "SensorEventSink",
    "SessionObserver",
    "TrackingSession",
]

logger = logging.getLogger(__name__)

_TICK_INTERVAL = 1.0  # seconds

_DENIED_MESSAGE = "Location access denied. Please enable in Settings."
_TRANSIENT_MESSAGE = "Network error. GPS should still work."

SessionObserver = Callable[[SessionSnapshot], None]


class SensorEventSink(Protocol):
    """Receiver of events produced by a ``LocationSource``."""

    def handle_fix(self, fix: RawFix) -> None: ...

    def handle_heading(self, event: HeadingEvent) -> None: ...

    def handle_authorization_change(self, status: AuthorizationStatus) -> None: ...

    def handle_error(self, error: SensorError) -> None: ...


class LocationSource(Protocol):
    """The sensor collaborator controlled by the session.

    Implementations deliver events to the ``SensorEventSink`` they were
    bound to; the session never sees sensor-framework types.
    """

    def authorization_status(self) -> AuthorizationStatus: ...

    def request_authorization(self) -> None: ...

    def start_location_updates(self) -> None: ...

    def stop_location_updates(self) -> None: ...

    def start_heading_updates(self) -> None: ...

    def stop_heading_updates(self) -> None: ...

    def set_background_delivery(self, enabled: bool) -> None: ...


class Timer(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], Timer]


class RepeatingTimer:
    """Call *function* every *interval* seconds on a daemon thread.

    ``cancel()`` returns immediately; a tick already in progress finishes,
    but no new tick starts afterwards.
    """

    def __init__(self, interval: float, function: Callable[[], None]) -> None:
        self._interval = interval
        self._function = function
        self._cancelled = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name="navtrack-duration-timer", daemon=True
        )

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        self._cancelled.set()

    def _run(self) -> None:
        while not self._cancelled.wait(self._interval):
            self._function()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TrackingSession:
    """Owns the navigation state and governs the tracking lifecycle.

    Two orthogonal state dimensions are tracked: authorization
    (``NOT_DETERMINED`` -> ``DENIED`` / ``AUTHORIZED`` /
    ``AUTHORIZED_ALWAYS``) and activity (idle <-> tracking).

    Typical use::

        session = TrackingSession(source, config)
        source.bind(session)
        session.request_authorization()
        ...
        print(session.snapshot().top_speed)

    Args:
        source: Sensor collaborator; events must be routed back to this
            session's ``handle_*`` methods.
        config: Thresholds and the initial background-delivery preference.
        clock: Returns the current timezone-aware time. Injected in tests.
        timer_factory: Builds the 1 Hz duration timer from
            ``(interval, callback)``. Injected in tests.
    """

    def __init__(
        self,
        source: LocationSource,
        config: TrackingConfig | None = None,
        clock: Callable[[], datetime] = _utc_now,
        timer_factory: TimerFactory = RepeatingTimer,
    ) -> None:
        self._config = config or TrackingConfig()
        self._source = source
        self._clock = clock
        self._timer_factory = timer_factory

        self._lock = threading.RLock()
        self._observers: list[SessionObserver] = []

        self._filter = ReadingFilter(
            self._config.minimum_accuracy, self._config.minimum_speed_threshold
        )
        self._ledger = TrackLedger()
        self._aggregator = SessionAggregator(
            self._ledger, self._config.minimum_speed_threshold
        )

        self._tracking = False
        self._session_start: datetime | None = None
        self._session_end: datetime | None = None
        self._timer: Timer | None = None
        self._authorization = source.authorization_status()
        self._last_error: str | None = None
        self._background = False

        if self._config.background_tracking_enabled:
            self.enable_background_tracking()

    # --- read API -------------------------------------------------------------

    @property
    def config(self) -> TrackingConfig:
        return self._config

    @property
    def is_tracking(self) -> bool:
        with self._lock:
            return self._tracking

    def snapshot(self) -> SessionSnapshot:
        """Return an atomically consistent view of the current state."""
        with self._lock:
            return self._snapshot_locked()

    def track_points(self) -> tuple[TrackPoint, ...]:
        return self._ledger.snapshot()

    def coordinates(self) -> tuple[Coordinate, ...]:
        return self._ledger.coordinates()

    def export_gpx(self, exported_at: datetime | None = None) -> str:
        """Serialize a snapshot of the ledger to GPX."""
        return to_gpx(self._ledger.snapshot(), exported_at or self._clock())

    def export_csv(self) -> str:
        """Serialize a snapshot of the ledger to CSV."""
        return to_csv(self._ledger.snapshot())

    def subscribe(self, observer: SessionObserver) -> Callable[[], None]:
        """Register *observer* for state-change notifications.

        The observer receives a ``SessionSnapshot`` after every state
        change and every timer tick. It is called on whichever thread
        caused the change, with no lock held.

        Returns:
            A callable that unregisters the observer.
        """
        with self._lock:
            self._observers.append(observer)

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    # --- lifecycle ------------------------------------------------------------

    def request_authorization(self) -> None:
        """Ask for location permission, or start tracking if already granted."""
        with self._lock:
            status = self._authorization
        if status is AuthorizationStatus.NOT_DETERMINED:
            logger.info("Requesting location authorization")
            self._source.request_authorization()
        elif status.is_granted:
            self.start_tracking()
        else:
            logger.warning("Location authorization denied; not requesting again")

    def start_tracking(self) -> None:
        """Begin a session. Calling this while already tracking does nothing."""
        with self._lock:
            if self._tracking:
                return
            if self._authorization is AuthorizationStatus.DENIED:
                logger.warning("Cannot start tracking: location access denied")
                return
            self._tracking = True
            self._session_start = self._clock()
            self._session_end = None
            self._last_error = None
            timer = self._timer_factory(_TICK_INTERVAL, self.tick)
            self._timer = timer
            snapshot = self._snapshot_locked()

        logger.info("Tracking started")
        self._source.start_location_updates()
        self._source.start_heading_updates()
        timer.start()
        self._notify(snapshot)

    def stop_tracking(self) -> None:
        """End event delivery; accumulated statistics and ledger are kept.

        Once this returns, no further fix is applied: the tracking flag is
        cleared and the duration timer cancelled in the same locked
        transition, and fix handlers drop events while not tracking.
        """
        with self._lock:
            was_tracking = self._tracking
            self._tracking = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if was_tracking:
                self._session_end = self._clock()
            snapshot = self._snapshot_locked()

        self._source.stop_location_updates()
        self._source.stop_heading_updates()
        if was_tracking:
            logger.info("Tracking stopped")
            self._notify(snapshot)

    def reset_session(self) -> None:
        """Discard all statistics and the ledger, then start a new session."""
        self.stop_tracking()
        with self._lock:
            self._aggregator.reset()
            self._ledger.clear()
            self._session_start = None
            self._session_end = None
        logger.info("Session reset")
        self.start_tracking()

    def enable_background_tracking(self) -> None:
        self._set_background(True)

    def disable_background_tracking(self) -> None:
        self._set_background(False)

    def _set_background(self, enabled: bool) -> None:
        with self._lock:
            if self._background == enabled:
                return
            self._background = enabled
            snapshot = self._snapshot_locked()
        self._source.set_background_delivery(enabled)
        logger.info("Background tracking %s", "enabled" if enabled else "disabled")
        self._notify(snapshot)

    def tick(self) -> None:
        """Duration timer callback: publish the advancing session clock."""
        with self._lock:
            if not self._tracking:
                return
            snapshot = self._snapshot_locked()
        self._notify(snapshot)

    # --- sensor events --------------------------------------------------------

    def handle_fix(self, fix: RawFix) -> SessionDelta | None:
        """Filter and apply one fix.

        Returns:
            The resulting ``SessionDelta``, or None if the fix was ignored
            (not tracking, out of order, or rejected by the filter).
        """
        with self._lock:
            delta = self._apply_fix_locked(fix)
            if delta is None:
                return None
            snapshot = self._snapshot_locked()
        self._notify(snapshot)
        return delta

    def handle_fixes(self, fixes: Iterable[RawFix]) -> list[SessionDelta]:
        """Apply a batch of fixes in order, notifying observers once."""
        deltas: list[SessionDelta] = []
        with self._lock:
            for fix in fixes:
                delta = self._apply_fix_locked(fix)
                if delta is not None:
                    deltas.append(delta)
            if not deltas:
                return deltas
            snapshot = self._snapshot_locked()
        self._notify(snapshot)
        return deltas

    def handle_heading(self, event: HeadingEvent) -> None:
        with self._lock:
            if not self._tracking or not self._aggregator.apply_heading(event):
                return
            snapshot = self._snapshot_locked()
        self._notify(snapshot)

    def handle_authorization_change(self, status: AuthorizationStatus) -> None:
        """Record a new authorization value and auto-start on a grant."""
        with self._lock:
            self._authorization = status
            snapshot = self._snapshot_locked()
        logger.info("Location authorization changed to %s", status.value)
        self._notify(snapshot)
        if status.is_granted:
            self.start_tracking()

    def handle_error(self, error: SensorError) -> None:
        """Surface a sensor failure without touching statistics or the ledger."""
        with self._lock:
            if error.kind is SensorErrorKind.PERMISSION_DENIED:
                self._last_error = _DENIED_MESSAGE
                self._authorization = AuthorizationStatus.DENIED
            elif error.kind is SensorErrorKind.TRANSIENT:
                self._last_error = _TRANSIENT_MESSAGE
            else:
                self._last_error = f"Location error: {error.message}"
            snapshot = self._snapshot_locked()
        logger.warning("Sensor error (%s): %s", error.kind.value, error.message)
        self._notify(snapshot)

    # --- internals ------------------------------------------------------------

    def _apply_fix_locked(self, fix: RawFix) -> SessionDelta | None:
        if not self._tracking:
            return None
        previous = self._ledger.last
        if previous is not None and fix.timestamp < previous.timestamp:
            logger.debug(
                "Dropping out-of-order fix at %s (last accepted %s)",
                fix.timestamp,
                previous.timestamp,
            )
            return None
        reading = self._filter.evaluate(fix)
        if reading is None:
            logger.debug(
                "Rejected fix with horizontal accuracy %.1f m",
                fix.horizontal_accuracy,
            )
            return None
        return self._aggregator.apply_accepted(reading)

    def _duration_locked(self) -> float:
        if self._session_start is None:
            return 0.0
        end = self._session_end if self._session_end is not None else self._clock()
        return max(0.0, (end - self._session_start).total_seconds())

    def _snapshot_locked(self) -> SessionSnapshot:
        agg = self._aggregator
        return SessionSnapshot(
            current_speed=agg.current_speed,
            current_heading=agg.current_heading,
            top_speed=agg.top_speed,
            total_distance=agg.total_distance,
            average_speed=agg.average_speed,
            session_duration=self._duration_locked(),
            current_coordinate=agg.current_coordinate,
            is_tracking=self._tracking,
            authorization_status=self._authorization,
            last_error=self._last_error,
            background_tracking=self._background,
            point_count=len(self._ledger),
        )

    def _notify(self, snapshot: SessionSnapshot) -> None:
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            observer(snapshot)
