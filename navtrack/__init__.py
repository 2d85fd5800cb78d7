"""navtrack: location-stream processing and session tracking."""

from navtrack.aggregator import SessionAggregator, SessionDelta
from navtrack.config import TrackingConfig, load_config
from navtrack.export import to_csv, to_gpx
from navtrack.filter import FilteredReading, ReadingFilter
from navtrack.ledger import TrackLedger
from navtrack.session import LocationSource, SensorEventSink, TrackingSession
from navtrack.types import (
    AuthorizationStatus,
    HeadingEvent,
    RawFix,
    SensorError,
    SensorErrorKind,
    SessionSnapshot,
    TrackPoint,
)
from navtrack.units import DistanceUnit, SpeedUnit

__all__ = [
    "AuthorizationStatus",
    "DistanceUnit",
    "FilteredReading",
    "HeadingEvent",
    "LocationSource",
    "RawFix",
    "ReadingFilter",
    "SensorError",
    "SensorErrorKind",
    "SensorEventSink",
    "SessionAggregator",
    "SessionDelta",
    "SessionSnapshot",
    "SpeedUnit",
    "TrackLedger",
    "TrackingConfig",
    "TrackingSession",
    "load_config",
    "to_csv",
    "to_gpx",
]
