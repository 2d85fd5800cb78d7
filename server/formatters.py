"""JSON formatting utilities for session state and track points."""

import json
from typing import Any

from navtrack.config import TrackingConfig
from navtrack.types import SessionSnapshot, TrackPoint
from navtrack.units import (
    cardinal_direction,
    format_distance,
    format_duration,
    format_heading,
    format_speed,
)

__all__ = [
    "format_display",
    "format_state_message",
    "format_track_points",
    "snapshot_to_dict",
]


def format_display(snapshot: SessionSnapshot, config: TrackingConfig) -> dict[str, str]:
    """Render snapshot values as display strings in the configured units."""
    unit = config.speed_unit
    return {
        "speed_unit": unit.display_name,
        "distance_unit": unit.distance_label,
        "speed": format_speed(unit.convert(snapshot.current_speed)),
        "top_speed": format_speed(unit.convert(snapshot.top_speed)),
        "average_speed": format_speed(unit.convert(snapshot.average_speed)),
        "distance": format_distance(unit.convert_distance(snapshot.total_distance)),
        "heading": format_heading(snapshot.current_heading),
        "cardinal": cardinal_direction(snapshot.current_heading),
        "duration": format_duration(snapshot.session_duration),
    }


def snapshot_to_dict(snapshot: SessionSnapshot, config: TrackingConfig) -> dict[str, Any]:
    """Convert a snapshot to a JSON-ready mapping with SI values and display text."""
    coordinate = snapshot.current_coordinate
    return {
        "current_speed": snapshot.current_speed,
        "current_heading": snapshot.current_heading,
        "top_speed": snapshot.top_speed,
        "total_distance": snapshot.total_distance,
        "average_speed": snapshot.average_speed,
        "session_duration": snapshot.session_duration,
        "lat": coordinate[0] if coordinate is not None else None,
        "lon": coordinate[1] if coordinate is not None else None,
        "is_tracking": snapshot.is_tracking,
        "authorization_status": snapshot.authorization_status.value,
        "last_error": snapshot.last_error,
        "background_tracking": snapshot.background_tracking,
        "point_count": snapshot.point_count,
        "display": format_display(snapshot, config),
    }


def format_state_message(snapshot: SessionSnapshot, config: TrackingConfig) -> str:
    """Serialize a snapshot into a JSON string for WebSocket transmission."""
    return json.dumps({"type": "state", **snapshot_to_dict(snapshot, config)})


def format_track_points(points: tuple[TrackPoint, ...]) -> list[dict[str, Any]]:
    return [point.to_dict() for point in points]
