"""GPX and CSV serialization of recorded track points.

Both exporters are pure functions over a sequence of ``TrackPoint``. They
never reorder or drop points, so an export is a faithful replay of the
ledger snapshot it was given.
"""

import csv
import io
import xml.etree.ElementTree as ET
from collections.abc import Sequence
from datetime import datetime, timezone

import gpxpy.gpx

from navtrack.types import TrackPoint
from navtrack.units import format_decimal, format_iso8601

__all__ = [
    "CSV_HEADER",
    "GPX_CREATOR",
    "GPX_EXTENSION_NAMESPACE",
    "GPX_EXTENSION_PREFIX",
    "to_csv",
    "to_gpx",
]

GPX_CREATOR = "navtrack"

# GPX 1.1 only admits foreign-namespace elements inside <extensions>
GPX_EXTENSION_PREFIX = "navtrack"
GPX_EXTENSION_NAMESPACE = "urn:navtrack:gpx:trackpoint:v1"

CSV_HEADER = (
    "Timestamp",
    "Latitude",
    "Longitude",
    "Speed (m/s)",
    "Heading",
    "Altitude",
    "Accuracy",
)


def _extension(tag: str, value: float) -> ET.Element:
    element = ET.Element(f"{{{GPX_EXTENSION_NAMESPACE}}}{tag}")
    element.text = format_decimal(value)
    return element


def _gpx_point(point: TrackPoint) -> gpxpy.gpx.GPXTrackPoint:
    gpx_point = gpxpy.gpx.GPXTrackPoint(
        latitude=point.latitude,
        longitude=point.longitude,
        elevation=point.altitude,
        time=point.timestamp,
    )
    # GPX 1.1 has no speed/course elements; carry them as extensions, speed first
    gpx_point.extensions.append(_extension("speed", point.speed))
    gpx_point.extensions.append(_extension("course", point.heading))
    return gpx_point


def to_gpx(
    points: Sequence[TrackPoint],
    exported_at: datetime | None = None,
) -> str:
    """Render points as a single-track, single-segment GPX 1.1 document.

    Each point carries latitude, longitude, elevation, time, speed and
    course, in that order. An empty sequence still yields a valid document
    with an empty segment.

    Args:
        points: Track points in ledger order.
        exported_at: Instant embedded in the track name; defaults to now.

    Returns:
        The GPX document as text.
    """
    exported_at = exported_at or datetime.now(timezone.utc)

    gpx = gpxpy.gpx.GPX()
    gpx.creator = GPX_CREATOR
    gpx.nsmap[GPX_EXTENSION_PREFIX] = GPX_EXTENSION_NAMESPACE

    track = gpxpy.gpx.GPXTrack(name=f"{GPX_CREATOR} session - {format_iso8601(exported_at)}")
    gpx.tracks.append(track)

    segment = gpxpy.gpx.GPXTrackSegment()
    track.segments.append(segment)
    segment.points.extend(_gpx_point(point) for point in points)

    return gpx.to_xml(version="1.1")


def to_csv(points: Sequence[TrackPoint]) -> str:
    """Render points as CSV with a fixed header, one row per point.

    Timestamps are ISO-8601 UTC; every other field is decimal text. Rows end
    with ``\\n`` and the last row keeps its newline.

    Example:
        >>> print(to_csv([point]), end="")
        Timestamp,Latitude,Longitude,Speed (m/s),Heading,Altitude,Accuracy
        2025-03-01T12:35:19Z,48.1173,11.5167,2.8,54.7,545.4,4.0
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for point in points:
        writer.writerow(
            (
                format_iso8601(point.timestamp),
                format_decimal(point.latitude),
                format_decimal(point.longitude),
                format_decimal(point.speed),
                format_decimal(point.heading),
                format_decimal(point.altitude),
                format_decimal(point.horizontal_accuracy),
            )
        )
    return buffer.getvalue()
