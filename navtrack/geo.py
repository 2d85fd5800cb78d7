"""Great-circle distance on a spherical Earth."""

import math

__all__ = ["haversine_meters"]

_EARTH_RADIUS_METERS = 6_371_000.0  # mean Earth radius


def haversine_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute the haversine surface distance in meters between two points.

    Args:
        lat1: Latitude of the first point in decimal degrees.
        lon1: Longitude of the first point in decimal degrees.
        lat2: Latitude of the second point in decimal degrees.
        lon2: Longitude of the second point in decimal degrees.

    Returns:
        Distance in meters along the sphere's surface.
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2.0) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    )
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return _EARTH_RADIUS_METERS * c
