"""Geometry helpers for [lon, lat] coordinate lists.

Distances use the haversine formula on a spherical earth (R = 6371 km),
which is plenty for deciding whether a leg is drivable and for drawing
interpolated fallback lines.
"""

import math
from typing import Sequence

EARTH_RADIUS_KM = 6371.0

# Legs longer than this skip the directions API entirely
MAX_ROUTABLE_SEGMENT_KM = 2000.0

GEODESIC_STEP_KM = 500.0
MAX_INTERPOLATED_POINTS = 20


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def segment_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """Distance in km between two [lon, lat] points."""
    return haversine_distance(a[1], a[0], b[1], b[0])


def segment_distances(coordinates: Sequence[Sequence[float]]) -> list[float]:
    return [
        segment_distance(coordinates[i], coordinates[i + 1])
        for i in range(len(coordinates) - 1)
    ]


def has_long_segment(
    coordinates: Sequence[Sequence[float]],
    threshold_km: float = MAX_ROUTABLE_SEGMENT_KM,
) -> bool:
    """True when any consecutive pair is further apart than ``threshold_km``."""
    return any(d > threshold_km for d in segment_distances(coordinates))


def interpolate_geodesic_line(coordinates: Sequence[Sequence[float]]) -> list[list[float]]:
    """Build a smooth fallback line through every waypoint.

    Each segment gets ``min(ceil(d / 500 km), 20)`` linearly interpolated
    points between its endpoints. Waypoints are always kept as-is.
    """
    if not coordinates:
        return []

    line: list[list[float]] = []
    for i in range(len(coordinates) - 1):
        start, end = coordinates[i], coordinates[i + 1]
        line.append([start[0], start[1]])

        distance = segment_distance(start, end)
        num_points = min(math.ceil(distance / GEODESIC_STEP_KM), MAX_INTERPOLATED_POINTS)
        for j in range(1, num_points + 1):
            fraction = j / (num_points + 1)
            line.append([
                start[0] + (end[0] - start[0]) * fraction,
                start[1] + (end[1] - start[1]) * fraction,
            ])

    last = coordinates[-1]
    line.append([last[0], last[1]])
    return line


def bounding_box(coordinates: Sequence[Sequence[float]]) -> list[list[float]]:
    """Return ``[[min_lon, min_lat], [max_lon, max_lat]]``.

    Raises:
        ValueError: If ``coordinates`` is empty.
    """
    if not coordinates:
        raise ValueError("Cannot compute bounds of an empty coordinate list")
    lons = [c[0] for c in coordinates]
    lats = [c[1] for c in coordinates]
    return [[min(lons), min(lats)], [max(lons), max(lats)]]
