"""Shared helpers: in-process cache and coordinate geometry."""

from .cache import LRUCache
from .geo import (
    bounding_box,
    has_long_segment,
    haversine_distance,
    interpolate_geodesic_line,
    segment_distance,
)

__all__ = [
    "LRUCache",
    "bounding_box",
    "has_long_segment",
    "haversine_distance",
    "interpolate_geodesic_line",
    "segment_distance",
]
