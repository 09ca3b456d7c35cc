"""Routing: Mapbox Directions with geodesic fallback."""

from .service import (
    MapboxRouterService,
    RouterService,
    geodesic_route,
    normalize_profile,
    profile_for,
)

__all__ = [
    "MapboxRouterService",
    "RouterService",
    "geodesic_route",
    "normalize_profile",
    "profile_for",
]
