"""Geocoding: built-in table, Mapbox, fuzzy fallback."""

from .service import (
    COMMON_CITIES,
    HISTORICAL_PLACES,
    GeocoderService,
    MapboxGeocoderService,
    normalize_name,
)

__all__ = [
    "COMMON_CITIES",
    "HISTORICAL_PLACES",
    "GeocoderService",
    "MapboxGeocoderService",
    "normalize_name",
]
