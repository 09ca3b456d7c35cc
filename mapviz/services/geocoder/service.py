"""Place name → [lon, lat] resolution.

Resolution order for ``geocode()``:
1. in-process cache, then the shared Redis cache when configured
2. exact match in the built-in table (major cities, historical regions)
3. whole-word match against city names (words longer than 3 chars)
4. Mapbox Geocoding API
5. fuzzy fallback on the first five characters, then containment against
   historical region names

Results from steps 2-5 are cached under the normalized name.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import quote

import httpx

from mapviz.models import GeocodeResult, GeocodingError
from mapviz.services.cache import CacheService
from mapviz.utils.cache import LRUCache

logger = logging.getLogger(__name__)

# [lon, lat]
COMMON_CITIES: dict[str, list[float]] = {
    "paris": [2.3522, 48.8566],
    "london": [-0.1278, 51.5074],
    "rome": [12.4964, 41.9028],
    "ancient rome": [12.4964, 41.9028],
    "new york": [-74.0060, 40.7128],
    "los angeles": [-118.2437, 34.0522],
    "chicago": [-87.6298, 41.8781],
    "seattle": [-122.3321, 47.6062],
    "boston": [-71.0589, 42.3601],
    "miami": [-80.1918, 25.7617],
    "san francisco": [-122.4194, 37.7749],
    "washington dc": [-77.0369, 38.9072],
    "tokyo": [139.6917, 35.6895],
    "berlin": [13.4050, 52.5200],
    "madrid": [-3.7038, 40.4168],
    "sydney": [151.2093, -33.8688],
    "beijing": [116.4074, 39.9042],
    "toronto": [-79.3832, 43.6532],
    "dubai": [55.2708, 25.2048],
    "amsterdam": [4.9041, 52.3676],
    "bangkok": [100.5018, 13.7563],
    "singapore": [103.8198, 1.3521],
}

# Regions and former names Mapbox can't place; approximate centres
HISTORICAL_PLACES: dict[str, list[float]] = {
    "mediterranean": [14.5528, 37.6489],
    "sub-saharan africa": [17.5707, 3.3578],
    "constantinople": [28.9784, 41.0082],
    "egypt": [30.8025, 26.8206],
    "mesopotamia": [44.4009, 33.2232],
    "byzantine empire": [29.9792, 40.7313],
    "ottoman empire": [35.2433, 38.9637],
    "ancient greece": [23.7275, 37.9838],
    "persia": [53.6880, 32.4279],
    "holy roman empire": [10.4515, 51.1657],
    "carthage": [10.3236, 36.8585],
}

FUZZY_PREFIX_LENGTH = 5
MIN_WORD_MATCH_LENGTH = 4


def normalize_name(name: str) -> str:
    return " ".join(name.lower().split())


class GeocoderService(ABC):
    """Abstract base class for geocoders."""

    @abstractmethod
    async def geocode(self, name: str) -> GeocodeResult | None:
        """Resolve a place name, or None when nothing matches."""

    async def geocode_many(self, names: list[str]) -> list[GeocodeResult | None]:
        """Geocode names concurrently; results keep the input order."""
        return list(await asyncio.gather(*(self.geocode(n) for n in names)))

    async def close(self) -> None:
        pass


class MapboxGeocoderService(GeocoderService):
    """Built-in table + Mapbox Geocoding v5 + fuzzy fallback."""

    BASE_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places"

    def __init__(
        self,
        access_token: str | None,
        timeout: float = 4.0,
        shared_cache: CacheService | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        cache_size: int = 500,
    ) -> None:
        self._token = access_token
        self._timeout = timeout
        self._shared_cache = shared_cache
        self._transport = transport
        self._cache: LRUCache[GeocodeResult] = LRUCache(max_size=cache_size)
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    # ── Table lookups ─────────────────────────────────────────────────

    @staticmethod
    def _lookup_exact(key: str) -> list[float] | None:
        return COMMON_CITIES.get(key) or HISTORICAL_PLACES.get(key)

    @staticmethod
    def _lookup_word(key: str) -> tuple[str, list[float]] | None:
        words = [w for w in key.split() if len(w) >= MIN_WORD_MATCH_LENGTH]
        for city, coords in COMMON_CITIES.items():
            city_words = city.split()
            if any(w in city_words for w in words):
                return city, coords
        return None

    @staticmethod
    def _lookup_fuzzy(key: str) -> tuple[str, list[float]] | None:
        prefix = key[:FUZZY_PREFIX_LENGTH]
        for city, coords in COMMON_CITIES.items():
            if prefix in city or city[:FUZZY_PREFIX_LENGTH] in key:
                return city, coords
        for place, coords in HISTORICAL_PLACES.items():
            if place in key or key in place:
                return place, coords
        return None

    # ── Cache ─────────────────────────────────────────────────────────

    async def _cache_get(self, key: str) -> GeocodeResult | None:
        hit = self._cache.get(key)
        if hit is not None:
            return hit
        if self._shared_cache is None:
            return None
        try:
            data = await self._shared_cache.get(CacheService.build_geocode_key(key))
        except Exception as e:
            logger.warning(f"[GEOCODE] Shared cache read failed, skipping: {e}")
            return None
        if not data:
            return None
        result = GeocodeResult.model_validate(data)
        self._cache.set(key, result)
        return result

    async def _cache_set(self, key: str, result: GeocodeResult) -> None:
        self._cache.set(key, result)
        if self._shared_cache is None:
            return
        try:
            await self._shared_cache.set(
                CacheService.build_geocode_key(key),
                result.model_dump(by_alias=True),
            )
        except Exception as e:
            logger.warning(f"[GEOCODE] Shared cache write failed, skipping: {e}")

    # ── Mapbox ────────────────────────────────────────────────────────

    async def _fetch_feature(self, query: str) -> dict[str, Any] | None:
        """Return the top Mapbox feature for ``query``, or None if there is none.

        Raises:
            GeocodingError: When the token is missing or the request fails.
        """
        if not self._token:
            raise GeocodingError("Mapbox token not configured", status_code=500)

        path = f"{self.BASE_URL}/{quote(query, safe='')}.json"
        try:
            response = await self._get_client().get(
                path, params={"access_token": self._token, "limit": 1}
            )
        except httpx.TimeoutException as e:
            raise GeocodingError(f"Geocoding timed out for {query!r}", status_code=504) from e
        except httpx.HTTPError as e:
            raise GeocodingError(f"Geocoding request failed: {e}") from e

        if response.status_code != 200:
            logger.warning(f"[GEOCODE] {path} returned {response.status_code}")
            raise GeocodingError(f"Mapbox API returned {response.status_code}")

        try:
            features = response.json().get("features") or []
        except ValueError as e:
            raise GeocodingError("Geocoding response was not JSON") from e
        return features[0] if features else None

    async def lookup_raw(self, query: str) -> dict[str, Any]:
        """Single Mapbox lookup in the proxy response shape.

        Raises:
            ValueError: If ``query`` is blank.
            GeocodingError: 404 when nothing is found, 500/504 on upstream failure.
        """
        if not query or not query.strip():
            raise ValueError("Location is required")
        feature = await self._fetch_feature(query.strip())
        if feature is None:
            raise GeocodingError(f'Location "{query}" not found', status_code=404)
        return {
            "coordinates": feature.get("center"),
            "placeName": feature.get("place_name", ""),
            "id": feature.get("id"),
        }

    # ── Public ────────────────────────────────────────────────────────

    async def geocode(self, name: str) -> GeocodeResult | None:
        if not name or not name.strip():
            logger.info("[GEOCODE] Empty location name")
            return None

        key = normalize_name(name)
        cached = await self._cache_get(key)
        if cached is not None:
            logger.info(f"[GEOCODE] Cache hit for {name!r}")
            return cached.model_copy(update={"name": name, "source": "cache"})

        coords = self._lookup_exact(key)
        if coords:
            logger.info(f"[GEOCODE] Using built-in coordinates for {name!r}")
            result = GeocodeResult(name=name, coordinates=list(coords), place_name=name, source="lookup")
            await self._cache_set(key, result)
            return result

        word_match = self._lookup_word(key)
        if word_match:
            city, coords = word_match
            logger.info(f"[GEOCODE] Word match {name!r} -> {city!r}")
            result = GeocodeResult(name=name, coordinates=list(coords), place_name=city.title(), source="lookup")
            await self._cache_set(key, result)
            return result

        try:
            feature = await self._fetch_feature(name.strip())
        except GeocodingError as e:
            logger.warning(f"[GEOCODE] Mapbox failed for {name!r}: {e}; trying fallbacks")
            feature = None

        if feature and feature.get("center"):
            lon, lat = feature["center"][:2]
            logger.info(f"[GEOCODE] {name!r} -> [{lon:.4f}, {lat:.4f}]")
            result = GeocodeResult(
                name=name,
                coordinates=[float(lon), float(lat)],
                place_name=feature.get("place_name", name),
                source="mapbox",
            )
            await self._cache_set(key, result)
            return result

        fuzzy = self._lookup_fuzzy(key)
        if fuzzy:
            match, coords = fuzzy
            logger.info(f"[GEOCODE] Fuzzy match {name!r} -> {match!r}")
            result = GeocodeResult(name=name, coordinates=list(coords), place_name=match.title(), source="fuzzy")
            await self._cache_set(key, result)
            return result

        logger.info(f"[GEOCODE] No result for {name!r}")
        return None
