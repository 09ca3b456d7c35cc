"""Route lines between geocoded waypoints.

Mapbox Directions for anything drivable, with a geodesic fallback line for
legs over 2000 km or whenever the directions call fails. The fallback
never raises: a caller always gets a drawable line for two or more points.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Sequence

import httpx

from mapviz.models import DirectionsError, RouteResult, RouteType, TravelMode
from mapviz.utils.geo import (
    MAX_ROUTABLE_SEGMENT_KM,
    has_long_segment,
    interpolate_geodesic_line,
)

logger = logging.getLogger(__name__)

# Travel mode → Mapbox profile; Mapbox has no public transit profile
PROFILE_BY_MODE = {
    TravelMode.DRIVING: "driving",
    TravelMode.WALKING: "walking",
    TravelMode.CYCLING: "cycling",
    TravelMode.TRANSIT: "driving",
}

VALID_PROFILES = {"driving", "driving-traffic", "walking", "cycling"}

# Preference phrase → Mapbox ``exclude`` value (driving profiles only)
EXCLUDES_BY_PREFERENCE = {
    "avoid tolls": "toll",
    "avoid highways": "motorway",
    "avoid ferries": "ferry",
}

MAX_WAYPOINTS = 25


def profile_for(travel_mode: TravelMode | str) -> str:
    try:
        return PROFILE_BY_MODE[TravelMode(travel_mode)]
    except ValueError:
        return "driving"


def normalize_profile(profile: str | None) -> str:
    """Accept ``driving`` or ``mapbox/driving`` style profiles.

    Raises:
        ValueError: For profiles Mapbox doesn't offer.
    """
    name = (profile or "driving").strip().lower()
    if name.startswith("mapbox/"):
        name = name[len("mapbox/"):]
    if name not in VALID_PROFILES:
        raise ValueError(f"Unsupported routing profile: {profile}")
    return name


def geodesic_route(coordinates: Sequence[Sequence[float]], reason: str) -> RouteResult:
    return RouteResult(
        coordinates=interpolate_geodesic_line(coordinates),
        route_type=RouteType.GEODESIC,
        is_fallback=True,
        reason=reason,
    )


class RouterService(ABC):
    """Abstract base class for routers."""

    @abstractmethod
    async def route(
        self,
        coordinates: Sequence[Sequence[float]],
        travel_mode: TravelMode | str = TravelMode.DRIVING,
        preferences: Sequence[str] = (),
    ) -> RouteResult:
        """Line through ``coordinates`` in order."""

    async def close(self) -> None:
        pass


class MapboxRouterService(RouterService):
    """Mapbox Directions v5 with geodesic fallback."""

    BASE_URL = "https://api.mapbox.com/directions/v5/mapbox"

    def __init__(
        self,
        access_token: str | None,
        timeout: float = 8.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = access_token
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _fetch(
        self,
        coordinates: Sequence[Sequence[float]],
        profile: str,
        params: dict[str, Any],
    ) -> dict[str, Any]:
        """Call the directions API and return the decoded body.

        Raises:
            DirectionsError: 400 for 422 responses, 404 for no routes,
                500/504 for other failures.
        """
        if not self._token:
            raise DirectionsError("Mapbox token not configured", status_code=500)
        if len(coordinates) > MAX_WAYPOINTS:
            raise DirectionsError(
                f"Mapbox accepts at most {MAX_WAYPOINTS} waypoints, got {len(coordinates)}",
                status_code=400,
            )

        coords = ";".join(f"{c[0]},{c[1]}" for c in coordinates)
        path = f"{self.BASE_URL}/{profile}/{coords}"
        try:
            response = await self._get_client().get(
                path, params={**params, "access_token": self._token}
            )
        except httpx.TimeoutException as e:
            raise DirectionsError("Directions request timed out", status_code=504) from e
        except httpx.HTTPError as e:
            raise DirectionsError(f"Directions request failed: {e}") from e

        if response.status_code == 422:
            logger.info(f"[ROUTE] Mapbox returned 422 for {profile}/{coords}")
            raise DirectionsError(
                "Unable to create route between these locations", status_code=400
            )
        if response.status_code != 200:
            raise DirectionsError(f"Mapbox API returned {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise DirectionsError("Directions response was not JSON") from e
        if not data.get("routes"):
            raise DirectionsError("No route found", status_code=404)
        return data

    async def directions_raw(
        self,
        coordinates: Sequence[Sequence[float]],
        profile: str | None = "driving",
    ) -> dict[str, Any]:
        """Proxy call returning ``{"route": {...}}`` for the browser.

        Raises:
            ValueError: Fewer than two coordinates, or an unknown profile.
            DirectionsError: See ``_fetch``.
        """
        if not coordinates or len(coordinates) < 2:
            raise ValueError("At least two coordinates are required")
        data = await self._fetch(
            coordinates,
            normalize_profile(profile),
            {"geometries": "geojson", "overview": "full", "steps": "true"},
        )
        best = data["routes"][0]
        return {
            "route": {
                "geometry": best.get("geometry"),
                "distance": best.get("distance"),
                "duration": best.get("duration"),
                "legs": best.get("legs", []),
                "waypoints": data.get("waypoints", []),
            }
        }

    async def route(
        self,
        coordinates: Sequence[Sequence[float]],
        travel_mode: TravelMode | str = TravelMode.DRIVING,
        preferences: Sequence[str] = (),
    ) -> RouteResult:
        if len(coordinates) < 2:
            raise ValueError("A route needs at least two coordinates")

        if has_long_segment(coordinates, MAX_ROUTABLE_SEGMENT_KM):
            logger.info(f"[ROUTE] Leg over {MAX_ROUTABLE_SEGMENT_KM:.0f} km, using geodesic line")
            return geodesic_route(coordinates, "long distance")

        profile = profile_for(travel_mode)
        params: dict[str, Any] = {"geometries": "geojson", "overview": "full"}
        if profile == "driving":
            excludes = [EXCLUDES_BY_PREFERENCE[p] for p in preferences if p in EXCLUDES_BY_PREFERENCE]
            if excludes:
                params["exclude"] = ",".join(excludes)

        try:
            data = await self._fetch(coordinates, profile, params)
        except DirectionsError as e:
            logger.warning(f"[ROUTE] Directions failed ({e}), falling back to geodesic line")
            return geodesic_route(coordinates, str(e))

        best = data["routes"][0]
        line = (best.get("geometry") or {}).get("coordinates") or []
        if len(line) < 2:
            logger.warning("[ROUTE] Directions returned empty geometry, using geodesic line")
            return geodesic_route(coordinates, "empty geometry")

        logger.info(f"[ROUTE] {profile} route with {len(line)} points, {best.get('distance', 0) / 1000:.1f} km")
        return RouteResult(
            coordinates=line,
            route_type=RouteType(profile),
            distance=best.get("distance"),
            duration=best.get("duration"),
        )
