"""ExtractionResult → map draw calls.

Route results are geocoded in sequence order, marked start/stop/end and
joined by a routed (or geodesic) line. Location results become plain
markers. Unknown places and routing failures degrade to a warning and a
partial plan; they never raise.
"""

import logging
from typing import Any, Optional

from mapviz.models import (
    ExtractionResult,
    GeocodeResult,
    IntentType,
    Location,
    MessageLevel,
    RouteType,
    VisualizationPlan,
    VisualizationType,
)
from mapviz.services.geocoder import GeocoderService
from mapviz.services.router import RouterService
from mapviz.utils.geo import bounding_box

from .canvas import MapCanvas, RecordingMapCanvas

logger = logging.getLogger(__name__)

LOCATIONS_SOURCE = "locations"
ROUTE_SOURCE = "route"
LOCATIONS_LAYER = "locations-layer"
ROUTE_LAYER = "route-layer"

START_COLOR = "#12830e"
END_COLOR = "#B42222"
STOP_COLOR = "#3887BE"

ROUTE_COLORS = {
    RouteType.DRIVING: "#3887be",
    RouteType.WALKING: "#3887be",
    RouteType.CYCLING: "#3887be",
    RouteType.GEODESIC: "#009688",
}
DASHED = [2, 1]
SOLID = [1]

ROUTE_PADDING = 50
LOCATIONS_PADDING = 100
LOCATIONS_MAX_ZOOM = 13
SINGLE_POINT_ZOOM = 12

STYLE_URLS = {
    VisualizationType.SATELLITE: "mapbox://styles/mapbox/satellite-streets-v12",
    VisualizationType.TERRAIN: "mapbox://styles/mapbox/outdoors-v12",
    VisualizationType.HISTORICAL: "mapbox://styles/mapbox/light-v11",
}
DEFAULT_STYLE_URL = "mapbox://styles/mapbox/streets-v12"


def style_for(visualization_type: VisualizationType | str) -> str:
    """Mapbox style URL for a visualization type."""
    try:
        return STYLE_URLS.get(VisualizationType(visualization_type), DEFAULT_STYLE_URL)
    except ValueError:
        return DEFAULT_STYLE_URL


def empty_feature_collection() -> dict[str, Any]:
    return {"type": "FeatureCollection", "features": []}


def line_feature(coordinates: list[list[float]]) -> dict[str, Any]:
    return {
        "type": "Feature",
        "properties": {},
        "geometry": {"type": "LineString", "coordinates": coordinates},
    }


def point_feature(point: GeocodeResult, description: str) -> dict[str, Any]:
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": point.coordinates},
        "properties": {"name": point.name, "description": description},
    }


def marker_color(index: int, total: int) -> str:
    if index == 0:
        return START_COLOR
    if index == total - 1:
        return END_COLOR
    return STOP_COLOR


class VisualizationApplier:
    """Draws extraction results onto a ``MapCanvas``."""

    def __init__(self, geocoder: GeocoderService, router: RouterService) -> None:
        self._geocoder = geocoder
        self._router = router

    # ── Setup ─────────────────────────────────────────────────────────

    @staticmethod
    def _ensure_layers(canvas: MapCanvas) -> None:
        if not canvas.has_source(LOCATIONS_SOURCE):
            canvas.add_source(LOCATIONS_SOURCE, empty_feature_collection())
        if not canvas.has_layer(LOCATIONS_LAYER):
            canvas.add_layer({
                "id": LOCATIONS_LAYER,
                "type": "circle",
                "source": LOCATIONS_SOURCE,
                "paint": {
                    "circle-radius": 8,
                    "circle-color": "#3887be",
                    "circle-stroke-width": 2,
                    "circle-stroke-color": "#ffffff",
                },
            })
        if not canvas.has_source(ROUTE_SOURCE):
            canvas.add_source(ROUTE_SOURCE, line_feature([]))
        if not canvas.has_layer(ROUTE_LAYER):
            canvas.add_layer({
                "id": ROUTE_LAYER,
                "type": "line",
                "source": ROUTE_SOURCE,
                "layout": {"line-join": "round", "line-cap": "round"},
                "paint": {"line-color": "#3887be", "line-width": 4, "line-opacity": 0.8},
            })

    @staticmethod
    def _clear(canvas: MapCanvas) -> None:
        canvas.set_data(LOCATIONS_SOURCE, empty_feature_collection())
        canvas.set_data(ROUTE_SOURCE, line_feature([]))
        canvas.clear_markers()

    async def _resolve(self, names: list[str], locations: list[Location]) -> list[Optional[GeocodeResult]]:
        """Geocode ``names`` in order; predefined coordinates skip the geocoder."""
        predefined = {loc.name: loc.coordinates for loc in locations if loc.coordinates}
        to_geocode = [n for n in names if n not in predefined]
        geocoded = dict(zip(to_geocode, await self._geocoder.geocode_many(to_geocode)))

        resolved: list[Optional[GeocodeResult]] = []
        for name in names:
            if name in predefined:
                resolved.append(GeocodeResult(
                    name=name, coordinates=list(predefined[name]), place_name=name, source="predefined"
                ))
            else:
                resolved.append(geocoded.get(name))
        return resolved

    # ── Route intent ──────────────────────────────────────────────────

    async def _apply_route(self, result: ExtractionResult, canvas: MapCanvas, plan: VisualizationPlan) -> None:
        sequence = result.sequence
        resolved = await self._resolve(sequence, result.locations)
        points = [p for p in resolved if p is not None]
        plan.unresolved = [name for name, p in zip(sequence, resolved) if p is None]
        plan.points = points

        if len(points) < 2:
            logger.info(f"[VIZ] Only {len(points)} of {len(sequence)} route stops geocoded")
            plan.message = "Could not geocode enough locations for a route. Need at least 2 valid locations."
            plan.message_level = MessageLevel.ERROR
            return

        # Stop numbers follow the drawn points so features and popups agree
        canvas.set_data(LOCATIONS_SOURCE, {
            "type": "FeatureCollection",
            "features": [
                point_feature(p, f"{p.name} (Stop #{i + 1})")
                for i, p in enumerate(points)
            ],
        })
        for i, point in enumerate(points):
            canvas.add_marker(
                point.coordinates,
                color=marker_color(i, len(points)),
                label=str(i + 1),
                popup=f"{point.name} (Stop #{i + 1})",
            )

        coordinates = [p.coordinates for p in points]
        try:
            route = await self._router.route(coordinates, result.travel_mode, result.preferences)
        except Exception as e:
            logger.warning(f"[VIZ] Routing failed, showing stops only: {e}")
            canvas.fit_bounds(bounding_box(coordinates), padding=ROUTE_PADDING)
            plan.message = f"Couldn't create a route between these locations ({e}). Showing locations only."
            plan.message_level = MessageLevel.WARNING
            return

        canvas.set_data(ROUTE_SOURCE, line_feature(route.coordinates))
        canvas.set_paint(ROUTE_LAYER, "line-color", ROUTE_COLORS[route.route_type])
        canvas.set_paint(
            ROUTE_LAYER, "line-dasharray", DASHED if route.route_type == RouteType.GEODESIC else SOLID
        )
        canvas.fit_bounds(bounding_box(route.coordinates or coordinates), padding=ROUTE_PADDING)

        plan.route_type = route.route_type
        route_label = f"{route.route_type.value} route"
        if result.message:
            plan.message = f"{result.message} ({route_label})"
        else:
            plan.message = f"Showing {route_label} from {points[0].name} to {points[-1].name}"
        logger.info(f"[VIZ] Drew {route_label} through {len(points)} stops")

    # ── Locations intent ──────────────────────────────────────────────

    async def _apply_locations(
        self, result: ExtractionResult, canvas: MapCanvas, plan: VisualizationPlan
    ) -> None:
        locations = result.locations
        if any(loc.coordinates for loc in locations):
            chosen = [loc for loc in locations if loc.coordinates]
        else:
            chosen = list(locations)
        resolved = await self._resolve([loc.name for loc in chosen], chosen)

        pairs = [(loc, p) for loc, p in zip(chosen, resolved) if p is not None]
        plan.unresolved = [loc.name for loc, p in zip(chosen, resolved) if p is None]
        plan.points = [p for _, p in pairs]

        if not pairs:
            plan.message = "Could not find any of the specified locations on the map"
            plan.message_level = MessageLevel.ERROR
            return

        canvas.set_data(LOCATIONS_SOURCE, {
            "type": "FeatureCollection",
            "features": [
                point_feature(p, f"{loc.name} ({loc.time_context})" if loc.time_context else loc.name)
                for loc, p in pairs
            ],
        })
        for loc, point in pairs:
            canvas.add_marker(point.coordinates, color=STOP_COLOR, popup=loc.name)

        if len(pairs) == 1:
            canvas.set_center(pairs[0][1].coordinates)
            canvas.set_zoom(SINGLE_POINT_ZOOM)
        else:
            canvas.fit_bounds(
                bounding_box([p.coordinates for _, p in pairs]),
                padding=LOCATIONS_PADDING,
                max_zoom=LOCATIONS_MAX_ZOOM,
            )

        plan.message = result.message or f"Showing locations: {', '.join(loc.name for loc, _ in pairs)}"
        logger.info(f"[VIZ] Drew {len(pairs)} of {len(chosen)} locations")

    # ── Public ────────────────────────────────────────────────────────

    async def apply(
        self,
        result: ExtractionResult | None,
        canvas: MapCanvas | None = None,
    ) -> VisualizationPlan:
        """Draw ``result`` onto ``canvas`` and describe what happened.

        Raises:
            ValueError: If ``result`` is missing or has no locations.
        """
        if result is None:
            raise ValueError("Result is not available")
        if not result.locations:
            raise ValueError("No locations found in the result")

        canvas = canvas if canvas is not None else RecordingMapCanvas()
        logger.info(
            f"[VIZ] Applying {result.intent_type.value} for "
            f"{[loc.name for loc in result.locations]}"
        )

        self._ensure_layers(canvas)
        self._clear(canvas)

        plan = VisualizationPlan(style_url=style_for(result.visualization_type))
        if result.intent_type == IntentType.ROUTE:
            await self._apply_route(result, canvas, plan)
        else:
            await self._apply_locations(result, canvas, plan)

        if plan.unresolved and plan.message_level == MessageLevel.SUCCESS:
            plan.message_level = MessageLevel.WARNING
            plan.message = f"{plan.message} Could not find: {', '.join(plan.unresolved)}."

        if isinstance(canvas, RecordingMapCanvas):
            plan.operations = list(canvas.operations)
        return plan
