"""Unit tests for the visualization applier."""

import pytest

from mapviz.models import (
    ExtractionResult,
    GeocodeResult,
    IntentType,
    Location,
    MessageLevel,
    RouteResult,
    RouteType,
    VisualizationType,
)
from mapviz.services.geocoder import GeocoderService
from mapviz.services.router import RouterService, geodesic_route
from mapviz.services.visualization import RecordingMapCanvas, VisualizationApplier, style_for

PLACES = {
    "Paris": [2.3522, 48.8566],
    "Brussels": [4.3517, 50.8503],
    "Amsterdam": [4.9041, 52.3676],
}


class FakeGeocoder(GeocoderService):
    def __init__(self) -> None:
        self.asked: list[str] = []

    async def geocode(self, name):
        self.asked.append(name)
        if name not in PLACES:
            return None
        return GeocodeResult(name=name, coordinates=PLACES[name], place_name=name)


class FakeRouter(RouterService):
    """Straight line through the stops, or a configured failure."""

    def __init__(self, error: Exception | None = None, geodesic: bool = False) -> None:
        self._error = error
        self._geodesic = geodesic
        self.calls: list = []

    async def route(self, coordinates, travel_mode="driving", preferences=()):
        self.calls.append((list(coordinates), travel_mode, list(preferences)))
        if self._error:
            raise self._error
        if self._geodesic:
            return geodesic_route(coordinates, "long distance")
        return RouteResult(coordinates=[list(c) for c in coordinates], route_type=RouteType.DRIVING)


def route_result(*names: str, **kwargs) -> ExtractionResult:
    return ExtractionResult(
        intent_type=IntentType.ROUTE,
        locations=[Location(name=n) for n in names],
        message=kwargs.pop("message", "Showing route"),
        **kwargs,
    )


def ops(plan, name: str) -> list:
    return [op for op in plan.operations if op.op == name]


class TestRouteIntent:
    """Tests for drawing route results."""

    def setup_method(self) -> None:
        self.geocoder = FakeGeocoder()
        self.router = FakeRouter()
        self.applier = VisualizationApplier(self.geocoder, self.router)

    @pytest.mark.asyncio
    async def test_route_plan(self) -> None:
        canvas = RecordingMapCanvas()
        plan = await self.applier.apply(route_result("Paris", "Brussels", "Amsterdam"), canvas)

        assert plan.message_level == MessageLevel.SUCCESS
        assert plan.message == "Showing route (driving route)"
        assert plan.route_type == RouteType.DRIVING
        assert [m["color"] for m in canvas.markers] == ["#12830e", "#3887BE", "#B42222"]
        assert [m["label"] for m in canvas.markers] == ["1", "2", "3"]
        assert canvas.source_data("route")["geometry"]["coordinates"] == [
            PLACES["Paris"], PLACES["Brussels"], PLACES["Amsterdam"],
        ]
        fit = ops(plan, "fit_bounds")[-1]
        assert fit.args["padding"] == 50

    @pytest.mark.asyncio
    async def test_sequence_order_wins(self) -> None:
        result = route_result("Paris", "Amsterdam", suggested_sequence=["Amsterdam", "Paris"])
        await self.applier.apply(result, RecordingMapCanvas())
        assert self.router.calls[0][0] == [PLACES["Amsterdam"], PLACES["Paris"]]

    @pytest.mark.asyncio
    async def test_round_trip_stop_numbers(self) -> None:
        canvas = RecordingMapCanvas()
        result = route_result("Paris", "Brussels", suggested_sequence=["Paris", "Brussels", "Paris"])
        await self.applier.apply(result, canvas)

        descriptions = [f["properties"]["description"] for f in canvas.source_data("locations")["features"]]
        assert descriptions == ["Paris (Stop #1)", "Brussels (Stop #2)", "Paris (Stop #3)"]
        assert [m["popup"] for m in canvas.markers] == descriptions

    @pytest.mark.asyncio
    async def test_stop_numbers_skip_unresolved(self) -> None:
        canvas = RecordingMapCanvas()
        plan = await self.applier.apply(route_result("Paris", "Atlantis", "Brussels"), canvas)

        descriptions = [f["properties"]["description"] for f in canvas.source_data("locations")["features"]]
        assert descriptions == ["Paris (Stop #1)", "Brussels (Stop #2)"]
        assert [m["popup"] for m in canvas.markers] == descriptions
        assert plan.unresolved == ["Atlantis"]

    @pytest.mark.asyncio
    async def test_travel_mode_and_preferences_forwarded(self) -> None:
        result = route_result("Paris", "Brussels", preferences=["avoid tolls"])
        await self.applier.apply(result, RecordingMapCanvas())
        _, mode, prefs = self.router.calls[0]
        assert mode.value == "driving"
        assert prefs == ["avoid tolls"]

    @pytest.mark.asyncio
    async def test_geodesic_route_is_dashed(self) -> None:
        applier = VisualizationApplier(self.geocoder, FakeRouter(geodesic=True))
        plan = await applier.apply(route_result("Paris", "Amsterdam"), RecordingMapCanvas())
        paint = {op.args["property"]: op.args["value"] for op in ops(plan, "set_paint")}
        assert paint == {"line-color": "#009688", "line-dasharray": [2, 1]}
        assert plan.route_type == RouteType.GEODESIC

    @pytest.mark.asyncio
    async def test_unresolved_stop_is_a_warning(self) -> None:
        plan = await self.applier.apply(route_result("Paris", "Atlantis", "Brussels"), RecordingMapCanvas())
        assert plan.unresolved == ["Atlantis"]
        assert plan.message_level == MessageLevel.WARNING
        assert plan.message.endswith("Could not find: Atlantis.")
        assert len(self.router.calls[0][0]) == 2

    @pytest.mark.asyncio
    async def test_too_few_points(self) -> None:
        plan = await self.applier.apply(route_result("Paris", "Atlantis"), RecordingMapCanvas())
        assert plan.message_level == MessageLevel.ERROR
        assert plan.message.startswith("Could not geocode enough locations")
        assert self.router.calls == []

    @pytest.mark.asyncio
    async def test_routing_failure_shows_stops(self) -> None:
        applier = VisualizationApplier(self.geocoder, FakeRouter(error=RuntimeError("boom")))
        canvas = RecordingMapCanvas()
        plan = await applier.apply(route_result("Paris", "Brussels"), canvas)
        assert plan.message_level == MessageLevel.WARNING
        assert "Showing locations only" in plan.message
        assert len(canvas.markers) == 2
        assert ops(plan, "fit_bounds")

    @pytest.mark.asyncio
    async def test_predefined_coordinates_skip_geocoder(self) -> None:
        result = ExtractionResult(
            intent_type=IntentType.ROUTE,
            locations=[
                Location(name="Camp", coordinates=[5.0, 50.0]),
                Location(name="Paris"),
            ],
        )
        plan = await self.applier.apply(result, RecordingMapCanvas())
        assert self.geocoder.asked == ["Paris"]
        assert plan.points[0].source == "predefined"


class TestLocationsIntent:
    """Tests for drawing plain location results."""

    def setup_method(self) -> None:
        self.geocoder = FakeGeocoder()
        self.applier = VisualizationApplier(self.geocoder, FakeRouter())

    @pytest.mark.asyncio
    async def test_single_location_centers(self) -> None:
        result = ExtractionResult(locations=[Location(name="Paris")], message="Showing location: Paris")
        plan = await self.applier.apply(result, RecordingMapCanvas())
        assert ops(plan, "set_center")[0].args["center"] == PLACES["Paris"]
        assert ops(plan, "set_zoom")[0].args["zoom"] == 12
        assert plan.message == "Showing location: Paris"

    @pytest.mark.asyncio
    async def test_several_locations_fit_bounds(self) -> None:
        result = ExtractionResult(locations=[
            Location(name="Paris", time_context="1920s"),
            Location(name="Amsterdam"),
        ])
        canvas = RecordingMapCanvas()
        plan = await self.applier.apply(result, canvas)
        fit = ops(plan, "fit_bounds")[0]
        assert fit.args == {
            "bounds": [[2.3522, 48.8566], [4.9041, 52.3676]],
            "padding": 100,
            "maxZoom": 13,
        }
        descriptions = [f["properties"]["description"] for f in canvas.source_data("locations")["features"]]
        assert descriptions == ["Paris (1920s)", "Amsterdam"]
        assert all(m["color"] == "#3887BE" for m in canvas.markers)

    @pytest.mark.asyncio
    async def test_nothing_found(self) -> None:
        result = ExtractionResult(locations=[Location(name="Atlantis")])
        plan = await self.applier.apply(result, RecordingMapCanvas())
        assert plan.message_level == MessageLevel.ERROR
        assert plan.message == "Could not find any of the specified locations on the map"


class TestApply:
    """Tests for setup and validation common to both intents."""

    def setup_method(self) -> None:
        self.applier = VisualizationApplier(FakeGeocoder(), FakeRouter())

    @pytest.mark.asyncio
    async def test_missing_result(self) -> None:
        with pytest.raises(ValueError, match="Result is not available"):
            await self.applier.apply(None)

    @pytest.mark.asyncio
    async def test_no_locations(self) -> None:
        with pytest.raises(ValueError, match="No locations found"):
            await self.applier.apply(ExtractionResult())

    @pytest.mark.asyncio
    async def test_layers_created_once(self) -> None:
        result = ExtractionResult(locations=[Location(name="Paris")])
        fresh = await self.applier.apply(result, RecordingMapCanvas())
        assert [op.target for op in ops(fresh, "add_source")] == ["locations", "route"]
        assert [op.target for op in ops(fresh, "add_layer")] == ["locations-layer", "route-layer"]

        existing = RecordingMapCanvas(
            existing_sources=["locations", "route"],
            existing_layers=["locations-layer", "route-layer"],
        )
        again = await self.applier.apply(result, existing)
        assert ops(again, "add_source") == []
        assert ops(again, "add_layer") == []

    @pytest.mark.asyncio
    async def test_previous_drawing_cleared_first(self) -> None:
        plan = await self.applier.apply(ExtractionResult(locations=[Location(name="Paris")]))
        names = [op.op for op in plan.operations]
        assert names.index("clear_markers") < names.index("add_marker")

    def test_style_urls(self) -> None:
        assert style_for(VisualizationType.SATELLITE).endswith("satellite-streets-v12")
        assert style_for("terrain").endswith("outdoors-v12")
        assert style_for("both").endswith("streets-v12")
        assert style_for("nonsense").endswith("streets-v12")
