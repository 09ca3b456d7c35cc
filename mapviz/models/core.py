"""Core data models for the map query visualizer.

Extraction results travel to the browser as camelCase JSON (``intentType``,
``timeContext``...), which is also the shape the LLM is asked to produce, so
these models accept either spelling on input and emit camelCase on output.

Coordinates are always ``[lon, lat]`` pairs, the order Mapbox uses.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class IntentType(str, Enum):
    """What the user wants drawn."""

    ROUTE = "route"
    LOCATIONS = "locations"


class TravelMode(str, Enum):
    """Travel modes understood by the extractor and router."""

    DRIVING = "driving"
    WALKING = "walking"
    CYCLING = "cycling"
    TRANSIT = "transit"


class VisualizationType(str, Enum):
    """Map styling requested for a result."""

    BOTH = "both"
    DEFAULT = "default"
    HISTORICAL = "historical"
    TERRAIN = "terrain"
    SATELLITE = "satellite"
    TRANSPARENT = "transparent"


class EntityType(str, Enum):
    """Rough classification of a place name."""

    PLACE = "place"
    NATURAL_FEATURE = "naturalFeature"
    HISTORICAL_SITE = "historicalSite"
    ADMINISTRATIVE_AREA = "administrativeArea"
    POINT_OF_INTEREST = "pointOfInterest"
    URBAN_AREA = "urbanArea"
    COUNTRY = "country"
    MAJOR_CITY = "majorCity"


class RouteType(str, Enum):
    """How a drawn route line was produced."""

    DRIVING = "driving"
    WALKING = "walking"
    CYCLING = "cycling"
    GEODESIC = "geodesic"


class Location(CamelModel):
    """A place mentioned in a query."""

    name: str = Field(..., min_length=1, description="Place name as written")
    time_context: str = Field(
        default="", description="Time period or year attached to the place"
    )
    coordinates: Optional[list[float]] = Field(
        None,
        min_length=2,
        max_length=2,
        description="Predefined [lon, lat], skips geocoding when present",
    )
    entity_type: EntityType = Field(
        default=EntityType.PLACE, description="Classification of the place name"
    )


class Clarification(CamelModel):
    """Follow-up question offered when an extraction is uncertain."""

    type: str = Field(..., description="ambiguousLocations or ambiguousIntent")
    message: str
    ambiguous_locations: list[str] = Field(default_factory=list)
    alternatives: list[str] = Field(default_factory=list)
    options: list[str] = Field(default_factory=list)


class ExtractionResult(CamelModel):
    """Structured reading of a natural-language map query.

    Produced once per query and consumed immediately by the visualization
    applier; nothing here is persisted.
    """

    intent_type: IntentType = IntentType.LOCATIONS
    locations: list[Location] = Field(default_factory=list)
    visualization_type: VisualizationType = VisualizationType.BOTH
    travel_mode: TravelMode = TravelMode.DRIVING
    preferences: list[str] = Field(default_factory=list)
    message: str = ""
    suggested_sequence: list[str] = Field(default_factory=list)
    source: str = Field(default="", description="Extraction rule that produced this")
    confidence: float = Field(default=0.95, ge=0, le=1)
    needs_clarification: bool = False
    clarification: Optional[Clarification] = None
    skip_clarification: bool = False

    @property
    def sequence(self) -> list[str]:
        """Names in the order they should be visited or drawn."""
        return self.suggested_sequence or [loc.name for loc in self.locations]


class GeocodeResult(CamelModel):
    """A place name resolved to coordinates."""

    name: str
    coordinates: list[float] = Field(..., min_length=2, max_length=2)
    place_name: str = ""
    source: str = Field(
        default="mapbox",
        description="lookup, mapbox, fuzzy, cache or predefined",
    )


class RouteResult(CamelModel):
    """An ordered line of [lon, lat] pairs, from the directions API or synthesized."""

    coordinates: list[list[float]] = Field(default_factory=list)
    route_type: RouteType = RouteType.DRIVING
    distance: Optional[float] = Field(None, ge=0, description="Meters")
    duration: Optional[float] = Field(None, ge=0, description="Seconds")
    is_fallback: bool = False
    reason: Optional[str] = None


class MessageLevel(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class DrawOperation(CamelModel):
    """A single map call for the client to replay, e.g. ``fit_bounds``."""

    op: str
    target: Optional[str] = None
    args: dict[str, Any] = Field(default_factory=dict)


class VisualizationPlan(CamelModel):
    """Everything the browser needs to redraw the map for one result."""

    operations: list[DrawOperation] = Field(default_factory=list)
    message: str = ""
    message_level: MessageLevel = MessageLevel.SUCCESS
    route_type: Optional[RouteType] = None
    points: list[GeocodeResult] = Field(default_factory=list)
    unresolved: list[str] = Field(default_factory=list)
    style_url: Optional[str] = None
