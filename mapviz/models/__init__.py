"""Data models for the map query visualizer."""

from .core import (
    CamelModel,
    Clarification,
    DrawOperation,
    EntityType,
    ExtractionResult,
    GeocodeResult,
    IntentType,
    Location,
    MessageLevel,
    RouteResult,
    RouteType,
    TravelMode,
    VisualizationPlan,
    VisualizationType,
)
from .errors import (
    AppError,
    DirectionsError,
    ErrorCode,
    GeocodingError,
    LLMError,
    MapVizError,
    RecoveryOption,
    Warning,
)

__all__ = [
    # Core
    "CamelModel",
    "Clarification",
    "DrawOperation",
    "EntityType",
    "ExtractionResult",
    "GeocodeResult",
    "IntentType",
    "Location",
    "MessageLevel",
    "RouteResult",
    "RouteType",
    "TravelMode",
    "VisualizationPlan",
    "VisualizationType",
    # Errors
    "AppError",
    "DirectionsError",
    "ErrorCode",
    "GeocodingError",
    "LLMError",
    "MapVizError",
    "RecoveryOption",
    "Warning",
]
