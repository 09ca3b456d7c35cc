"""Map query visualizer services.

Service layer components:
- Cache: optional Redis cache shared by workers
- LLM: Gemini (primary) + Groq (secondary) + canned mock
- Extractor: rule-based intent/location extraction with model fallback
- Geocoder: built-in table, Mapbox Geocoding, fuzzy fallback
- Router: Mapbox Directions with geodesic fallback
- Visualization: turns extraction results into map draw calls
"""

from .cache import CacheService, RedisCacheService
from .extractor import ConversationContext, IntentExtractor
from .geocoder import GeocoderService, MapboxGeocoderService
from .llm import (
    GeminiLLMService,
    GroqLLMService,
    LLMService,
    MockLLMService,
    create_llm_service,
)
from .router import MapboxRouterService, RouterService
from .visualization import (
    MapCanvas,
    RecordingMapCanvas,
    VisualizationApplier,
    style_for,
)

__all__ = [
    # Cache
    "CacheService",
    "RedisCacheService",
    # LLM
    "GeminiLLMService",
    "GroqLLMService",
    "LLMService",
    "MockLLMService",
    "create_llm_service",
    # Extractor
    "ConversationContext",
    "IntentExtractor",
    # Geocoder
    "GeocoderService",
    "MapboxGeocoderService",
    # Router
    "MapboxRouterService",
    "RouterService",
    # Visualization
    "MapCanvas",
    "RecordingMapCanvas",
    "VisualizationApplier",
    "style_for",
]
