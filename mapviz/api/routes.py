"""API routes for the map query visualizer.

Two groups of endpoints:
- Proxies (token, geocoding, directions, Gemini): keep API keys on the
  server and answer with the upstream-shaped body or ``{"error": ...}``
  plus an HTTP status.
- Query/visualize: run the extractor and applier and answer with the
  ``success``/``error`` envelope used across the app.
"""

import logging
import platform
import sys
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from mapviz.config import get_settings
from mapviz.models import (
    AppError,
    CamelModel,
    DirectionsError,
    ErrorCode,
    ExtractionResult,
    GeocodingError,
    MessageLevel,
    RecoveryOption,
    VisualizationPlan,
    Warning,
)
from mapviz.services import (
    IntentExtractor,
    LLMService,
    MapboxGeocoderService,
    MapboxRouterService,
    RecordingMapCanvas,
    RedisCacheService,
    VisualizationApplier,
    create_llm_service,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# Request/Response models
class GeocodingRequest(BaseModel):
    """Proxy geocoding request."""
    location: Optional[str] = None


class DirectionsRequest(BaseModel):
    """Proxy directions request; coordinates are [lon, lat] pairs."""
    coordinates: Optional[list[list[float]]] = None
    profile: str = "driving"


class GeminiRequest(BaseModel):
    contents: Optional[Any] = None


class QueryRequest(CamelModel):
    """Natural-language query, optionally tied to a conversation."""
    query: str = Field(..., description="What the user typed")
    session_id: Optional[str] = None


class QueryResponse(BaseModel):
    success: bool
    result: Optional[ExtractionResult] = None
    error: Optional[AppError] = None


class VisualizeRequest(CamelModel):
    """Either a raw query or an already-extracted result to draw."""
    query: Optional[str] = None
    result: Optional[ExtractionResult] = None
    session_id: Optional[str] = None
    existing_sources: list[str] = Field(default_factory=list)
    existing_layers: list[str] = Field(default_factory=list)


class VisualizeResponse(BaseModel):
    success: bool
    result: Optional[ExtractionResult] = None
    plan: Optional[VisualizationPlan] = None
    error: Optional[AppError] = None
    warnings: Optional[list[Warning]] = None


def _error(status_code: int, message: str, code: ErrorCode | None = None) -> JSONResponse:
    content: dict[str, Any] = {"error": message}
    if code is not None:
        content["code"] = code.value
    return JSONResponse(status_code=status_code, content=content)


# Service instances
_llm_service: LLMService | None = None
_cache_service: RedisCacheService | None = None
_geocoder_service: MapboxGeocoderService | None = None
_router_service: MapboxRouterService | None = None
_extractor: IntentExtractor | None = None
_applier: VisualizationApplier | None = None


def get_llm_service() -> LLMService:
    global _llm_service
    if _llm_service is None:
        _llm_service = create_llm_service(get_settings())
    return _llm_service


def get_cache_service() -> RedisCacheService | None:
    global _cache_service
    settings = get_settings()
    if _cache_service is None and settings.redis_url:
        _cache_service = RedisCacheService(settings.redis_url)
    return _cache_service


def get_geocoder_service() -> MapboxGeocoderService:
    global _geocoder_service
    if _geocoder_service is None:
        settings = get_settings()
        _geocoder_service = MapboxGeocoderService(
            settings.mapbox_token,
            timeout=settings.geocode_timeout,
            shared_cache=get_cache_service(),
        )
    return _geocoder_service


def get_router_service() -> MapboxRouterService:
    global _router_service
    if _router_service is None:
        settings = get_settings()
        _router_service = MapboxRouterService(settings.mapbox_token, timeout=settings.directions_timeout)
    return _router_service


def get_extractor() -> IntentExtractor:
    global _extractor
    if _extractor is None:
        _extractor = IntentExtractor(llm=get_llm_service())
    return _extractor


def get_applier() -> VisualizationApplier:
    global _applier
    if _applier is None:
        _applier = VisualizationApplier(get_geocoder_service(), get_router_service())
    return _applier


async def close_services() -> None:
    """Close long-lived clients; called on application shutdown."""
    global _llm_service, _cache_service, _geocoder_service, _router_service, _extractor, _applier
    for service in (_geocoder_service, _router_service, _llm_service):
        if service is not None:
            await service.close()
    if _cache_service is not None:
        await _cache_service.disconnect()
    _llm_service = _cache_service = _geocoder_service = _router_service = None
    _extractor = _applier = None


# ─── Proxies ───

@router.get("/mapbox-token")
async def mapbox_token():
    """Public Mapbox token for the browser map."""
    settings = get_settings()
    if not settings.mapbox_token:
        return _error(500, "Mapbox token not configured", ErrorCode.NOT_CONFIGURED)
    return {"token": settings.mapbox_token}


@router.post("/mapbox-geocoding")
async def mapbox_geocoding(request: GeocodingRequest):
    """Single Mapbox geocoding lookup: ``{coordinates, placeName, id}``."""
    if not request.location or not request.location.strip():
        return _error(400, "Location is required", ErrorCode.INVALID_INPUT)
    try:
        return await get_geocoder_service().lookup_raw(request.location)
    except GeocodingError as e:
        logger.warning(f"[GEOCODE] Proxy lookup failed for {request.location!r}: {e}")
        if e.status_code == 404:
            return _error(404, str(e), ErrorCode.GEOCODING_FAILED)
        return _error(500, "Error geocoding location", ErrorCode.API_ERROR)


@router.post("/mapbox-directions")
async def mapbox_directions(request: DirectionsRequest):
    """Mapbox directions: ``{route: {geometry, distance, duration, legs, waypoints}}``."""
    if not request.coordinates or len(request.coordinates) < 2:
        return _error(400, "At least two coordinates are required", ErrorCode.INVALID_INPUT)
    if any(len(pair) != 2 for pair in request.coordinates):
        return _error(400, "Each coordinate must be a [longitude, latitude] pair", ErrorCode.INVALID_INPUT)
    try:
        return await get_router_service().directions_raw(request.coordinates, request.profile)
    except ValueError as e:
        return _error(400, str(e), ErrorCode.INVALID_INPUT)
    except DirectionsError as e:
        logger.warning(f"[ROUTE] Proxy directions failed: {e}")
        if e.status_code == 400:
            return JSONResponse(
                status_code=400,
                content={
                    "error": str(e),
                    "code": ErrorCode.NO_ROUTE.value,
                    "message": "The locations may be too far apart, on different continents, "
                               "or not accessible by the selected travel mode.",
                },
            )
        if e.status_code == 404:
            return _error(404, "No route found", ErrorCode.NO_ROUTE)
        return _error(500, "Error getting directions", ErrorCode.API_ERROR)


@router.post("/gemini")
async def gemini(request: GeminiRequest):
    """Raw text model proxy with a Gemini ``generateContent`` shaped reply."""
    if not request.contents:
        return _error(400, "Contents are required", ErrorCode.INVALID_INPUT)
    settings = get_settings()
    if not settings.use_mock_data and not settings.llm_configured:
        return _error(501, "Gemini API key not configured", ErrorCode.NOT_CONFIGURED)
    try:
        return await get_llm_service().generate_content(request.contents)
    except ValueError as e:
        return _error(400, str(e), ErrorCode.INVALID_INPUT)


@router.get("/config")
async def client_config():
    """Flags the browser uses to decide whether to call the model."""
    settings = get_settings()
    return {
        "useMockData": get_llm_service().is_mock,
        "geminiApiAvailable": bool(settings.gemini_api_key),
        "mapboxConfigured": settings.mapbox_configured,
    }


@router.get("/debug")
async def debug_status():
    """Configuration status. Never includes secrets."""
    settings = get_settings()
    token = settings.mapbox_token
    return {
        "status": "ok",
        "server": {
            "version": platform.python_version(),
            "platform": sys.platform,
        },
        "apis": {
            "mapbox": {
                "configured": bool(token),
                "tokenPrefix": f"{token[:5]}..." if token else "Not set",
            },
            "gemini": {
                "configured": bool(settings.gemini_api_key),
                "mockMode": get_llm_service().is_mock,
            },
            "groq": {"configured": bool(settings.groq_api_key)},
            "redis": {"configured": bool(settings.redis_url)},
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ─── Query + visualize ───

@router.post("/query", response_model=QueryResponse)
async def query(request: QueryRequest) -> QueryResponse:
    """Extract intent and locations from a natural-language query."""
    try:
        result = await get_extractor().extract_with_context(request.query, request.session_id)
        return QueryResponse(success=True, result=result)
    except ValueError as e:
        return QueryResponse(
            success=False,
            error=AppError(
                code=ErrorCode.INVALID_INPUT,
                message=str(e),
                user_message="Please type a place or a route, e.g. \"Paris to London\".",
            ),
        )
    except Exception as e:
        logger.error(f"[NLP] Query failed: {e}")
        return QueryResponse(
            success=False,
            error=AppError(
                code=ErrorCode.API_ERROR,
                message=str(e),
                user_message="Something went wrong reading your query. Please try again.",
            ),
        )


@router.post("/visualize", response_model=VisualizeResponse)
async def visualize(request: VisualizeRequest) -> VisualizeResponse:
    """Extract (unless a result is given) and build the map draw plan."""
    result = request.result
    try:
        if result is None:
            if not request.query or not request.query.strip():
                raise ValueError("Either query or result is required")
            result = await get_extractor().extract_with_context(request.query, request.session_id)

        canvas = RecordingMapCanvas(request.existing_sources, request.existing_layers)
        plan = await get_applier().apply(result, canvas)
    except ValueError as e:
        no_locations = result is not None and not result.locations
        return VisualizeResponse(
            success=False,
            result=result,
            error=AppError(
                code=ErrorCode.NO_LOCATIONS if no_locations else ErrorCode.INVALID_INPUT,
                message=str(e),
                user_message="No locations to show. Try naming a city or landmark."
                if no_locations
                else "Please type a place or a route, e.g. \"Paris to London\".",
            ),
        )
    except Exception as e:
        logger.error(f"[VIZ] Visualization failed: {e}")
        return VisualizeResponse(
            success=False,
            result=result,
            error=AppError(
                code=ErrorCode.API_ERROR,
                message=str(e),
                user_message="Something went wrong drawing the map. Please try again.",
            ),
        )

    warnings = None
    if plan.unresolved:
        warnings = [Warning(
            code="UNRESOLVED_LOCATIONS",
            message=f"Could not find {len(plan.unresolved)} location(s)",
            affected_locations=plan.unresolved,
        )]

    if plan.message_level == MessageLevel.ERROR:
        return VisualizeResponse(
            success=False,
            result=result,
            plan=plan,
            warnings=warnings,
            error=AppError(
                code=ErrorCode.GEOCODING_FAILED,
                message=plan.message,
                user_message=plan.message,
                recovery_options=[
                    RecoveryOption(label="Try a different spelling", action="edit_query"),
                    RecoveryOption(label="Add a country, e.g. \"Paris, France\"", action="edit_query"),
                ],
            ),
        )
    return VisualizeResponse(success=True, result=result, plan=plan, warnings=warnings)
