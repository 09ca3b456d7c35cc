"""Error envelope models shared by every endpoint."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class ErrorCode(str, Enum):
    """Machine-readable error codes."""

    INVALID_INPUT = "INVALID_INPUT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NO_LOCATIONS = "NO_LOCATIONS"
    GEOCODING_FAILED = "GEOCODING_FAILED"
    NO_ROUTE = "NO_ROUTE"
    NOT_CONFIGURED = "NOT_CONFIGURED"
    API_ERROR = "API_ERROR"


class RecoveryOption(BaseModel):
    """An action the client can offer after an error."""

    label: str
    action: str
    params: Optional[dict[str, Any]] = None


class AppError(BaseModel):
    """Error returned inside a ``success: false`` response."""

    code: ErrorCode
    message: str = Field(..., description="Technical detail for logs")
    user_message: str = Field(..., description="Text safe to show the user")
    recovery_options: list[RecoveryOption] = Field(default_factory=list)


class Warning(BaseModel):
    """Non-fatal problem attached to a successful response."""

    code: str
    message: str
    affected_locations: list[str] = Field(default_factory=list)


class MapVizError(Exception):
    """Base class for upstream failures raised by the services."""

    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class GeocodingError(MapVizError):
    """Mapbox Geocoding failed or found nothing."""


class DirectionsError(MapVizError):
    """Mapbox Directions failed or found no route."""


class LLMError(MapVizError):
    """The text model timed out, failed, or returned unusable JSON."""
