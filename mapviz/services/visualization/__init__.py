"""Turns extraction results into replayable map draw calls."""

from .canvas import MapCanvas, RecordingMapCanvas
from .service import VisualizationApplier, style_for

__all__ = [
    "MapCanvas",
    "RecordingMapCanvas",
    "VisualizationApplier",
    "style_for",
]
