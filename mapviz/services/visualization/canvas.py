"""Map abstraction the applier draws on.

The browser owns the real Mapbox GL map, so the server-side canvas just
records each call as a ``DrawOperation`` for the client to replay in order.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

from mapviz.models import DrawOperation


class MapCanvas(ABC):
    """The subset of the Mapbox GL map API the applier uses."""

    @abstractmethod
    def has_source(self, source_id: str) -> bool: ...

    @abstractmethod
    def add_source(self, source_id: str, data: dict[str, Any]) -> None: ...

    @abstractmethod
    def has_layer(self, layer_id: str) -> bool: ...

    @abstractmethod
    def add_layer(self, layer: dict[str, Any]) -> None: ...

    @abstractmethod
    def set_data(self, source_id: str, data: dict[str, Any]) -> None: ...

    @abstractmethod
    def set_paint(self, layer_id: str, prop: str, value: Any) -> None: ...

    @abstractmethod
    def clear_markers(self) -> None: ...

    @abstractmethod
    def add_marker(
        self,
        coordinates: Sequence[float],
        color: str,
        label: Optional[str] = None,
        popup: Optional[str] = None,
    ) -> None: ...

    @abstractmethod
    def fit_bounds(
        self,
        bounds: list[list[float]],
        padding: int,
        max_zoom: Optional[float] = None,
    ) -> None: ...

    @abstractmethod
    def set_center(self, center: Sequence[float]) -> None: ...

    @abstractmethod
    def set_zoom(self, zoom: float) -> None: ...


class RecordingMapCanvas(MapCanvas):
    """Canvas that records operations instead of drawing.

    ``existing_sources``/``existing_layers`` describe what the client map
    already has, so setup operations are only emitted when needed.
    """

    def __init__(
        self,
        existing_sources: Sequence[str] = (),
        existing_layers: Sequence[str] = (),
    ) -> None:
        self._sources: dict[str, dict[str, Any]] = {s: {} for s in existing_sources}
        self._layers: set[str] = set(existing_layers)
        self.operations: list[DrawOperation] = []
        self.markers: list[dict[str, Any]] = []

    def _record(self, op: str, target: Optional[str] = None, **args: Any) -> None:
        self.operations.append(DrawOperation(op=op, target=target, args=args))

    def source_data(self, source_id: str) -> dict[str, Any] | None:
        return self._sources.get(source_id)

    def has_source(self, source_id: str) -> bool:
        return source_id in self._sources

    def add_source(self, source_id: str, data: dict[str, Any]) -> None:
        self._sources[source_id] = data
        self._record("add_source", source_id, type="geojson", data=data)

    def has_layer(self, layer_id: str) -> bool:
        return layer_id in self._layers

    def add_layer(self, layer: dict[str, Any]) -> None:
        self._layers.add(layer["id"])
        self._record("add_layer", layer["id"], layer=layer)

    def set_data(self, source_id: str, data: dict[str, Any]) -> None:
        self._sources[source_id] = data
        self._record("set_data", source_id, data=data)

    def set_paint(self, layer_id: str, prop: str, value: Any) -> None:
        self._record("set_paint", layer_id, property=prop, value=value)

    def clear_markers(self) -> None:
        self.markers.clear()
        self._record("clear_markers")

    def add_marker(
        self,
        coordinates: Sequence[float],
        color: str,
        label: Optional[str] = None,
        popup: Optional[str] = None,
    ) -> None:
        marker = {"coordinates": list(coordinates), "color": color, "label": label, "popup": popup}
        self.markers.append(marker)
        self._record("add_marker", **marker)

    def fit_bounds(
        self,
        bounds: list[list[float]],
        padding: int,
        max_zoom: Optional[float] = None,
    ) -> None:
        args: dict[str, Any] = {"bounds": bounds, "padding": padding}
        if max_zoom is not None:
            args["maxZoom"] = max_zoom
        self._record("fit_bounds", **args)

    def set_center(self, center: Sequence[float]) -> None:
        self._record("set_center", center=list(center))

    def set_zoom(self, zoom: float) -> None:
        self._record("set_zoom", zoom=zoom)
