"""
Purpose: The map rendering surface boundary.
What it does:
Defines the four operations the reconciler needs (add/move marker, add
polyline, remove layer) keyed by opaque layer handles, and a folium backed
surface that keeps the layers and renders them to Leaflet HTML on demand.

A surface that cannot draw (map library not loaded, renderer gone) raises
MapUnavailableError. Callers degrade to text, they never crash.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Protocol, Sequence

import folium

from location.models import Coordinate


class MapUnavailableError(Exception):
    """The map renderer cannot be used (not loaded, torn down...)."""
    pass


class MapSurface(Protocol):
    def add_marker(self, coordinate: Coordinate, *, kind: str, label: str = "") -> str:
        ...

    def move_marker(self, handle: str, coordinate: Coordinate) -> None:
        ...

    def add_polyline(self, points: Sequence[Coordinate]) -> str:
        ...

    def remove_layer(self, handle: str) -> None:
        ...


@dataclass(frozen=True)
class MarkerLayer:
    coordinate: Coordinate
    kind: str
    label: str = ""


@dataclass(frozen=True)
class PolylineLayer:
    points: tuple


# folium icon per marker kind: (color, font-awesome icon)
MARKER_ICONS = {
    "user": ("red", "home"),
    "driver": ("blue", "motorcycle"),
    "pickup": ("green", "shopping-cart"),
}


class FoliumMapSurface:
    """
    Keeps the current layers in memory, folium.Map is built on render.
    """

    def __init__(self, center: Optional[Coordinate] = None, zoom_start: int = 14):
        self.center = center
        self.zoom_start = zoom_start
        self.layers: Dict[str, object] = {}
        self._ids = itertools.count(1)

    def _handle(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    def add_marker(self, coordinate: Coordinate, *, kind: str, label: str = "") -> str:
        handle = self._handle("marker")
        self.layers[handle] = MarkerLayer(coordinate=coordinate, kind=kind, label=label)
        return handle

    def move_marker(self, handle: str, coordinate: Coordinate) -> None:
        layer = self.layers.get(handle)
        if not isinstance(layer, MarkerLayer):
            raise KeyError(f"No marker with handle {handle}")
        self.layers[handle] = replace(layer, coordinate=coordinate)

    def add_polyline(self, points: Sequence[Coordinate]) -> str:
        handle = self._handle("line")
        self.layers[handle] = PolylineLayer(points=tuple(points))
        return handle

    def remove_layer(self, handle: str) -> None:
        self.layers.pop(handle, None)

    # --- inspection ---

    def markers(self, kind: Optional[str] = None) -> List[MarkerLayer]:
        return [
            layer for layer in self.layers.values()
            if isinstance(layer, MarkerLayer) and (kind is None or layer.kind == kind)
        ]

    def polylines(self) -> List[PolylineLayer]:
        return [layer for layer in self.layers.values() if isinstance(layer, PolylineLayer)]

    # --- rendering ---

    def _map_center(self) -> Coordinate:
        if self.center is not None:
            return self.center
        user_markers = self.markers("user") or self.markers()
        if user_markers:
            return user_markers[0].coordinate
        return Coordinate(33.5731, -7.5898)

    def build(self) -> folium.Map:
        center = self._map_center()
        fmap = folium.Map(location=[center.latitude, center.longitude], zoom_start=self.zoom_start)

        for layer in self.layers.values():
            if isinstance(layer, MarkerLayer):
                color, icon = MARKER_ICONS.get(layer.kind, ("gray", "map-marker"))
                folium.Marker(
                    location=[layer.coordinate.latitude, layer.coordinate.longitude],
                    tooltip=layer.label or layer.kind,
                    icon=folium.Icon(color=color, icon=icon, prefix="fa"),
                ).add_to(fmap)
            elif isinstance(layer, PolylineLayer):
                folium.PolyLine(
                    locations=[[p.latitude, p.longitude] for p in layer.points],
                    weight=3,
                    opacity=0.8,
                ).add_to(fmap)

        return fmap

    def to_html(self) -> str:
        return self.build().get_root().render()

    def save(self, path: str) -> None:
        self.build().save(path)
