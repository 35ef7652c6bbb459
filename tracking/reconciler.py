"""
Purpose: Marker/route reconciliation for the tracking map.
What it does:
Given where things should be (MapTarget) and what is currently drawn
(MapState), compute the minimal list of map mutations, then apply them to a
MapSurface and remember the layer handles.

Rules:
- "user" marker (home or delivery address): one while defined, redrawn
  (remove + add) when the point changes, never left stale
- "driver" marker: one while the driver location is defined, moved in place,
  removed (not hidden) when the location goes away
- "pickup" marker: like "user", only requested while the driver heads to the store
- route line: exactly one between driver and user while both exist; the old
  line is always removed before a new one is drawn
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from location.models import Coordinate

from .surface import MapSurface

logger = logging.getLogger(__name__)

USER = "user"
DRIVER = "driver"
PICKUP = "pickup"

# markers that are redrawn on change instead of moved
REDRAWN_MARKERS = frozenset({USER, PICKUP})

MARKER_LABELS = {USER: "You", DRIVER: "Driver", PICKUP: "Store"}


@dataclass(frozen=True)
class MapTarget:
    reference: Optional[Coordinate] = None
    driver: Optional[Coordinate] = None
    pickup: Optional[Coordinate] = None

    def desired(self) -> Dict[str, Optional[Coordinate]]:
        return {USER: self.reference, PICKUP: self.pickup, DRIVER: self.driver}


@dataclass(frozen=True)
class MarkerState:
    key: str
    coordinate: Coordinate
    handle: str


@dataclass(frozen=True)
class RouteState:
    start: Coordinate
    end: Coordinate
    handle: str


@dataclass
class MapState:
    markers: Dict[str, MarkerState] = field(default_factory=dict)
    route: Optional[RouteState] = None

    def marker_count(self, key: str) -> int:
        return 1 if key in self.markers else 0


# --- Mutations ---

@dataclass(frozen=True)
class AddMarker:
    key: str
    coordinate: Coordinate


@dataclass(frozen=True)
class MoveMarker:
    key: str
    handle: str
    coordinate: Coordinate


@dataclass(frozen=True)
class RemoveMarker:
    key: str
    handle: str


@dataclass(frozen=True)
class AddRoute:
    start: Coordinate
    end: Coordinate


@dataclass(frozen=True)
class RemoveRoute:
    handle: str


Mutation = Union[AddMarker, MoveMarker, RemoveMarker, AddRoute, RemoveRoute]


def reconcile(target: MapTarget, previous: MapState) -> List[Mutation]:
    """
    Pure diff between what is drawn and what should be drawn.
    An empty list means the map is already up to date.
    """
    mutations: List[Mutation] = []
    desired = target.desired()

    want_route = target.reference is not None and target.driver is not None
    route = previous.route
    route_stale = route is not None and (
        not want_route or (route.start, route.end) != (target.driver, target.reference)
    )

    # old line goes first, never two lines on the map
    if route_stale:
        mutations.append(RemoveRoute(handle=route.handle))

    for key, coordinate in desired.items():
        current = previous.markers.get(key)

        if coordinate is None:
            if current is not None:
                mutations.append(RemoveMarker(key=key, handle=current.handle))
            continue

        if current is None:
            mutations.append(AddMarker(key=key, coordinate=coordinate))
        elif current.coordinate != coordinate:
            if key in REDRAWN_MARKERS:
                mutations.append(RemoveMarker(key=key, handle=current.handle))
                mutations.append(AddMarker(key=key, coordinate=coordinate))
            else:
                mutations.append(MoveMarker(key=key, handle=current.handle, coordinate=coordinate))

    if want_route and (route is None or route_stale):
        mutations.append(AddRoute(start=target.driver, end=target.reference))

    return mutations


class MapReconciler:
    """
    Holds the MapState of one surface and brings it to each new target.

    State is updated after every successful mutation, so if the surface
    fails half way the next apply() resumes from what was really drawn.
    """

    def __init__(self):
        self.state = MapState()

    def apply(self, surface: MapSurface, target: MapTarget) -> List[Mutation]:
        mutations = reconcile(target, self.state)
        for mutation in mutations:
            self._execute(surface, mutation)
        if mutations:
            logger.debug("Applied %d map mutations", len(mutations))
        return mutations

    def clear(self, surface: MapSurface) -> List[Mutation]:
        """Remove everything this reconciler drew."""
        return self.apply(surface, MapTarget())

    def reset(self) -> None:
        """Forget drawn layers (the surface was recreated)."""
        self.state = MapState()

    def _execute(self, surface: MapSurface, mutation: Mutation) -> None:
        state = self.state

        if isinstance(mutation, RemoveRoute):
            surface.remove_layer(mutation.handle)
            state.route = None

        elif isinstance(mutation, RemoveMarker):
            surface.remove_layer(mutation.handle)
            state.markers.pop(mutation.key, None)

        elif isinstance(mutation, AddMarker):
            handle = surface.add_marker(
                mutation.coordinate, kind=mutation.key, label=MARKER_LABELS.get(mutation.key, "")
            )
            state.markers[mutation.key] = MarkerState(mutation.key, mutation.coordinate, handle)

        elif isinstance(mutation, MoveMarker):
            surface.move_marker(mutation.handle, mutation.coordinate)
            state.markers[mutation.key] = MarkerState(mutation.key, mutation.coordinate, mutation.handle)

        elif isinstance(mutation, AddRoute):
            handle = surface.add_polyline([mutation.start, mutation.end])
            state.route = RouteState(mutation.start, mutation.end, handle)

        else:
            raise TypeError(f"Unknown map mutation {mutation!r}")
