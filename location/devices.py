"""
Purpose: The device geolocation "adapter" boundary.
What it does:
Describes what LocationSource needs from a positioning device (one-shot fix,
continuous watch, clear watch) with the same knobs a browser exposes
(high accuracy, timeout, maximum age), and ships two devices:

- SimulatedDevice: walks a list of coordinates on a timer (simulation/tests)
- UnavailableDevice: always fails (permission denied, no GPS...)

Rule: no fallback logic here. Devices fail loudly, LocationSource decides.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Callable, Dict, List, Optional, Protocol, Sequence

from .models import LatLon, LocationSample


PositionCallback = Callable[[LocationSample], None]
ErrorCallback = Callable[["GeolocationError"], None]


class GeolocationError(Exception):
    """
    Device side failure, codes follow the W3C geolocation API.
    """

    PERMISSION_DENIED = 1
    POSITION_UNAVAILABLE = 2
    TIMEOUT = 3

    def __init__(self, code: int, message: str = ""):
        self.code = code
        self.message = message or {
            self.PERMISSION_DENIED: "User denied geolocation",
            self.POSITION_UNAVAILABLE: "Position unavailable",
            self.TIMEOUT: "Timeout expired",
        }.get(code, "Unknown geolocation error")
        super().__init__(f"[{code}] {self.message}")


class GeolocationDevice(Protocol):
    async def get_position(
        self, *, high_accuracy: bool, timeout: float, maximum_age: float
    ) -> LocationSample:
        ...

    def watch_position(
        self,
        on_position: PositionCallback,
        on_error: ErrorCallback,
        *,
        high_accuracy: bool,
        timeout: float,
        maximum_age: float,
    ) -> int:
        ...

    def clear_watch(self, watch_id: int) -> None:
        ...


class SimulatedDevice:
    """
    Replays a path of (lat, lon) points.

    get_position returns the current point, each watch gets a task that
    emits the next point every `interval_s` and stays on the last one.
    """

    def __init__(self, path: Sequence[LatLon], interval_s: float = 1.0, accuracy: float = 5.0):
        if not path:
            raise ValueError("SimulatedDevice needs at least one point")
        self.path: List[LatLon] = list(path)
        self.interval_s = interval_s
        self.accuracy = accuracy
        self._index = 0
        self._watch_ids = itertools.count(1)
        self._watches: Dict[int, asyncio.Task] = {}

    @property
    def active_watches(self) -> int:
        return len(self._watches)

    def _current(self) -> LocationSample:
        lat, lon = self.path[self._index]
        return LocationSample.new(lat, lon, accuracy=self.accuracy)

    def _advance(self) -> None:
        if self._index < len(self.path) - 1:
            self._index += 1

    async def get_position(self, *, high_accuracy: bool = True, timeout: float = 10.0, maximum_age: float = 0.0) -> LocationSample:
        return self._current()

    def watch_position(
        self,
        on_position: PositionCallback,
        on_error: ErrorCallback,
        *,
        high_accuracy: bool = True,
        timeout: float = 30.0,
        maximum_age: float = 10.0,
    ) -> int:
        watch_id = next(self._watch_ids)
        self._watches[watch_id] = asyncio.ensure_future(self._run_watch(on_position))
        return watch_id

    async def _run_watch(self, on_position: PositionCallback) -> None:
        while True:
            on_position(self._current())
            await asyncio.sleep(self.interval_s)
            self._advance()

    def clear_watch(self, watch_id: int) -> None:
        task = self._watches.pop(watch_id, None)
        if task is not None:
            task.cancel()


class UnavailableDevice:
    """
    A device that never produces a fix (denied permission, no GPS chip...).
    """

    def __init__(self, code: int = GeolocationError.PERMISSION_DENIED):
        self.code = code
        self._watch_ids = itertools.count(1)
        self._active: Dict[int, asyncio.Handle] = {}

    @property
    def active_watches(self) -> int:
        return len(self._active)

    async def get_position(self, *, high_accuracy: bool = True, timeout: float = 10.0, maximum_age: float = 0.0) -> LocationSample:
        raise GeolocationError(self.code)

    def watch_position(
        self,
        on_position: PositionCallback,
        on_error: ErrorCallback,
        *,
        high_accuracy: bool = True,
        timeout: float = 30.0,
        maximum_age: float = 10.0,
    ) -> int:
        watch_id = next(self._watch_ids)
        loop = asyncio.get_running_loop()
        # browsers report watch errors asynchronously too
        self._active[watch_id] = loop.call_soon(on_error, GeolocationError(self.code))
        return watch_id

    def clear_watch(self, watch_id: int) -> None:
        handle: Optional[asyncio.Handle] = self._active.pop(watch_id, None)
        if handle is not None:
            handle.cancel()
