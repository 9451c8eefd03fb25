"""Map pin resolution.

The pin is drawn at a fixed pixel position over a moving map. Each viewport
change is projected to the coordinate under the pin, shown immediately
without an address, and reverse-geocoded once the map has been still for
the debounce period.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import math
from collections.abc import Callable

from pyresq._constants import (
    PIN_X_FRACTION,
    PIN_X_FRACTION_WIDE,
    TILE_SIZE_PX,
    WIDE_LAYOUT_MIN_WIDTH_PX,
)
from pyresq.backend import ReverseGeocoder
from pyresq.exceptions import ResqError
from pyresq.models.geo import Coordinate
from pyresq.scheduler import TimerHandle, TimerLoop, default_timer_loop
from pyresq.state.session import PickedLocation

_logger = logging.getLogger(__name__)

_MAX_SIN_LAT = 0.9999


@dataclasses.dataclass(frozen=True)
class Viewport:
    """Map camera state plus the size of the map container in pixels."""

    center_lat: float
    center_lng: float
    zoom: float
    width: int
    height: int


def pin_offset_px(width: int) -> float:
    """Horizontal pin offset from the container centre, in pixels."""
    fraction = PIN_X_FRACTION_WIDE if width >= WIDE_LAYOUT_MIN_WIDTH_PX else PIN_X_FRACTION
    return width * fraction - width / 2


def pin_coordinate(viewport: Viewport) -> Coordinate:
    """Ground coordinate under the pin (Web-Mercator)."""
    dx = pin_offset_px(viewport.width)
    if dx == 0:
        return Coordinate(lat=viewport.center_lat, lng=viewport.center_lng)

    scale = TILE_SIZE_PX * 2**viewport.zoom
    x = (viewport.center_lng + 180.0) / 360.0 * scale + dx
    sin_lat = math.sin(math.radians(viewport.center_lat))
    sin_lat = min(max(sin_lat, -_MAX_SIN_LAT), _MAX_SIN_LAT)
    y = (0.5 - math.log((1 + sin_lat) / (1 - sin_lat)) / (4 * math.pi)) * scale

    lng = x / scale * 360.0 - 180.0
    lng = (lng + 180.0) % 360.0 - 180.0
    n = math.pi - 2 * math.pi * y / scale
    lat = math.degrees(math.atan(math.sinh(n)))
    return Coordinate(lat=lat, lng=lng)


class PinResolver:
    """Debounced pin-to-address resolver.

    ``on_confirmed`` receives a :class:`PickedLocation` with a non-null
    address at most once per distinct coordinate and address, and only
    while ``is_picking()`` is true.
    """

    def __init__(
        self,
        geocoder: ReverseGeocoder,
        *,
        on_confirmed: Callable[[PickedLocation], None],
        is_picking: Callable[[], bool] = lambda: True,
        debounce: float = 0.3,
        loop: TimerLoop | None = None,
    ) -> None:
        self._geocoder = geocoder
        self._on_confirmed = on_confirmed
        self._is_picking = is_picking
        self._debounce = debounce
        self._loop = loop
        self._current: PickedLocation | None = None
        self._handle: TimerHandle | None = None
        self._lookups: set[asyncio.Task[None]] = set()
        self._emitted: tuple[str, str] | None = None
        self._closed = False

    @property
    def current(self) -> PickedLocation | None:
        """Coordinate under the pin; ``address`` is ``None`` until resolved."""
        return self._current

    @property
    def pending(self) -> bool:
        return self._handle is not None or bool(self._lookups)

    def update(self, viewport: Viewport) -> PickedLocation | None:
        if self._closed:
            return self._current
        coordinate = pin_coordinate(viewport)
        current = self._current
        if current is not None and current.key == coordinate.key:
            if current.address is not None:
                return current
        else:
            self._current = PickedLocation(lat=coordinate.lat, lng=coordinate.lng)
        self._reschedule()
        return self._current

    def _timer_loop(self) -> TimerLoop:
        if self._loop is None:
            self._loop = default_timer_loop()
        return self._loop

    def _reschedule(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = self._timer_loop().call_later(self._debounce, self._fire)

    def _fire(self) -> None:
        self._handle = None
        location = self._current
        if self._closed or location is None:
            return
        task = asyncio.get_running_loop().create_task(self._lookup(location))
        self._lookups.add(task)
        task.add_done_callback(self._lookups.discard)

    async def _lookup(self, location: PickedLocation) -> None:
        _logger.debug("Reverse geocoding %s", location.key)
        try:
            address = await self._geocoder.reverse_geocode(location.lat, location.lng)
        except ResqError as exc:
            _logger.debug("Reverse geocoding %s failed: %s", location.key, exc)
            return

        current = self._current
        if current is None or current.key != location.key:
            _logger.debug("Discarding address for stale pin %s", location.key)
            return
        if not address:
            return
        if current.address != address:
            current = current.model_copy(update={"address": address})
            self._current = current
        self._confirm(current)

    def _confirm(self, location: PickedLocation) -> None:
        if not self._is_picking():
            return
        marker = (location.key, location.address or "")
        if marker == self._emitted:
            return
        self._emitted = marker
        self._on_confirmed(location)

    async def settled(self) -> None:
        """Wait for in-flight lookups to finish."""
        while self._lookups:
            await asyncio.gather(*list(self._lookups), return_exceptions=True)

    def close(self) -> None:
        self._closed = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        for task in list(self._lookups):
            task.cancel()
