"""Route overlay between the rescue vehicle and the destination."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Protocol

from pyresq._constants import REROUTE_MIN_METERS
from pyresq.backend import RoutingService
from pyresq.exceptions import ResqError
from pyresq.models.geo import Coordinate, Route, haversine_m
from pyresq.state.policy import should_show_route
from pyresq.state.session import RequestSession

_logger = logging.getLogger(__name__)


class MapView(Protocol):
    def draw_route(self, route: Route) -> None: ...

    def clear_route(self) -> None: ...

    def fit_bounds(self, points: Sequence[Coordinate]) -> None: ...


class RouteProjector:
    """Keeps the map's route overlay in step with the session.

    Register :meth:`update` as a controller listener. Each routing call is a
    billed Directions request, so vehicle moves shorter than
    ``reroute_distance_m`` keep the current route; a new destination always
    re-routes. Results of superseded route lookups are dropped.
    """

    def __init__(
        self,
        router: RoutingService,
        view: MapView,
        *,
        reroute_distance_m: float = REROUTE_MIN_METERS,
    ) -> None:
        self._router = router
        self._view = view
        self._reroute_distance_m = reroute_distance_m
        self._origin: Coordinate | None = None
        self._destination: str | None = None
        self._generation = 0
        self._task: asyncio.Task[None] | None = None
        self._drawn = False

    @property
    def visible(self) -> bool:
        return self._destination is not None

    @property
    def drawn(self) -> bool:
        return self._drawn

    def update(self, session: RequestSession) -> None:
        if not should_show_route(session):
            self._hide()
            return
        origin = session.vehicle_marker.coordinate  # type: ignore[union-attr]
        destination = session.picked_location.coordinate  # type: ignore[union-attr]
        if destination.key == self._destination and self._origin is not None:
            if haversine_m(self._origin, origin) < self._reroute_distance_m:
                return
        self._origin = origin
        self._destination = destination.key
        self._generation += 1
        self._cancel_lookup()
        self._task = asyncio.get_running_loop().create_task(self._project(self._generation, origin, destination))

    def _hide(self) -> None:
        if self._destination is None and not self._drawn:
            return
        self._origin = None
        self._destination = None
        self._generation += 1
        self._cancel_lookup()
        if self._drawn:
            self._drawn = False
            self._view.clear_route()

    def _cancel_lookup(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()

    async def _project(self, generation: int, origin: Coordinate, destination: Coordinate) -> None:
        try:
            route = await self._router.route(origin, destination)
        except ResqError as exc:
            _logger.debug("Route lookup failed: %s", exc)
            route = None
        if generation != self._generation:
            return
        if route is None or not route.polyline:
            _logger.debug("No route between %s and %s; framing endpoints only", origin.key, destination.key)
            if self._drawn:
                self._drawn = False
                self._view.clear_route()
        else:
            self._view.draw_route(route)
            self._drawn = True
        self._view.fit_bounds([origin, destination])

    async def settled(self) -> None:
        task = self._task
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    def close(self) -> None:
        self._generation += 1
        self._cancel_lookup()
