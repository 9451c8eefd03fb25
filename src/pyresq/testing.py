"""Test harness.

In-process stand-ins for the remote collaborators, a manual timer loop and
in-memory preferences. They implement the same protocols as the production
classes so tests exercise the real controller, bindings and resolvers.
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from pyresq._api.requests import parse_position_data, parse_status_data
from pyresq.exceptions import ResqStreamError
from pyresq.models.geo import Coordinate, Route
from pyresq.models.location import VehiclePosition
from pyresq.models.request import ProofImage, RescueRequest

# ------------------------------------------------------------------
# Timers
# ------------------------------------------------------------------

_EPSILON = 1e-9


class ManualTimerHandle:
    def __init__(self, when: float, seq: int, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
        self.when = when
        self.seq = seq
        self._callback = callback
        self._args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def run(self) -> None:
        self._callback(*self._args)


class ManualTimerLoop:
    """Timer loop driven by :meth:`advance` instead of wall-clock time."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._handles: list[ManualTimerHandle] = []
        self._seq = itertools.count()

    def time(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ManualTimerHandle:
        handle = ManualTimerHandle(self._now + delay, next(self._seq), callback, args)
        self._handles.append(handle)
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for handle in self._handles if not handle.cancelled)

    def advance(self, seconds: float) -> None:
        """Move time forward, running due callbacks in deadline order."""
        target = self._now + seconds
        while True:
            self._handles = [handle for handle in self._handles if not handle.cancelled]
            due = [handle for handle in self._handles if handle.when <= target + _EPSILON]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self._handles.remove(handle)
            self._now = max(self._now, handle.when)
            handle.run()
        self._now = target


# ------------------------------------------------------------------
# Backend
# ------------------------------------------------------------------


class FakeSubscription:
    def __init__(
        self,
        kind: str,
        key: int,
        on_data: Callable[[Any], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        self.kind = kind
        self.key = key
        self.on_data = on_data
        self.on_error = on_error
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakeBackend:
    """Scriptable :class:`pyresq.backend.RescueBackend`.

    Push helpers deliver only to open subscriptions whose key matches, as a
    server-side subscription filter would.
    """

    def __init__(self) -> None:
        self.active_request_ids: list[int] = []
        self.details: dict[int, RescueRequest] = {}
        self.create_error: Exception | None = None
        self.cancel_error: Exception | None = None
        self.lookup_error: Exception | None = None
        self.cancel_status = "Cancelled"
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.subscriptions: list[FakeSubscription] = []
        self._ids = itertools.count(101)

    def calls_to(self, name: str) -> list[dict[str, Any]]:
        return [kwargs for call, kwargs in self.calls if call == name]

    def add_detail(self, payload: dict[str, Any]) -> RescueRequest:
        detail = RescueRequest.model_validate(payload)
        self.details[detail.id] = detail
        return detail

    async def create_request(
        self,
        *,
        civilian_id: int | None,
        subcategory_id: int,
        latitude: float,
        longitude: float,
        address: str | None = None,
        description: str | None = None,
        proof_image: ProofImage | None = None,
    ) -> RescueRequest:
        self.calls.append(
            (
                "create_request",
                {
                    "civilian_id": civilian_id,
                    "subcategory_id": subcategory_id,
                    "latitude": latitude,
                    "longitude": longitude,
                    "address": address,
                    "description": description,
                    "proof_image": proof_image,
                },
            )
        )
        if self.create_error is not None:
            raise self.create_error
        return RescueRequest.model_validate(
            {"id": next(self._ids), "status": "Searching", "createdAt": "2026-01-01T08:00:00Z"}
        )

    async def cancel_request(self, request_id: int) -> RescueRequest:
        self.calls.append(("cancel_request", {"request_id": request_id}))
        if self.cancel_error is not None:
            raise self.cancel_error
        return RescueRequest.model_validate({"id": request_id, "status": self.cancel_status})

    async def get_active_request_ids(self, civilian_id: int) -> list[int]:
        self.calls.append(("get_active_request_ids", {"civilian_id": civilian_id}))
        if self.lookup_error is not None:
            raise self.lookup_error
        return list(self.active_request_ids)

    async def get_request_detail(self, request_id: int) -> RescueRequest | None:
        self.calls.append(("get_request_detail", {"request_id": request_id}))
        return self.details.get(request_id)

    def subscribe_request_status(
        self,
        request_id: int,
        on_data: Callable[[RescueRequest], None],
        on_error: Callable[[Exception], None],
    ) -> FakeSubscription:
        subscription = FakeSubscription("status", request_id, on_data, on_error)
        self.subscriptions.append(subscription)
        return subscription

    def subscribe_vehicle_position(
        self,
        vehicle_id: int,
        on_data: Callable[[VehiclePosition], None],
        on_error: Callable[[Exception], None],
    ) -> FakeSubscription:
        subscription = FakeSubscription("location", vehicle_id, on_data, on_error)
        self.subscriptions.append(subscription)
        return subscription

    def open_subscriptions(self, kind: str) -> list[FakeSubscription]:
        return [s for s in self.subscriptions if s.kind == kind and not s.closed]

    def open_keys(self, kind: str) -> list[int]:
        return [s.key for s in self.open_subscriptions(kind)]

    def push_status(self, request_id: int, payload: dict[str, Any]) -> int:
        """Deliver a status payload to subscribers of *request_id*."""
        detail = parse_status_data(payload)
        if detail is None:
            return 0
        targets = [s for s in self.open_subscriptions("status") if s.key == request_id]
        for subscription in targets:
            subscription.on_data(detail)
        return len(targets)

    def push_position(self, vehicle_id: int, payload: dict[str, Any]) -> int:
        """Deliver a position payload to subscribers of *vehicle_id*."""
        position = parse_position_data(payload)
        if position is None:
            return 0
        targets = [s for s in self.open_subscriptions("location") if s.key == vehicle_id]
        for subscription in targets:
            subscription.on_data(position)
        return len(targets)

    def fail_stream(self, kind: str, key: int, exc: Exception | None = None) -> int:
        error = exc or ResqStreamError("stream failed")
        targets = [s for s in self.open_subscriptions(kind) if s.key == key]
        for subscription in targets:
            subscription.on_error(error)
        return len(targets)


# ------------------------------------------------------------------
# Maps
# ------------------------------------------------------------------


class FakeGeocoder:
    """Reverse geocoder returning ``addresses[key]`` or ``default``.

    With ``manual=True`` every lookup waits until the test resolves it via
    :meth:`resolve`.
    """

    def __init__(
        self,
        addresses: dict[str, str | None] | None = None,
        *,
        default: str | None = "Unnamed Road",
        manual: bool = False,
    ) -> None:
        self.addresses = dict(addresses or {})
        self.default = default
        self.manual = manual
        self.calls: list[tuple[float, float]] = []
        self.waiting: list[asyncio.Future[str | None]] = []

    async def reverse_geocode(self, lat: float, lng: float) -> str | None:
        self.calls.append((lat, lng))
        if self.manual:
            future: asyncio.Future[str | None] = asyncio.get_running_loop().create_future()
            self.waiting.append(future)
            return await future
        return self.addresses.get(Coordinate(lat=lat, lng=lng).key, self.default)

    def resolve(self, index: int, address: str | None) -> None:
        self.waiting[index].set_result(address)


class FakeRouter:
    def __init__(self, *, polyline: str | None = "encoded", fail: bool = False) -> None:
        self.polyline = polyline
        self.fail = fail
        self.calls: list[tuple[Coordinate, Coordinate]] = []

    async def route(self, origin: Coordinate, destination: Coordinate) -> Route | None:
        self.calls.append((origin, destination))
        if self.fail:
            return None
        return Route(origin=origin, destination=destination, polyline=self.polyline)


class FakeIpLocator:
    def __init__(self, coordinate: Coordinate | None = None) -> None:
        self.coordinate = coordinate
        self.calls = 0

    async def geolocate_ip(self) -> Coordinate | None:
        self.calls += 1
        return self.coordinate


@dataclass
class FakeMapView:
    operations: list[tuple[str, Any]] = field(default_factory=list)

    def draw_route(self, route: Route) -> None:
        self.operations.append(("draw", route))

    def clear_route(self) -> None:
        self.operations.append(("clear", None))

    def fit_bounds(self, points: Sequence[Coordinate]) -> None:
        self.operations.append(("fit", tuple(points)))

    def names(self) -> list[str]:
        return [name for name, _ in self.operations]


# ------------------------------------------------------------------
# Preferences
# ------------------------------------------------------------------


class MemoryPreferences:
    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self.values: dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Any | None:
        return self.values.get(key)

    def set(self, key: str, value: Any) -> None:
        self.values[key] = value

    def remove(self, key: str) -> None:
        self.values.pop(key, None)
