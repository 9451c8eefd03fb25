"""Structural interfaces for the remote collaborators.

:class:`pyresq.client.ResqClient` implements all of them; tests use
:class:`pyresq.testing.FakeBackend`.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from pyresq.models.geo import Coordinate, Route
from pyresq.models.location import VehiclePosition
from pyresq.models.request import ProofImage, RescueRequest


class Subscription(Protocol):
    def close(self) -> None: ...


class RescueBackend(Protocol):
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
    ) -> RescueRequest: ...

    async def cancel_request(self, request_id: int) -> RescueRequest: ...

    async def get_active_request_ids(self, civilian_id: int) -> list[int]: ...

    async def get_request_detail(self, request_id: int) -> RescueRequest | None: ...

    def subscribe_request_status(
        self,
        request_id: int,
        on_data: Callable[[RescueRequest], None],
        on_error: Callable[[Exception], None],
    ) -> Subscription: ...

    def subscribe_vehicle_position(
        self,
        vehicle_id: int,
        on_data: Callable[[VehiclePosition], None],
        on_error: Callable[[Exception], None],
    ) -> Subscription: ...


class ReverseGeocoder(Protocol):
    async def reverse_geocode(self, lat: float, lng: float) -> str | None: ...


class RoutingService(Protocol):
    async def route(self, origin: Coordinate, destination: Coordinate) -> Route | None: ...


class IpLocator(Protocol):
    async def geolocate_ip(self) -> Coordinate | None: ...
