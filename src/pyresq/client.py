"""High-level async client for the rescue request API."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import aiohttp
from pydantic import ValidationError

from pyresq._api import maps as _maps_api
from pyresq._api import requests as _requests_api
from pyresq._subscriptions import GraphQLSubscription, SubscriptionRequest
from pyresq._transport import GraphQLTransport
from pyresq.config import ResqConfig
from pyresq.exceptions import ResqError
from pyresq.models.geo import Coordinate, Route
from pyresq.models.location import VehiclePosition
from pyresq.models.request import ProofImage, RescueRequest

_logger = logging.getLogger(__name__)


class ResqClient:
    """Async client for the rescue request API and its map services.

    Usage::

        async with ResqClient(ResqConfig.from_env()) as client:
            ids = await client.get_active_request_ids(civilian_id)
    """

    def __init__(
        self,
        config: ResqConfig,
        *,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport: GraphQLTransport | None = None
        self._subscriptions: list[GraphQLSubscription] = []

    @property
    def config(self) -> ResqConfig:
        return self._config

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ResqClient:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        self._transport = GraphQLTransport(self._config, self._http_session)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        for subscription in self._subscriptions:
            subscription.close()
        self._subscriptions.clear()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._transport = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_transport(self) -> GraphQLTransport:
        if self._transport is None:
            raise ResqError("Client not initialized. Use 'async with ResqClient(...) as client:'")
        return self._transport

    def _require_http(self) -> aiohttp.ClientSession:
        if self._http_session is None:
            raise ResqError("Client not initialized. Use 'async with ResqClient(...) as client:'")
        return self._http_session

    def _subscribe(
        self,
        request: SubscriptionRequest,
        on_data: Callable[[dict[str, Any]], None],
        on_error: Callable[[Exception], None],
    ) -> GraphQLSubscription:
        subscription = GraphQLSubscription(
            config=self._config,
            http_session=self._require_http(),
            request=request,
            on_data=on_data,
            on_error=on_error,
            logger=_logger,
        )
        self._subscriptions = [s for s in self._subscriptions if s.is_running]
        self._subscriptions.append(subscription)
        subscription.start()
        return subscription

    # ------------------------------------------------------------------
    # Request lifecycle operations
    # ------------------------------------------------------------------

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
        """Create a rescue request.

        Raises
        ------
        ResqApiError
            The server refused the request; the message is the server's.
        """
        return await _requests_api.create_request(
            self._require_transport(),
            civilian_id=civilian_id,
            subcategory_id=subcategory_id,
            latitude=latitude,
            longitude=longitude,
            address=address,
            description=description,
            proof_image=proof_image,
        )

    async def cancel_request(self, request_id: int) -> RescueRequest:
        """Set a request's status to ``Cancelled``."""
        return await _requests_api.cancel_request(self._require_transport(), request_id)

    async def get_active_request_ids(self, civilian_id: int) -> list[int]:
        """Ids of the civilian's Searching/Dispatched/Arrived requests, most recent first."""
        return await _requests_api.fetch_active_request_ids(self._require_transport(), civilian_id)

    async def get_request_detail(self, request_id: int) -> RescueRequest | None:
        return await _requests_api.fetch_request_detail(self._require_transport(), request_id)

    # ------------------------------------------------------------------
    # Push streams
    # ------------------------------------------------------------------

    def subscribe_request_status(
        self,
        request_id: int,
        on_data: Callable[[RescueRequest], None],
        on_error: Callable[[Exception], None],
    ) -> GraphQLSubscription:
        """Open the status stream for one request."""

        def _handle(data: dict[str, Any]) -> None:
            try:
                detail = _requests_api.parse_status_data(data)
            except ValidationError as exc:
                on_error(exc)
                return
            if detail is not None:
                on_data(detail)

        return self._subscribe(_requests_api.status_subscription(request_id), _handle, on_error)

    def subscribe_vehicle_position(
        self,
        vehicle_id: int,
        on_data: Callable[[VehiclePosition], None],
        on_error: Callable[[Exception], None],
    ) -> GraphQLSubscription:
        """Open the position stream for one vehicle."""

        def _handle(data: dict[str, Any]) -> None:
            try:
                position = _requests_api.parse_position_data(data)
            except ValidationError as exc:
                on_error(exc)
                return
            if position is not None:
                on_data(position)

        return self._subscribe(_requests_api.position_subscription(vehicle_id), _handle, on_error)

    # ------------------------------------------------------------------
    # Map services
    # ------------------------------------------------------------------

    async def reverse_geocode(self, lat: float, lng: float) -> str | None:
        return await _maps_api.reverse_geocode(
            self._require_http(),
            self._config.effective_geocoding_key,
            lat,
            lng,
        )

    async def geolocate_ip(self) -> Coordinate | None:
        return await _maps_api.geolocate_ip(self._require_http(), self._config.maps_api_key)

    async def route(self, origin: Coordinate, destination: Coordinate) -> Route | None:
        return await _maps_api.driving_route(
            self._require_http(),
            self._config.maps_api_key,
            origin,
            destination,
        )
