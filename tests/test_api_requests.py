from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pytest

from pyresq._api import requests as api
from pyresq.exceptions import ResqApiError
from pyresq.models.request import ProofImage


class _FakeTransport:
    def __init__(self, data: dict[str, Any]) -> None:
        self.data = data
        self.calls: list[dict[str, Any]] = []

    async def execute(
        self,
        operation: str,
        query: str,
        variables: Mapping[str, Any] | None = None,
        *,
        files: Mapping[str, ProofImage] | None = None,
    ) -> dict[str, Any]:
        self.calls.append({"operation": operation, "query": query, "variables": variables, "files": files})
        return self.data


@pytest.mark.asyncio
async def test_create_request_sends_input_and_parses_result() -> None:
    transport = _FakeTransport(
        {
            "createRescueVehicleRequest": {
                "success": True,
                "message": "Created",
                "rescueVehicleRequest": {"id": 101, "status": "Searching", "createdAt": "2026-01-01T08:00:00Z"},
            }
        }
    )

    request = await api.create_request(
        transport,
        civilian_id=5,
        subcategory_id=3,
        latitude=6.9271,
        longitude=79.8612,
        address="Colombo Fort",
        description="",
    )

    assert request.id == 101
    call = transport.calls[0]
    assert call["operation"] == "CreateRescueVehicleRequest"
    assert call["variables"]["input"] == {
        "civilianId": 5,
        "description": None,
        "emergencySubCategoryId": 3,
        "latitude": 6.9271,
        "longitude": 79.8612,
        "address": "Colombo Fort",
    }
    assert call["files"] is None


@pytest.mark.asyncio
async def test_create_request_attaches_proof_image() -> None:
    transport = _FakeTransport(
        {"createRescueVehicleRequest": {"success": True, "rescueVehicleRequest": {"id": 1, "status": "Searching"}}}
    )
    image = ProofImage(filename="proof.jpg", content=b"jpeg")

    await api.create_request(transport, civilian_id=5, subcategory_id=3, latitude=1.0, longitude=2.0, proof_image=image)

    assert transport.calls[0]["files"] == {"variables.proofImage": image}
    assert transport.calls[0]["variables"]["proofImage"] is None


@pytest.mark.asyncio
async def test_unsuccessful_mutation_raises_server_message() -> None:
    transport = _FakeTransport(
        {"createRescueVehicleRequest": {"success": False, "message": "You already have an active request"}}
    )

    with pytest.raises(ResqApiError, match="You already have an active request"):
        await api.create_request(transport, civilian_id=5, subcategory_id=3, latitude=1.0, longitude=2.0)


@pytest.mark.asyncio
async def test_unsuccessful_mutation_without_message_uses_fallback() -> None:
    transport = _FakeTransport({"updateRescueVehicleRequest": {"success": False}})

    with pytest.raises(ResqApiError, match="Failed to cancel request"):
        await api.cancel_request(transport, 42)


@pytest.mark.asyncio
async def test_cancel_request_sets_cancelled_status() -> None:
    transport = _FakeTransport(
        {"updateRescueVehicleRequest": {"success": True, "rescueVehicleRequest": {"id": 42, "status": "Cancelled"}}}
    )

    result = await api.cancel_request(transport, 42)

    assert result.status == "Cancelled"
    assert transport.calls[0]["variables"] == {"id": 42, "status": "Cancelled"}


@pytest.mark.asyncio
async def test_active_requests_are_sorted_most_recent_first() -> None:
    transport = _FakeTransport(
        {
            "vehicleRequestPaging": [
                {"id": 10, "createdAt": "2026-01-01T08:00:00Z"},
                {"id": 11},
                {"id": 12, "createdAt": "2026-01-02T08:00:00Z"},
                {"status": "malformed"},
            ]
        }
    )

    ids = await api.fetch_active_request_ids(transport, 5)

    assert ids == [12, 10, 11]
    assert transport.calls[0]["variables"] == {"civilianId": 5, "statuses": ["Searching", "Dispatched", "Arrived"]}


@pytest.mark.asyncio
async def test_request_detail_missing_returns_none() -> None:
    assert await api.fetch_request_detail(_FakeTransport({"rescueVehicleRequestById": None}), 42) is None


def test_subscription_documents_carry_keys() -> None:
    status = api.status_subscription(42)
    position = api.position_subscription(7)

    assert status.variables == {"requestId": 42}
    assert "onRescueVehicleRequestStatusChanged" in status.query
    assert position.variables == {"rescueVehicleId": 7}
    assert "onVehicleLocationShareByVehicle" in position.query


def test_parse_subscription_data() -> None:
    detail = api.parse_status_data({"onRescueVehicleRequestStatusChanged": {"id": 42, "status": "Arrived"}})
    position = api.parse_position_data({"onVehicleLocationShareByVehicle": {"rescueVehicleId": 7}})

    assert detail is not None and detail.id == 42
    assert position is not None and position.vehicle_id == 7
    assert api.parse_status_data({"onRescueVehicleRequestStatusChanged": None}) is None
    assert api.parse_position_data({"onVehicleLocationShareByVehicle": {}}) is None
