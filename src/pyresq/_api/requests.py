"""Rescue vehicle request operations.

Queries, mutations and subscription documents for the rescue request
lifecycle, plus the functions that execute and parse them.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from pyresq._subscriptions import SubscriptionRequest
from pyresq._transport import Transport
from pyresq.exceptions import ResqApiError
from pyresq.models.location import VehiclePosition
from pyresq.models.request import MutationResult, ProofImage, RequestSummary, RescueRequest
from pyresq.models.status import ACTIVE_STATUS_NAMES

_logger = logging.getLogger(__name__)

_VEHICLE_FIELDS = """
          id
          plateNumber
          code
          rescueVehicleCategoryId
          rescueVehicleCategory {
            name
            emergencyToVehicles { emergencyCategory { icon } }
          }
"""

CREATE_REQUEST = """
mutation CreateRescueVehicleRequest(
  $input: RescueVehicleRequestCreateInput!
  $proofImage: Upload
) {
  createRescueVehicleRequest(input: $input, proofImage: $proofImage) {
    success
    message
    rescueVehicleRequest {
      id
      status
      createdAt
    }
  }
}
"""

CANCEL_REQUEST = """
mutation UpdateRescueVehicleRequest($id: Int!, $status: String!) {
  updateRescueVehicleRequest(id: $id, input: { status: $status }) {
    success
    message
    rescueVehicleRequest {
      id
      status
    }
  }
}
"""

ACTIVE_REQUESTS = """
query GetActiveVehicleRequest($civilianId: Int!, $statuses: [String!]) {
  vehicleRequestPaging(
    where: {
      civilianId: { eq: $civilianId }
      status: { in: $statuses }
    }
  ) {
    id
    createdAt
  }
}
"""

REQUEST_DETAIL = """
query GetRescueRequestById($id: Int!) {
  rescueVehicleRequestById(id: $id) {
    id
    isActive
    status
    createdAt
    longitude
    latitude
    rescueVehicleAssignments {
      id
      rescueVehicleId
      rescueVehicle {
%s
        rescueVehicleLocations {
          id
          latitude
          longitude
        }
      }
    }
  }
}
""" % _VEHICLE_FIELDS

STATUS_SUBSCRIPTION = """
subscription OnRescueVehicleRequestStatusChanged($requestId: Int!) {
  onRescueVehicleRequestStatusChanged(requestId: $requestId) {
    id
    status
    createdAt
    rescueVehicleAssignments {
      id
      rescueVehicleId
      timestamp
      arrivalTime
      departureTime
      durationMinutes
      rescueVehicle {
%s
      }
    }
  }
}
""" % _VEHICLE_FIELDS

POSITION_SUBSCRIPTION = """
subscription OnVehicleLocationShare($rescueVehicleId: Int!) {
  onVehicleLocationShareByVehicle(rescueVehicleId: $rescueVehicleId) {
    rescueVehicleId
    active
    address
    lastActive
    latitude
    longitude
    rescueVehicle {
      code
      plateNumber
      rescueVehicleCategory {
        emergencyToVehicles { emergencyCategory { icon } }
      }
    }
  }
}
"""


def build_create_variables(
    *,
    civilian_id: int | None,
    subcategory_id: int,
    latitude: float,
    longitude: float,
    address: str | None = None,
    description: str | None = None,
) -> dict[str, Any]:
    return {
        "input": {
            "civilianId": civilian_id,
            "description": description or None,
            "emergencySubCategoryId": subcategory_id,
            "latitude": latitude,
            "longitude": longitude,
            "address": address or None,
        },
        "proofImage": None,
    }


def _parse_mutation(data: dict[str, Any], field: str, *, operation: str, fallback: str) -> RescueRequest:
    node = data.get(field)
    if not isinstance(node, dict):
        raise ResqApiError(fallback, operation=operation)
    try:
        result = MutationResult.model_validate(node)
    except ValidationError as exc:
        raise ResqApiError(fallback, operation=operation) from exc
    if not result.success or result.request is None:
        raise ResqApiError(result.message or fallback, operation=operation)
    return result.request


async def create_request(
    transport: Transport,
    *,
    civilian_id: int | None,
    subcategory_id: int,
    latitude: float,
    longitude: float,
    address: str | None = None,
    description: str | None = None,
    proof_image: ProofImage | None = None,
) -> RescueRequest:
    """Create a rescue request and return ``{id, status, createdAt}``."""
    operation = "CreateRescueVehicleRequest"
    variables = build_create_variables(
        civilian_id=civilian_id,
        subcategory_id=subcategory_id,
        latitude=latitude,
        longitude=longitude,
        address=address,
        description=description,
    )
    files = {"variables.proofImage": proof_image} if proof_image is not None else None
    data = await transport.execute(operation, CREATE_REQUEST, variables, files=files)
    return _parse_mutation(
        data,
        "createRescueVehicleRequest",
        operation=operation,
        fallback="Failed to create request",
    )


async def cancel_request(transport: Transport, request_id: int, *, status: str = "Cancelled") -> RescueRequest:
    operation = "UpdateRescueVehicleRequest"
    data = await transport.execute(operation, CANCEL_REQUEST, {"id": request_id, "status": status})
    return _parse_mutation(
        data,
        "updateRescueVehicleRequest",
        operation=operation,
        fallback="Failed to cancel request",
    )


async def fetch_active_request_ids(transport: Transport, civilian_id: int) -> list[int]:
    """Ids of the civilian's non-terminal requests, most recent first."""
    data = await transport.execute(
        "GetActiveVehicleRequest",
        ACTIVE_REQUESTS,
        {"civilianId": civilian_id, "statuses": list(ACTIVE_STATUS_NAMES)},
    )
    rows = data.get("vehicleRequestPaging")
    if not isinstance(rows, list):
        return []
    summaries: list[RequestSummary] = []
    for row in rows:
        try:
            summaries.append(RequestSummary.model_validate(row))
        except ValidationError:
            _logger.debug("Skipping malformed active request row %r", row)
    return [summary.id for summary in sort_most_recent_first(summaries)]


def sort_most_recent_first(summaries: list[RequestSummary]) -> list[RequestSummary]:
    """Order by ``createdAt`` (then id) descending; undated rows keep server order last."""
    dated = [s for s in summaries if s.created_at is not None]
    undated = [s for s in summaries if s.created_at is None]
    dated.sort(key=lambda s: (s.created_at, s.id), reverse=True)
    return dated + undated


async def fetch_request_detail(transport: Transport, request_id: int) -> RescueRequest | None:
    data = await transport.execute("GetRescueRequestById", REQUEST_DETAIL, {"id": request_id})
    node = data.get("rescueVehicleRequestById")
    if not isinstance(node, dict):
        return None
    return RescueRequest.model_validate(node)


def status_subscription(request_id: int) -> SubscriptionRequest:
    return SubscriptionRequest(
        operation="OnRescueVehicleRequestStatusChanged",
        query=STATUS_SUBSCRIPTION,
        variables={"requestId": request_id},
    )


def position_subscription(vehicle_id: int) -> SubscriptionRequest:
    return SubscriptionRequest(
        operation="OnVehicleLocationShare",
        query=POSITION_SUBSCRIPTION,
        variables={"rescueVehicleId": vehicle_id},
    )


def parse_status_data(data: dict[str, Any]) -> RescueRequest | None:
    """Parse a status subscription ``data`` object; ``None`` when empty."""
    node = data.get("onRescueVehicleRequestStatusChanged", data)
    if not isinstance(node, dict) or node.get("id") is None:
        return None
    return RescueRequest.model_validate(node)


def parse_position_data(data: dict[str, Any]) -> VehiclePosition | None:
    """Parse a position subscription ``data`` object; ``None`` when empty."""
    node = data.get("onVehicleLocationShareByVehicle", data)
    if not isinstance(node, dict) or not node:
        return None
    return VehiclePosition.model_validate(node)
