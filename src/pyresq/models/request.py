"""Rescue vehicle request models."""

from __future__ import annotations

import dataclasses
from typing import Any

from pydantic import AliasChoices, Field, field_validator, model_validator

from pyresq.ingestion.normalize import safe_float, safe_int, safe_str
from pyresq.models._base import ResqBaseModel, Timestamp
from pyresq.models.status import CanonicalStatus, classify


def _first(value: Any) -> Any:
    if isinstance(value, list):
        return value[0] if value else None
    return value


class VehicleCategory(ResqBaseModel):
    """Rescue vehicle category.

    ``icon`` is lifted from
    ``emergencyToVehicles[0].emergencyCategory.icon`` when present.
    """

    name: str | None = None
    icon: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _lift_icon(cls, values: Any) -> Any:
        if not isinstance(values, dict) or values.get("icon"):
            return values
        link = _first(values.get("emergencyToVehicles"))
        if isinstance(link, dict):
            category = link.get("emergencyCategory")
            if isinstance(category, dict) and category.get("icon"):
                merged = dict(values)
                merged["icon"] = category["icon"]
                return merged
        return values


class VehicleLocation(ResqBaseModel):
    """A recorded vehicle position."""

    id: int | None = None
    latitude: float | None = Field(default=None, validation_alias=AliasChoices("latitude", "lat"))
    longitude: float | None = Field(default=None, validation_alias=AliasChoices("longitude", "lng", "lon"))
    recorded_at: Timestamp = Field(
        default=None,
        validation_alias=AliasChoices("lastActive", "timestamp", "recordedAt", "recorded_at"),
    )

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)

    @property
    def has_position(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class RescueVehicle(ResqBaseModel):
    """Vehicle identity as embedded in request and location payloads."""

    id: int | None = None
    code: str | None = None
    plate_number: str | None = None
    category: VehicleCategory | None = Field(
        default=None,
        validation_alias=AliasChoices("rescueVehicleCategory", "category"),
    )
    locations: list[VehicleLocation] = Field(
        default_factory=list,
        validation_alias=AliasChoices("rescueVehicleLocations", "lastKnownPositions", "locations"),
    )

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> int | None:
        return safe_int(value)

    @field_validator("code", "plate_number", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("category", mode="before")
    @classmethod
    def _coerce_category(cls, value: Any) -> Any:
        # The distilled payload shape carries the category as a bare name.
        if isinstance(value, str):
            return {"name": value}
        return value

    @property
    def latest_location(self) -> VehicleLocation | None:
        """Most recent location with coordinates.

        Locations are listed most-recent-first by the server; an explicit
        ``recorded_at`` takes precedence when every entry carries one.
        """
        usable = [loc for loc in self.locations if loc.has_position]
        if not usable:
            return None
        if all(loc.recorded_at is not None for loc in usable):
            try:
                return max(usable, key=lambda loc: loc.recorded_at)  # type: ignore[arg-type,return-value]
            except TypeError:
                # naive vs aware timestamps cannot be ordered
                pass
        return usable[0]


class VehicleAssignment(ResqBaseModel):
    """Assignment of a rescue vehicle to a request."""

    id: int | None = None
    vehicle_id: int | None = Field(default=None, validation_alias=AliasChoices("rescueVehicleId", "vehicleId"))
    vehicle: RescueVehicle | None = Field(default=None, validation_alias=AliasChoices("rescueVehicle", "vehicle"))
    arrival_time: Timestamp = None
    departure_time: Timestamp = None
    duration_minutes: float | None = None

    @field_validator("id", "vehicle_id", mode="before")
    @classmethod
    def _coerce_ids(cls, value: Any) -> int | None:
        return safe_int(value)

    @property
    def resolved_vehicle_id(self) -> int | None:
        if self.vehicle_id is not None:
            return self.vehicle_id
        return self.vehicle.id if self.vehicle is not None else None


class RescueRequest(ResqBaseModel):
    """Full request detail.

    Shared by ``rescueVehicleRequestById`` and the
    ``onRescueVehicleRequestStatusChanged`` subscription.
    """

    id: int
    status: str | None = None
    created_at: Timestamp = None
    latitude: float | None = None
    longitude: float | None = None
    is_active: bool | None = None
    assignments: list[VehicleAssignment] = Field(
        default_factory=list,
        validation_alias=AliasChoices("rescueVehicleAssignments", "assignments"),
    )

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> int | None:
        return safe_int(value)

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("assignments", mode="before")
    @classmethod
    def _wrap_single_assignment(cls, value: Any) -> Any:
        # Some payloads carry a single assignment object instead of a list.
        if isinstance(value, dict):
            return [value]
        return value

    @property
    def canonical_status(self) -> CanonicalStatus:
        return classify(self.status)

    @property
    def primary_assignment(self) -> VehicleAssignment | None:
        return self.assignments[0] if self.assignments else None


class RequestSummary(ResqBaseModel):
    """Row returned by the active-request lookup."""

    id: int
    created_at: Timestamp = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> int | None:
        return safe_int(value)


class MutationResult(ResqBaseModel):
    """``{success, message, rescueVehicleRequest}`` mutation payload."""

    success: bool = False
    message: str | None = None
    request: RescueRequest | None = Field(
        default=None,
        validation_alias=AliasChoices("rescueVehicleRequest", "request"),
    )


@dataclasses.dataclass(frozen=True)
class ProofImage:
    """Image attached to a new request as a GraphQL upload."""

    filename: str
    content: bytes
    content_type: str = "image/jpeg"
