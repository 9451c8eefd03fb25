"""The live request session and its value types."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from pyresq.models.geo import Coordinate, coordinate_key
from pyresq.models.status import CanonicalStatus


class SessionMode(StrEnum):
    PICKING = "picking"
    AWAITING_OUTCOME = "awaiting_outcome"


class PickedLocation(BaseModel):
    """Destination chosen on the map, optionally with a resolved address."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    lat: float
    lng: float
    address: str | None = None

    @property
    def key(self) -> str:
        return coordinate_key(self.lat, self.lng)

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(lat=self.lat, lng=self.lng)


class VehicleIdentity(BaseModel):
    """Assigned vehicle identity, filled incrementally and never downgraded."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: int | None = None
    code: str | None = None
    plate_number: str | None = None
    category_icon: str | None = None


class VehicleMarker(BaseModel):
    """Last known vehicle position while tracking is active."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    lat: float
    lng: float
    label: str | None = None
    recorded_at: datetime | None = None

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(lat=self.lat, lng=self.lng)


class RequestSession(BaseModel):
    """Snapshot of one civilian's current rescue request.

    Instances are immutable; every accepted event produces a new snapshot.
    ``status_text`` keeps the server wording for display, ``status`` is its
    classification.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    request_id: int | None = None
    status: CanonicalStatus = CanonicalStatus.NONE
    status_text: str | None = None
    created_at: datetime | None = None
    vehicle: VehicleIdentity = VehicleIdentity()
    vehicle_marker: VehicleMarker | None = None
    picked_location: PickedLocation | None = None
    mode: SessionMode = SessionMode.PICKING
    subcategory_id: int | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def has_request(self) -> bool:
        return self.request_id is not None
