"""Vehicle location-share model."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, Field, field_validator

from pyresq.ingestion.normalize import safe_float, safe_int, safe_str
from pyresq.models._base import ResqBaseModel, Timestamp
from pyresq.models.request import RescueVehicle


class VehiclePosition(ResqBaseModel):
    """One ``onVehicleLocationShareByVehicle`` event.

    Parameters
    ----------
    vehicle_id : int or None
        Rescue vehicle the position belongs to.
    active : bool or None
        Whether the vehicle is currently sharing its location.
    latitude, longitude : float or None
        Position in degrees. ``None`` when absent or unparseable.
    last_active : datetime or None
        When the vehicle last reported.
    vehicle : RescueVehicle or None
        Partial vehicle identity; any field may be missing.
    """

    vehicle_id: int | None = Field(default=None, validation_alias=AliasChoices("rescueVehicleId", "vehicleId"))
    active: bool | None = None
    address: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    last_active: Timestamp = None
    vehicle: RescueVehicle | None = Field(default=None, validation_alias=AliasChoices("rescueVehicle", "vehicle"))

    @field_validator("vehicle_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> int | None:
        return safe_int(value)

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("address", mode="before")
    @classmethod
    def _coerce_address(cls, value: Any) -> str | None:
        return safe_str(value)

    @property
    def has_position(self) -> bool:
        return self.latitude is not None and self.longitude is not None
