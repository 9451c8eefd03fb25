"""Data models for rescue API payloads."""

from pyresq.models._base import ResqBaseModel, Timestamp, parse_timestamp
from pyresq.models.geo import Coordinate, Route, coordinate_key, haversine_m
from pyresq.models.location import VehiclePosition
from pyresq.models.request import (
    MutationResult,
    ProofImage,
    RequestSummary,
    RescueRequest,
    RescueVehicle,
    VehicleAssignment,
    VehicleCategory,
    VehicleLocation,
)
from pyresq.models.status import (
    ACTIVE_STATUS_NAMES,
    TERMINAL_STATUSES,
    TRACKING_STATUSES,
    CanonicalStatus,
    classify,
)

__all__ = [
    "ACTIVE_STATUS_NAMES",
    "TERMINAL_STATUSES",
    "TRACKING_STATUSES",
    "CanonicalStatus",
    "Coordinate",
    "MutationResult",
    "ProofImage",
    "RequestSummary",
    "ResqBaseModel",
    "RescueRequest",
    "RescueVehicle",
    "Route",
    "Timestamp",
    "VehicleAssignment",
    "VehicleCategory",
    "VehicleLocation",
    "VehiclePosition",
    "classify",
    "coordinate_key",
    "haversine_m",
    "parse_timestamp",
]
