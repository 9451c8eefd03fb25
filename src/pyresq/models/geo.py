"""Geographic value types."""

from __future__ import annotations

import math

from pydantic import BaseModel, ConfigDict, Field

_EARTH_RADIUS_M = 6_371_000.0


def coordinate_key(lat: float, lng: float) -> str:
    """Six-decimal key used for coordinate equality."""
    return f"{lat:.6f},{lng:.6f}"


def haversine_m(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in metres."""
    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    return 2 * _EARTH_RADIUS_M * math.asin(math.sqrt(h))


class Coordinate(BaseModel):
    """A WGS84 point."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)

    @property
    def key(self) -> str:
        return coordinate_key(self.lat, self.lng)


class Route(BaseModel):
    """A driving route between two points."""

    model_config = ConfigDict(frozen=True)

    origin: Coordinate
    destination: Coordinate
    polyline: str | None = None
    distance_m: int | None = None
    duration_s: int | None = None
