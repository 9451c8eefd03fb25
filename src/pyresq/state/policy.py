"""Deterministic session merge policy.

Pure functions of session state; no I/O and no payload parsing.
"""

from __future__ import annotations

from datetime import datetime

from pyresq.models.request import RescueVehicle
from pyresq.models.status import CanonicalStatus
from pyresq.state.session import RequestSession, VehicleIdentity

_ROUTE_HIDDEN_STATUSES: frozenset[CanonicalStatus] = frozenset(
    {CanonicalStatus.SEARCHING, CanonicalStatus.CANCELLED, CanonicalStatus.COMPLETED}
)


def merge_vehicle_identity(
    current: VehicleIdentity,
    *,
    vehicle_id: int | None = None,
    vehicle: RescueVehicle | None = None,
) -> VehicleIdentity:
    """Fill still-empty identity fields; populated fields are never replaced.

    Whichever source supplies a value first wins. ``None`` never clears.
    """
    incoming: dict[str, object | None] = {
        "id": vehicle_id if vehicle_id is not None else (vehicle.id if vehicle is not None else None),
        "code": vehicle.code if vehicle is not None else None,
        "plate_number": vehicle.plate_number if vehicle is not None else None,
        "category_icon": vehicle.category.icon if vehicle is not None and vehicle.category is not None else None,
    }
    patch = {
        key: value
        for key, value in incoming.items()
        if value is not None and getattr(current, key) is None
    }
    if not patch:
        return current
    return current.model_copy(update=patch)


def tracking_vehicle_id(session: RequestSession) -> int | None:
    """Vehicle id the position stream should follow, or ``None``.

    Tracking requires a known vehicle and a Dispatched/Arrived status; it is
    off while Searching and stops as soon as a terminal status is seen.
    """
    if session.vehicle.id is None:
        return None
    if not session.status.is_tracking_leg:
        return None
    return session.vehicle.id


def status_stream_key(session: RequestSession) -> int | None:
    return session.request_id


def should_show_route(session: RequestSession) -> bool:
    """A route is drawn only between a live vehicle marker and the destination."""
    if session.vehicle_marker is None or session.picked_location is None:
        return False
    return session.status not in _ROUTE_HIDDEN_STATUSES


def can_cancel(session: RequestSession) -> bool:
    return session.request_id is not None and session.status == CanonicalStatus.SEARCHING


def should_accept_position(
    *,
    cached_recorded_at: datetime | None,
    incoming_recorded_at: datetime | None,
) -> bool:
    """Reject a position strictly older than the one already shown.

    Without timestamps on both sides the newest delivery wins.
    """
    if cached_recorded_at is None or incoming_recorded_at is None:
        return True
    try:
        return incoming_recorded_at >= cached_recorded_at
    except TypeError:
        # naive vs aware timestamps cannot be ordered
        return True
