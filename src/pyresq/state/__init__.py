"""Session state layer.

This package is the single source of truth for how status changes,
vehicle positions, local actions and recovery data are merged into the one
live :class:`~pyresq.state.session.RequestSession`.
"""

from pyresq.state.apply import apply_event
from pyresq.state.events import (
    CancelAcknowledged,
    EventSource,
    LocationPicked,
    PositionEvent,
    RequestCreated,
    RequestRecovered,
    ResetRequested,
    SessionEvent,
    StatusEvent,
)
from pyresq.state.session import PickedLocation, RequestSession, SessionMode, VehicleIdentity, VehicleMarker

__all__ = [
    "CancelAcknowledged",
    "EventSource",
    "LocationPicked",
    "PickedLocation",
    "PositionEvent",
    "RequestCreated",
    "RequestRecovered",
    "RequestSession",
    "ResetRequested",
    "SessionEvent",
    "SessionMode",
    "StatusEvent",
    "VehicleIdentity",
    "VehicleMarker",
    "apply_event",
]
