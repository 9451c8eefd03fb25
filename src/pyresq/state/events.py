"""Typed session events.

Every source (status stream, position stream, mutations, recovery, local
user actions, timers) converts its input into one of these events. Only
:func:`pyresq.state.apply.apply_event` is allowed to merge them.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from pyresq.models.location import VehiclePosition
from pyresq.models.request import RescueRequest
from pyresq.state.session import PickedLocation


class EventSource(StrEnum):
    STREAM = "stream"
    RECOVERY = "recovery"
    MUTATION = "mutation"
    LOCAL = "local"
    TIMER = "timer"


class SessionEvent(BaseModel):
    """Base for all events applied to the session."""

    model_config = ConfigDict(frozen=True)

    source: EventSource
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class LocationPicked(SessionEvent):
    source: EventSource = EventSource.LOCAL
    location: PickedLocation


class RequestCreated(SessionEvent):
    source: EventSource = EventSource.MUTATION
    request: RescueRequest
    subcategory_id: int


class RequestRecovered(SessionEvent):
    source: EventSource = EventSource.RECOVERY
    detail: RescueRequest
    subcategory_id: int | None = None


class StatusEvent(SessionEvent):
    """A status-stream delivery bound to ``request_id`` at subscription time."""

    source: EventSource = EventSource.STREAM
    request_id: int
    detail: RescueRequest


class PositionEvent(SessionEvent):
    """A position-stream delivery bound to ``vehicle_id`` at subscription time."""

    source: EventSource = EventSource.STREAM
    vehicle_id: int
    position: VehiclePosition


class CancelAcknowledged(SessionEvent):
    source: EventSource = EventSource.MUTATION
    request_id: int
    status_text: str = "Cancelled"


class ResetRequested(SessionEvent):
    """Return a terminal session to the initial picking state."""

    source: EventSource = EventSource.TIMER
