from __future__ import annotations

from typing import Any

from pyresq._api.requests import parse_position_data, parse_status_data
from pyresq.exceptions import ResqStreamError
from pyresq.state.events import PositionEvent, SessionEvent, StatusEvent
from pyresq.streams import LocationStreamBinding, StatusStreamBinding
from pyresq.testing import FakeBackend


def _status(request_id: int, status: str = "Dispatched") -> dict[str, Any]:
    return {"onRescueVehicleRequestStatusChanged": {"id": request_id, "status": status}}


def _position(vehicle_id: int) -> dict[str, Any]:
    return {"onVehicleLocationShareByVehicle": {"rescueVehicleId": vehicle_id, "latitude": 6.9, "longitude": 79.8}}


def test_sync_opens_and_keeps_a_single_subscription() -> None:
    backend = FakeBackend()
    events: list[SessionEvent] = []
    binding = StatusStreamBinding(backend, events.append)

    binding.sync(42)
    binding.sync(42)

    assert binding.active
    assert binding.key == 42
    assert len(backend.subscriptions) == 1


def test_key_change_tears_down_before_reopening() -> None:
    backend = FakeBackend()
    binding = StatusStreamBinding(backend, [].append)

    binding.sync(42)
    first = backend.subscriptions[0]
    binding.sync(43)

    assert first.closed
    assert backend.open_keys("status") == [43]


def test_none_key_deactivates() -> None:
    backend = FakeBackend()
    binding = LocationStreamBinding(backend, [].append)

    binding.sync(7)
    binding.sync(None)

    assert not binding.active
    assert binding.key is None
    assert backend.open_keys("location") == []


def test_status_delivery_becomes_status_event() -> None:
    backend = FakeBackend()
    events: list[SessionEvent] = []
    binding = StatusStreamBinding(backend, events.append)
    binding.sync(42)

    backend.push_status(42, _status(42))

    assert len(events) == 1
    event = events[0]
    assert isinstance(event, StatusEvent)
    assert event.request_id == 42
    assert event.detail.status == "Dispatched"


def test_delivery_after_key_change_is_dropped() -> None:
    backend = FakeBackend()
    events: list[SessionEvent] = []
    binding = LocationStreamBinding(backend, events.append)
    binding.sync(7)
    stale = backend.subscriptions[0]

    binding.sync(8)
    position = parse_position_data(_position(7))
    assert position is not None
    stale.on_data(position)

    assert events == []


def test_payload_for_other_key_is_dropped() -> None:
    backend = FakeBackend()
    events: list[SessionEvent] = []
    binding = StatusStreamBinding(backend, events.append)
    binding.sync(42)

    detail = parse_status_data(_status(99))
    assert detail is not None
    backend.subscriptions[0].on_data(detail)

    assert events == []


def test_position_delivery_becomes_position_event() -> None:
    backend = FakeBackend()
    events: list[SessionEvent] = []
    binding = LocationStreamBinding(backend, events.append)
    binding.sync(7)

    backend.push_position(7, _position(7))

    assert len(events) == 1
    assert isinstance(events[0], PositionEvent)
    assert events[0].vehicle_id == 7


def test_error_marks_failed_and_same_key_reopens() -> None:
    backend = FakeBackend()
    binding = StatusStreamBinding(backend, [].append)
    binding.sync(42)

    backend.fail_stream("status", 42, ResqStreamError("socket closed"))
    assert binding.failed
    assert binding.active

    binding.sync(42)

    assert not binding.failed
    assert backend.subscriptions[0].closed
    assert backend.open_keys("status") == [42]


def test_error_from_superseded_subscription_is_ignored() -> None:
    backend = FakeBackend()
    binding = StatusStreamBinding(backend, [].append)
    binding.sync(42)
    old = backend.subscriptions[0]
    binding.sync(43)

    old.on_error(ResqStreamError("late"))

    assert not binding.failed


def test_close_is_idempotent() -> None:
    backend = FakeBackend()
    binding = StatusStreamBinding(backend, [].append)
    binding.sync(42)

    binding.close()
    binding.close()

    assert backend.open_keys("status") == []
