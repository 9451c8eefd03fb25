from __future__ import annotations

import asyncio
from typing import Any

import pytest

from pyresq._api.requests import parse_position_data
from pyresq._constants import LAST_SUBCATEGORY_KEY
from pyresq.config import ResqConfig
from pyresq.controller import (
    INVALID_SUBCATEGORY_MESSAGE,
    NO_LOCATION_MESSAGE,
    LifecyclePhase,
    RequestLifecycleController,
)
from pyresq.exceptions import ResqApiError, ResqTransportError, ResqValidationError
from pyresq.models.status import CanonicalStatus
from pyresq.state.events import PositionEvent
from pyresq.state.session import PickedLocation, RequestSession, SessionMode
from pyresq.testing import FakeBackend, ManualTimerLoop, MemoryPreferences

CIVILIAN_ID = 5
DESTINATION = PickedLocation(lat=6.9271, lng=79.8612, address="Colombo Fort")


def _vehicle(vehicle_id: int, code: str | None = None, plate: str | None = None) -> dict[str, Any]:
    return {
        "id": vehicle_id,
        "code": code,
        "plateNumber": plate,
        "rescueVehicleCategory": {"emergencyToVehicles": [{"emergencyCategory": {"icon": "amb.png"}}]},
    }


def _status_payload(request_id: int, status: str, *, vehicle: dict[str, Any] | None = None) -> dict[str, Any]:
    node: dict[str, Any] = {"id": request_id, "status": status, "createdAt": "2026-01-01T08:00:00Z"}
    if vehicle is not None:
        node["rescueVehicleAssignments"] = [{"id": 1, "rescueVehicleId": vehicle["id"], "rescueVehicle": vehicle}]
    return {"onRescueVehicleRequestStatusChanged": node}


def _position_payload(vehicle_id: int, lat: float, lng: float, *, code: str | None = None) -> dict[str, Any]:
    return {
        "onVehicleLocationShareByVehicle": {
            "rescueVehicleId": vehicle_id,
            "active": True,
            "latitude": lat,
            "longitude": lng,
            "lastActive": "2026-01-01T08:05:00Z",
            "rescueVehicle": {"code": code},
        }
    }


async def _controller(
    backend: FakeBackend | None = None,
    *,
    preferences: MemoryPreferences | None = None,
) -> tuple[RequestLifecycleController, FakeBackend, ManualTimerLoop]:
    backend = backend or FakeBackend()
    timers = ManualTimerLoop()
    controller = RequestLifecycleController(
        backend,
        civilian_id=CIVILIAN_ID,
        config=ResqConfig(reset_delay=5.0),
        timers=timers,
        preferences=preferences,
    )
    await controller.start()
    return controller, backend, timers


async def _created(
    preferences: MemoryPreferences | None = None,
) -> tuple[RequestLifecycleController, FakeBackend, ManualTimerLoop, int]:
    controller, backend, timers = await _controller(preferences=preferences)
    controller.pick(DESTINATION)
    session = await controller.create_request(3)
    assert session.request_id is not None
    return controller, backend, timers, session.request_id


# ------------------------------------------------------------------
# Start-up
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_start_without_active_request_enters_picking() -> None:
    backend = FakeBackend()
    controller = RequestLifecycleController(backend, civilian_id=CIVILIAN_ID, timers=ManualTimerLoop())
    assert controller.phase == LifecyclePhase.IDLE
    assert not controller.picking_enabled

    await controller.start()

    assert controller.phase == LifecyclePhase.PICKING
    assert controller.picking_enabled
    assert controller.session == RequestSession()
    assert backend.calls_to("get_active_request_ids") == [{"civilian_id": CIVILIAN_ID}]
    assert backend.subscriptions == []


@pytest.mark.asyncio
async def test_failed_recovery_lookup_falls_back_to_picking() -> None:
    backend = FakeBackend()
    backend.lookup_error = ResqTransportError("offline")
    controller, _, _ = await _controller(backend)

    assert controller.phase == LifecyclePhase.PICKING


@pytest.mark.asyncio
async def test_remembered_subcategory_is_loaded() -> None:
    controller, _, _ = await _controller(preferences=MemoryPreferences({LAST_SUBCATEGORY_KEY: 4}))
    assert controller.session.subcategory_id == 4


# ------------------------------------------------------------------
# Creation and validation
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_requires_picked_location() -> None:
    controller, backend, _ = await _controller()

    with pytest.raises(ResqValidationError, match=NO_LOCATION_MESSAGE):
        await controller.create_request(3)
    assert backend.calls_to("create_request") == []


@pytest.mark.parametrize("subcategory", [None, 0, -2, "abc", 2.5])
@pytest.mark.asyncio
async def test_create_rejects_invalid_subcategory(subcategory: Any) -> None:
    controller, backend, _ = await _controller()
    controller.pick(DESTINATION)

    with pytest.raises(ResqValidationError, match=INVALID_SUBCATEGORY_MESSAGE):
        await controller.create_request(subcategory)
    assert backend.calls_to("create_request") == []


@pytest.mark.asyncio
async def test_create_sends_picked_location_and_opens_status_stream() -> None:
    preferences = MemoryPreferences()
    controller, backend, _, request_id = await _created(preferences)

    call = backend.calls_to("create_request")[0]
    assert call["civilian_id"] == CIVILIAN_ID
    assert call["subcategory_id"] == 3
    assert (call["latitude"], call["longitude"], call["address"]) == (6.9271, 79.8612, "Colombo Fort")
    assert controller.phase == LifecyclePhase.SEARCHING
    assert controller.session.mode == SessionMode.AWAITING_OUTCOME
    assert not controller.picking_enabled
    assert backend.open_keys("status") == [request_id]
    assert backend.open_keys("location") == []
    assert preferences.values == {LAST_SUBCATEGORY_KEY: 3}


@pytest.mark.asyncio
async def test_create_failure_leaves_session_unchanged() -> None:
    preferences = MemoryPreferences()
    controller, backend, _ = await _controller(preferences=preferences)
    controller.pick(DESTINATION)
    before = controller.session
    backend.create_error = ResqApiError("Civilian is not verified", operation="CreateRescueVehicleRequest")

    with pytest.raises(ResqApiError, match="Civilian is not verified"):
        await controller.create_request(3)

    assert controller.session is before
    assert controller.phase == LifecyclePhase.PICKING
    assert preferences.values == {}


@pytest.mark.asyncio
async def test_second_create_is_rejected_while_awaiting_outcome() -> None:
    controller, backend, _, _ = await _created()

    with pytest.raises(ResqValidationError):
        await controller.create_request(3)
    assert len(backend.calls_to("create_request")) == 1


class _SlowBackend(FakeBackend):
    """Backend whose mutations yield to the event loop before answering."""

    async def create_request(self, **kwargs: Any):  # type: ignore[override]
        await asyncio.sleep(0)
        return await super().create_request(**kwargs)

    async def cancel_request(self, request_id: int):  # type: ignore[override]
        await asyncio.sleep(0)
        return await super().cancel_request(request_id)


@pytest.mark.asyncio
async def test_overlapping_creates_send_one_request() -> None:
    controller, backend, _ = await _controller(_SlowBackend())
    controller.pick(DESTINATION)

    results = await asyncio.gather(
        controller.create_request(3),
        controller.create_request(3),
        return_exceptions=True,
    )

    assert len(backend.calls_to("create_request")) == 1
    assert isinstance(results[0], RequestSession)
    assert isinstance(results[1], ResqValidationError)
    assert controller.session.request_id == 101


@pytest.mark.asyncio
async def test_create_can_be_retried_after_failure() -> None:
    controller, backend, _ = await _controller(_SlowBackend())
    controller.pick(DESTINATION)
    backend.create_error = ResqTransportError("offline")

    with pytest.raises(ResqTransportError):
        await controller.create_request(3)
    backend.create_error = None
    session = await controller.create_request(3)

    assert session.request_id == 101
    assert len(backend.calls_to("create_request")) == 2


# ------------------------------------------------------------------
# Streams and tracking
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_location_stream_follows_tracking_predicate() -> None:
    controller, backend, _, request_id = await _created()

    backend.push_status(request_id, _status_payload(request_id, "Searching", vehicle=_vehicle(7)))
    assert controller.session.vehicle.id == 7
    assert backend.open_keys("location") == []

    backend.push_status(request_id, _status_payload(request_id, "Dispatched", vehicle=_vehicle(7, "AMB-12")))
    assert controller.phase == LifecyclePhase.DISPATCHED
    assert backend.open_keys("location") == [7]

    backend.push_position(7, _position_payload(7, 6.91, 79.85))
    assert controller.session.vehicle_marker is not None

    backend.push_status(request_id, _status_payload(request_id, "Completed", vehicle=_vehicle(7)))
    session = controller.session
    assert backend.open_keys("location") == []
    assert session.vehicle_marker is None
    assert session.status == CanonicalStatus.COMPLETED
    assert session.status_text == "Completed"
    assert session.vehicle.code == "AMB-12"
    assert controller.phase == LifecyclePhase.COMPLETED


@pytest.mark.asyncio
async def test_position_for_other_vehicle_is_rejected() -> None:
    controller, backend, _, request_id = await _created()
    backend.push_status(request_id, _status_payload(request_id, "Dispatched", vehicle=_vehicle(7, "AMB-12")))
    backend.push_position(7, _position_payload(7, 6.91, 79.85))
    marker = controller.session.vehicle_marker

    stray = parse_position_data(_position_payload(8, 1.0, 2.0))
    assert stray is not None
    backend.open_subscriptions("location")[0].on_data(stray)
    controller.dispatch(PositionEvent(vehicle_id=8, position=stray))

    assert controller.session.vehicle_marker == marker


@pytest.mark.asyncio
async def test_code_from_status_stream_survives_null_code_position() -> None:
    controller, backend, _, request_id = await _created()
    backend.push_status(request_id, _status_payload(request_id, "Dispatched", vehicle=_vehicle(7, "AMB-12")))

    backend.push_position(7, _position_payload(7, 6.91, 79.85, code=None))

    assert controller.session.vehicle.code == "AMB-12"
    assert controller.session.vehicle_marker is not None
    assert controller.session.vehicle_marker.label == "AMB-12"


@pytest.mark.asyncio
async def test_stream_error_keeps_session_and_reopens_on_next_change() -> None:
    controller, backend, _, request_id = await _created()
    before = controller.session

    backend.fail_stream("status", request_id)

    assert controller.session is before
    assert controller.status_binding.failed

    backend.push_status(request_id, _status_payload(request_id, "Dispatched", vehicle=_vehicle(7)))

    assert controller.phase == LifecyclePhase.DISPATCHED
    assert not controller.status_binding.failed
    assert backend.open_keys("status") == [request_id]
    assert len([s for s in backend.subscriptions if s.kind == "status"]) == 2


# ------------------------------------------------------------------
# Reset timing
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_cancelled_session_resets_after_five_seconds() -> None:
    preferences = MemoryPreferences()
    controller, backend, timers, request_id = await _created(preferences)

    backend.push_status(request_id, _status_payload(request_id, "Cancelled"))
    assert controller.reset_deadline == pytest.approx(5.0)

    timers.advance(4.999)
    assert controller.session.status == CanonicalStatus.CANCELLED
    assert controller.session.status_text == "Cancelled"

    timers.advance(0.001)
    assert controller.session == RequestSession()
    assert controller.phase == LifecyclePhase.PICKING
    assert backend.open_keys("status") == []
    assert preferences.values == {}


@pytest.mark.asyncio
async def test_completed_reset_keeps_subcategory() -> None:
    preferences = MemoryPreferences()
    controller, backend, timers, request_id = await _created(preferences)

    backend.push_status(request_id, _status_payload(request_id, "Completed"))
    timers.advance(5.0)

    assert controller.session == RequestSession(subcategory_id=3)
    assert preferences.values == {LAST_SUBCATEGORY_KEY: 3}


@pytest.mark.asyncio
async def test_dismiss_resets_immediately_and_disarms_timer() -> None:
    controller, backend, timers, request_id = await _created()
    assert not controller.dismiss()

    backend.push_status(request_id, _status_payload(request_id, "Completed"))
    assert controller.dismiss()

    assert controller.session.request_id is None
    assert controller.reset_deadline is None
    assert timers.pending == 0


@pytest.mark.asyncio
async def test_close_cancels_timer_and_streams() -> None:
    controller, backend, timers, request_id = await _created()
    backend.push_status(request_id, _status_payload(request_id, "Cancelled"))

    controller.close()
    timers.advance(10.0)

    assert controller.session.status == CanonicalStatus.CANCELLED
    assert backend.open_keys("status") == []
    assert controller.phase == LifecyclePhase.CANCELLED


# ------------------------------------------------------------------
# Cancellation
# ------------------------------------------------------------------


async def _confirm_yes() -> bool:
    return True


async def _confirm_no() -> bool:
    return False


@pytest.mark.asyncio
async def test_cancel_requires_confirmation() -> None:
    controller, backend, _, _ = await _created()

    assert not await controller.cancel(_confirm_no)
    assert backend.calls_to("cancel_request") == []
    assert controller.phase == LifecyclePhase.SEARCHING


@pytest.mark.asyncio
async def test_cancel_marks_session_cancelled_on_ack() -> None:
    controller, backend, timers, request_id = await _created()

    assert await controller.cancel(_confirm_yes)

    assert backend.calls_to("cancel_request") == [{"request_id": request_id}]
    assert controller.phase == LifecyclePhase.CANCELLED
    assert controller.reset_deadline == pytest.approx(timers.time() + 5.0)

    # the status stream confirming the same value changes nothing
    before = controller.session
    backend.push_status(request_id, _status_payload(request_id, "Cancelled"))
    assert controller.session is before


@pytest.mark.asyncio
async def test_cancel_not_offered_once_dispatched() -> None:
    controller, backend, _, request_id = await _created()
    backend.push_status(request_id, _status_payload(request_id, "Dispatched", vehicle=_vehicle(7)))
    asked: list[bool] = []

    async def _confirm() -> bool:
        asked.append(True)
        return True

    assert not await controller.cancel(_confirm)
    assert asked == []
    assert backend.calls_to("cancel_request") == []


@pytest.mark.asyncio
async def test_overlapping_cancels_confirm_and_send_once() -> None:
    controller, backend, _ = await _controller(_SlowBackend())
    controller.pick(DESTINATION)
    await controller.create_request(3)
    asked: list[bool] = []

    async def _confirm() -> bool:
        asked.append(True)
        await asyncio.sleep(0)
        return True

    results = await asyncio.gather(controller.cancel(_confirm), controller.cancel(_confirm))

    assert results == [True, False]
    assert asked == [True]
    assert len(backend.calls_to("cancel_request")) == 1
    assert controller.phase == LifecyclePhase.CANCELLED


@pytest.mark.asyncio
async def test_declined_cancel_can_be_asked_again() -> None:
    controller, backend, _, request_id = await _created()

    assert not await controller.cancel(_confirm_no)
    assert await controller.cancel(_confirm_yes)
    assert backend.calls_to("cancel_request") == [{"request_id": request_id}]


@pytest.mark.asyncio
async def test_cancel_failure_surfaces_server_message() -> None:
    controller, backend, _, _ = await _created()
    backend.cancel_error = ResqApiError("Request already dispatched", operation="UpdateRescueVehicleRequest")

    with pytest.raises(ResqApiError, match="Request already dispatched"):
        await controller.cancel(_confirm_yes)
    assert controller.phase == LifecyclePhase.SEARCHING
    assert controller.reset_deadline is None


# ------------------------------------------------------------------
# Recovery
# ------------------------------------------------------------------


def _dispatched_detail(request_id: int) -> dict[str, Any]:
    vehicle = _vehicle(7, "AMB-12", "CAB-1234")
    vehicle["rescueVehicleLocations"] = [{"id": 1, "latitude": 6.95, "longitude": 79.9}]
    return {
        "id": request_id,
        "status": "Dispatched",
        "createdAt": "2026-01-01T08:00:00Z",
        "latitude": 6.9271,
        "longitude": 79.8612,
        "rescueVehicleAssignments": [{"id": 1, "rescueVehicleId": 7, "rescueVehicle": vehicle}],
    }


@pytest.mark.asyncio
async def test_recovery_binds_both_streams() -> None:
    backend = FakeBackend()
    backend.active_request_ids = [42, 17]
    backend.add_detail(_dispatched_detail(42))

    controller, _, _ = await _controller(backend, preferences=MemoryPreferences({LAST_SUBCATEGORY_KEY: 3}))

    assert backend.calls_to("get_request_detail") == [{"request_id": 42}]
    assert controller.phase == LifecyclePhase.DISPATCHED
    assert not controller.picking_enabled
    assert controller.session.subcategory_id == 3
    assert backend.open_keys("status") == [42]
    assert backend.open_keys("location") == [7]


@pytest.mark.asyncio
async def test_recovery_and_live_events_converge() -> None:
    backend = FakeBackend()
    backend.active_request_ids = [42]
    backend.add_detail(_dispatched_detail(42))
    recovered, _, _ = await _controller(backend)

    live, live_backend, _, request_id = await _created()
    live_backend.push_status(request_id, _status_payload(request_id, "Dispatched", vehicle=_vehicle(7, "AMB-12", "CAB-1234")))
    live_backend.push_position(7, _position_payload(7, 6.95, 79.9))

    a, b = recovered.session, live.session
    assert a.status == b.status == CanonicalStatus.DISPATCHED
    assert a.status_text == b.status_text
    assert a.vehicle == b.vehicle
    assert a.vehicle_marker is not None and b.vehicle_marker is not None
    assert (a.vehicle_marker.lat, a.vehicle_marker.lng, a.vehicle_marker.label) == (
        b.vehicle_marker.lat,
        b.vehicle_marker.lng,
        b.vehicle_marker.label,
    )


# ------------------------------------------------------------------
# Listeners
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_listeners_see_every_snapshot() -> None:
    controller, backend, _ = await _controller()
    seen: list[RequestSession] = []
    remove = controller.add_listener(seen.append)

    controller.pick(DESTINATION)
    controller.pick(DESTINATION)
    await controller.create_request(3)

    # the repeated pick is a no-op and notifies nobody
    assert len(seen) == 2
    assert seen[0].request_id is None
    assert seen[0].picked_location == DESTINATION
    assert seen[-1].request_id is not None

    remove()
    controller.dismiss()
    backend.push_status(seen[-1].request_id, _status_payload(seen[-1].request_id, "Dispatched"))  # type: ignore[arg-type]
    assert len(seen) == 2


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_dispatch() -> None:
    controller, _, _ = await _controller()

    def _boom(_session: RequestSession) -> None:
        raise RuntimeError("listener bug")

    controller.add_listener(_boom)
    controller.pick(DESTINATION)

    assert controller.session.picked_location == DESTINATION
