"""Event application.

:func:`apply_event` is the only way a :class:`RequestSession` changes. It
is pure: given the same session and event it returns the same snapshot, and
it returns the *same object* when the event is discarded so callers can
detect no-ops with ``is``.
"""

from __future__ import annotations

import logging

from pyresq.models.request import RescueRequest
from pyresq.models.status import CanonicalStatus, classify
from pyresq.state.events import (
    CancelAcknowledged,
    LocationPicked,
    PositionEvent,
    RequestCreated,
    RequestRecovered,
    ResetRequested,
    SessionEvent,
    StatusEvent,
)
from pyresq.state.policy import merge_vehicle_identity, should_accept_position
from pyresq.state.session import (
    PickedLocation,
    RequestSession,
    SessionMode,
    VehicleIdentity,
    VehicleMarker,
)

_logger = logging.getLogger(__name__)

_RECOVERABLE_STATUSES: frozenset[CanonicalStatus] = frozenset(
    {CanonicalStatus.SEARCHING, CanonicalStatus.DISPATCHED, CanonicalStatus.ARRIVED}
)


def _normalize(session: RequestSession) -> RequestSession:
    # The marker exists only while a vehicle is en route or on scene.
    if session.vehicle_marker is not None and not session.status.is_tracking_leg:
        return session.model_copy(update={"vehicle_marker": None})
    return session


def _identity_from_detail(current: VehicleIdentity, detail: RescueRequest) -> VehicleIdentity:
    assignment = detail.primary_assignment
    if assignment is None:
        return current
    return merge_vehicle_identity(
        current,
        vehicle_id=assignment.resolved_vehicle_id,
        vehicle=assignment.vehicle,
    )


def _apply_location_picked(session: RequestSession, event: LocationPicked) -> RequestSession:
    if session.mode != SessionMode.PICKING:
        _logger.debug("Ignoring picked location outside picking mode")
        return session
    if session.picked_location == event.location:
        return session
    return session.model_copy(update={"picked_location": event.location})


def _apply_request_created(session: RequestSession, event: RequestCreated) -> RequestSession:
    if session.mode != SessionMode.PICKING or session.request_id is not None:
        _logger.debug("Ignoring request creation for session already awaiting outcome")
        return session
    request = event.request
    status = classify(request.status)
    if status not in _RECOVERABLE_STATUSES:
        status = CanonicalStatus.SEARCHING
    return session.model_copy(
        update={
            "request_id": request.id,
            "status": status,
            "status_text": request.status or "Searching",
            "created_at": request.created_at,
            "mode": SessionMode.AWAITING_OUTCOME,
            "subcategory_id": event.subcategory_id,
        }
    )


def _apply_status(session: RequestSession, event: StatusEvent) -> RequestSession:
    detail = event.detail
    if session.request_id is None or event.request_id != session.request_id or detail.id != session.request_id:
        _logger.debug(
            "Discarding status event for request=%s (session request=%s)",
            detail.id,
            session.request_id,
        )
        return session

    update: dict[str, object] = {}
    identity = _identity_from_detail(session.vehicle, detail)
    if identity is not session.vehicle:
        update["vehicle"] = identity
    if session.created_at is None and detail.created_at is not None:
        update["created_at"] = detail.created_at

    status = classify(detail.status)
    if status in (CanonicalStatus.UNKNOWN, CanonicalStatus.NONE):
        _logger.debug("Unrecognised status text %r; keeping %s", detail.status, session.status)
    elif session.status.is_terminal:
        # Terminal statuses are absorbing; re-applying the same one is a no-op.
        if status != session.status:
            _logger.debug("Ignoring %s after terminal %s", status, session.status)
    elif status != session.status or detail.status != session.status_text:
        update["status"] = status
        update["status_text"] = detail.status

    if not update:
        return session
    return _normalize(session.model_copy(update=update))


def _apply_position(session: RequestSession, event: PositionEvent) -> RequestSession:
    position = event.position
    vehicle_id = session.vehicle.id
    if (
        vehicle_id is None
        or not session.status.is_tracking_leg
        or event.vehicle_id != vehicle_id
        or position.vehicle_id != vehicle_id
    ):
        _logger.debug(
            "Discarding position for vehicle=%s (tracking=%s status=%s)",
            position.vehicle_id,
            vehicle_id,
            session.status,
        )
        return session

    identity = merge_vehicle_identity(session.vehicle, vehicle_id=vehicle_id, vehicle=position.vehicle)
    update: dict[str, object] = {}
    if identity is not session.vehicle:
        update["vehicle"] = identity

    if position.has_position:
        current = session.vehicle_marker
        if current is None or should_accept_position(
            cached_recorded_at=current.recorded_at,
            incoming_recorded_at=position.last_active,
        ):
            update["vehicle_marker"] = VehicleMarker(
                lat=position.latitude,  # type: ignore[arg-type]
                lng=position.longitude,  # type: ignore[arg-type]
                label=identity.code,
                recorded_at=position.last_active,
            )
        else:
            _logger.debug("Discarding out-of-order position for vehicle=%s", vehicle_id)

    if not update:
        return session
    return session.model_copy(update=update)


def _apply_recovered(session: RequestSession, event: RequestRecovered) -> RequestSession:
    detail = event.detail
    status = classify(detail.status)
    if session.request_id is not None or session.mode != SessionMode.PICKING:
        _logger.debug("Ignoring recovery of request=%s; session already bound", detail.id)
        return session
    if status not in _RECOVERABLE_STATUSES:
        _logger.debug("Ignoring recovery of request=%s in status %r", detail.id, detail.status)
        return session

    identity = _identity_from_detail(VehicleIdentity(), detail)
    picked = session.picked_location
    if detail.latitude is not None and detail.longitude is not None:
        picked = PickedLocation(lat=detail.latitude, lng=detail.longitude)

    marker: VehicleMarker | None = None
    assignment = detail.primary_assignment
    if status.is_tracking_leg and identity.id is not None and assignment is not None and assignment.vehicle:
        latest = assignment.vehicle.latest_location
        if latest is not None:
            marker = VehicleMarker(
                lat=latest.latitude,  # type: ignore[arg-type]
                lng=latest.longitude,  # type: ignore[arg-type]
                label=identity.code,
                recorded_at=latest.recorded_at,
            )

    return RequestSession(
        request_id=detail.id,
        status=status,
        status_text=detail.status,
        created_at=detail.created_at,
        vehicle=identity,
        vehicle_marker=marker,
        picked_location=picked,
        mode=SessionMode.AWAITING_OUTCOME,
        subcategory_id=event.subcategory_id if event.subcategory_id is not None else session.subcategory_id,
    )


def _apply_cancel_ack(session: RequestSession, event: CancelAcknowledged) -> RequestSession:
    if session.request_id is None or event.request_id != session.request_id:
        return session
    if session.status.is_terminal:
        return session
    return _normalize(
        session.model_copy(
            update={
                "status": CanonicalStatus.CANCELLED,
                "status_text": event.status_text,
            }
        )
    )


def _apply_reset(session: RequestSession, _event: ResetRequested) -> RequestSession:
    if not session.is_terminal:
        _logger.debug("Ignoring reset for non-terminal status %s", session.status)
        return session
    # A completed request keeps its emergency type for first-aid lookup.
    keep_subcategory = session.subcategory_id if session.status == CanonicalStatus.COMPLETED else None
    return RequestSession(subcategory_id=keep_subcategory)


def apply_event(session: RequestSession, event: SessionEvent) -> RequestSession:
    """Apply *event* to *session* and return the resulting snapshot."""
    if isinstance(event, StatusEvent):
        return _apply_status(session, event)
    if isinstance(event, PositionEvent):
        return _apply_position(session, event)
    if isinstance(event, LocationPicked):
        return _apply_location_picked(session, event)
    if isinstance(event, RequestCreated):
        return _apply_request_created(session, event)
    if isinstance(event, RequestRecovered):
        return _apply_recovered(session, event)
    if isinstance(event, CancelAcknowledged):
        return _apply_cancel_ack(session, event)
    if isinstance(event, ResetRequested):
        return _apply_reset(session, event)
    raise TypeError(f"Unsupported session event: {type(event).__name__}")
