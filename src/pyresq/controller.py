"""Request lifecycle controller.

:class:`RequestLifecycleController` owns the single :class:`RequestSession`
for one civilian. Every change goes through :meth:`dispatch`, which applies
the event, then reconciles the side effects derived from the new snapshot:

* the reset timer is armed on entering ``Completed``/``Cancelled`` and
  disarmed when the session resets;
* the status stream follows ``request_id``;
* the location stream follows the tracking predicate
  (vehicle known and status ``Dispatched``/``Arrived``);
* listeners are notified with the new snapshot.

Events raised while a dispatch is in progress (for example by a listener)
are queued and applied in order after it.
"""

from __future__ import annotations

import collections
import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any

from pyresq._constants import LAST_SUBCATEGORY_KEY
from pyresq.backend import RescueBackend
from pyresq.config import ResqConfig
from pyresq.exceptions import ResqError, ResqValidationError
from pyresq.ingestion.normalize import coerce_identifier
from pyresq.models.request import ProofImage, RescueRequest
from pyresq.models.status import CanonicalStatus, classify
from pyresq.preferences import PreferenceStore
from pyresq.scheduler import ResetScheduler, TimerLoop
from pyresq.state.apply import apply_event
from pyresq.state.events import (
    CancelAcknowledged,
    EventSource,
    LocationPicked,
    RequestCreated,
    RequestRecovered,
    ResetRequested,
    SessionEvent,
)
from pyresq.state.policy import can_cancel, status_stream_key, tracking_vehicle_id
from pyresq.state.session import PickedLocation, RequestSession, SessionMode
from pyresq.streams import LocationStreamBinding, StatusStreamBinding

_logger = logging.getLogger(__name__)

SessionListener = Callable[[RequestSession], None]

NO_LOCATION_MESSAGE = "Please move the map to select a location first."
INVALID_SUBCATEGORY_MESSAGE = "Invalid subcategory selection."
REQUEST_IN_PROGRESS_MESSAGE = "A rescue request is already in progress."


class LifecyclePhase(StrEnum):
    IDLE = "idle"
    PICKING = "picking"
    SEARCHING = "searching"
    DISPATCHED = "dispatched"
    ARRIVED = "arrived"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


_PHASE_BY_STATUS: dict[CanonicalStatus, LifecyclePhase] = {
    CanonicalStatus.SEARCHING: LifecyclePhase.SEARCHING,
    CanonicalStatus.DISPATCHED: LifecyclePhase.DISPATCHED,
    CanonicalStatus.ARRIVED: LifecyclePhase.ARRIVED,
    CanonicalStatus.COMPLETED: LifecyclePhase.COMPLETED,
    CanonicalStatus.CANCELLED: LifecyclePhase.CANCELLED,
}


class RequestLifecycleController:
    """Finite-state machine for one civilian's rescue request.

    Parameters
    ----------
    backend : RescueBackend
        Remote operations and push streams.
    civilian_id : int or None
        Authenticated civilian. Recovery is skipped without one.
    config : ResqConfig or None
        Supplies ``reset_delay``; defaults are used when omitted.
    timers : TimerLoop or None
        Clock for the reset timer. Defaults to the running event loop.
    preferences : PreferenceStore or None
        Persists the emergency subcategory of the last created request.
    """

    def __init__(
        self,
        backend: RescueBackend,
        *,
        civilian_id: int | None,
        config: ResqConfig | None = None,
        timers: TimerLoop | None = None,
        preferences: PreferenceStore | None = None,
    ) -> None:
        self._backend = backend
        self._civilian_id = civilian_id
        self._config = config or ResqConfig()
        self._preferences = preferences
        self._listeners: list[SessionListener] = []
        self._inbox: collections.deque[SessionEvent] = collections.deque()
        self._dispatching = False
        self._started = False
        self._closed = False
        # user actions awaiting the server (or the confirmation prompt)
        self._creating = False
        self._cancelling = False

        self._session = RequestSession(subcategory_id=self._remembered_subcategory())
        self._scheduler = ResetScheduler(self._on_reset_timer, delay=self._config.reset_delay, loop=timers)
        self._status_binding = StatusStreamBinding(backend, self.dispatch)
        self._location_binding = LocationStreamBinding(backend, self.dispatch)

    # ------------------------------------------------------------------
    # Read-only surface
    # ------------------------------------------------------------------

    @property
    def session(self) -> RequestSession:
        return self._session

    @property
    def phase(self) -> LifecyclePhase:
        session = self._session
        if session.request_id is None:
            if not self._started or self._closed:
                return LifecyclePhase.IDLE
            return LifecyclePhase.PICKING
        return _PHASE_BY_STATUS.get(session.status, LifecyclePhase.SEARCHING)

    @property
    def picking_enabled(self) -> bool:
        return self._started and not self._closed and self._session.mode == SessionMode.PICKING

    @property
    def reset_deadline(self) -> float | None:
        return self._scheduler.deadline

    @property
    def status_binding(self) -> StatusStreamBinding:
        return self._status_binding

    @property
    def location_binding(self) -> LocationStreamBinding:
        return self._location_binding

    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> RequestLifecycleController:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.close()

    async def start(self) -> RequestSession:
        """Recover an active request, or enter picking mode.

        Recovery failures are logged and fall back to picking; they never
        raise.
        """
        if self._started or self._closed:
            return self._session
        detail = await self._recover_active_request()
        self._started = True
        if self._closed:
            return self._session
        if detail is not None:
            self.dispatch(RequestRecovered(detail=detail, subcategory_id=self._remembered_subcategory()))
        if self._session.request_id is None:
            _logger.debug("No active request; entering picking mode")
            self._notify()
        return self._session

    async def _recover_active_request(self) -> RescueRequest | None:
        if self._civilian_id is None:
            return None
        try:
            ids = await self._backend.get_active_request_ids(self._civilian_id)
        except ResqError as exc:
            _logger.warning("Active request lookup failed: %s", exc)
            return None
        if not ids:
            return None
        request_id = ids[0]
        try:
            detail = await self._backend.get_request_detail(request_id)
        except ResqError as exc:
            _logger.warning("Fetching request %s for recovery failed: %s", request_id, exc)
            return None
        if detail is None:
            _logger.debug("Active request %s has no detail", request_id)
        return detail

    def close(self) -> None:
        """Cancel the reset timer and tear down both streams."""
        if self._closed:
            return
        self._closed = True
        self._scheduler.close()
        self._status_binding.close()
        self._location_binding.close()
        self._inbox.clear()
        self._listeners.clear()
        _logger.debug("Request lifecycle controller closed")

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def pick(self, location: PickedLocation) -> RequestSession:
        """Record the destination confirmed by the pin resolver."""
        return self.dispatch(LocationPicked(location=location))

    async def create_request(
        self,
        subcategory_id: Any,
        *,
        description: str | None = None,
        proof_image: ProofImage | None = None,
    ) -> RequestSession:
        """Create a request for the picked location.

        Raises
        ------
        ResqValidationError
            No location is picked, the subcategory is invalid, or a request
            is already in progress or being created. No network call is made.
        ResqApiError, ResqTransportError
            The server rejected the request; the session is unchanged.
        """
        session = self._session
        if self._creating or session.mode != SessionMode.PICKING or session.request_id is not None:
            raise ResqValidationError(REQUEST_IN_PROGRESS_MESSAGE)
        location = session.picked_location
        if location is None:
            raise ResqValidationError(NO_LOCATION_MESSAGE)
        subcategory = coerce_identifier(subcategory_id)
        if subcategory is None:
            raise ResqValidationError(INVALID_SUBCATEGORY_MESSAGE)

        self._creating = True
        try:
            request = await self._backend.create_request(
                civilian_id=self._civilian_id,
                subcategory_id=subcategory,
                latitude=location.lat,
                longitude=location.lng,
                address=location.address,
                description=description.strip() if description else None,
                proof_image=proof_image,
            )
        finally:
            self._creating = False
        _logger.debug("Created request=%s status=%r", request.id, request.status)
        self.dispatch(RequestCreated(request=request, subcategory_id=subcategory))
        if self._session.request_id == request.id:
            self._write_preference(subcategory)
        return self._session

    async def cancel(self, confirm: Callable[[], Awaitable[bool]]) -> bool:
        """Cancel the current request after the user confirms.

        Returns ``False`` when cancelling is not allowed, another
        cancellation is already in progress, or the user declined. The
        session is marked ``Cancelled`` as soon as the server acknowledges,
        without waiting for the status stream.
        """
        if self._cancelling or not can_cancel(self._session):
            return False
        request_id = self._session.request_id
        self._cancelling = True
        try:
            if not await confirm():
                _logger.debug("Cancellation of request=%s declined", request_id)
                return False
            if not can_cancel(self._session) or self._session.request_id != request_id:
                _logger.debug("Request=%s left the cancellable state while confirming", request_id)
                return False
            result = await self._backend.cancel_request(request_id)  # type: ignore[arg-type]
        finally:
            self._cancelling = False

        status_text = result.status if classify(result.status) == CanonicalStatus.CANCELLED else "Cancelled"
        self.dispatch(CancelAcknowledged(request_id=request_id, status_text=status_text))  # type: ignore[arg-type]
        return True

    def dismiss(self) -> bool:
        """Reset a finished session immediately instead of waiting for the timer."""
        if not self._session.is_terminal:
            return False
        self.dispatch(ResetRequested(source=EventSource.LOCAL))
        return True

    # ------------------------------------------------------------------
    # Event application
    # ------------------------------------------------------------------

    def dispatch(self, event: SessionEvent) -> RequestSession:
        """Apply *event* and reconcile timers, streams and listeners."""
        if self._closed:
            _logger.debug("Dropping %s after close", type(event).__name__)
            return self._session
        self._inbox.append(event)
        if self._dispatching:
            return self._session
        self._dispatching = True
        try:
            while self._inbox:
                self._apply(self._inbox.popleft())
        finally:
            self._dispatching = False
        return self._session

    def _apply(self, event: SessionEvent) -> None:
        previous = self._session
        session = apply_event(previous, event)
        if session is previous:
            return
        self._session = session
        if session.status != previous.status or session.request_id != previous.request_id:
            _logger.debug(
                "Session %s request=%s -> %s request=%s (%s)",
                previous.status,
                previous.request_id,
                session.status,
                session.request_id,
                type(event).__name__,
            )

        if session.is_terminal and not previous.is_terminal:
            self._scheduler.schedule()
        elif previous.is_terminal and not session.is_terminal:
            self._scheduler.cancel()
            if previous.status == CanonicalStatus.CANCELLED:
                self._forget_preference()

        self._status_binding.sync(status_stream_key(session))
        self._location_binding.sync(tracking_vehicle_id(session))
        self._notify()

    def _on_reset_timer(self) -> None:
        self.dispatch(ResetRequested())

    def _notify(self) -> None:
        session = self._session
        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception:
                _logger.debug("Session listener failed", exc_info=True)

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    def _remembered_subcategory(self) -> int | None:
        if self._preferences is None:
            return None
        return coerce_identifier(self._preferences.get(LAST_SUBCATEGORY_KEY))

    def _write_preference(self, subcategory: int) -> None:
        if self._preferences is None:
            return
        try:
            self._preferences.set(LAST_SUBCATEGORY_KEY, subcategory)
        except OSError:
            _logger.warning("Could not persist last subcategory", exc_info=True)

    def _forget_preference(self) -> None:
        if self._preferences is None:
            return
        try:
            self._preferences.remove(LAST_SUBCATEGORY_KEY)
        except OSError:
            _logger.warning("Could not clear last subcategory", exc_info=True)
