"""Push-stream bindings.

A binding owns at most one live subscription. :meth:`StreamBinding.sync`
is called with the key derived from the current session after every
session change:

* a new key (or ``None``) tears the old subscription down synchronously;
* a key opens a fresh subscription bound to that key;
* the same key keeps the subscription, unless it has failed, in which case
  it is re-opened.

Deliveries are tagged with the key the subscription was opened for and
dropped when that key is no longer current.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

from pyresq.backend import RescueBackend, Subscription
from pyresq.models.location import VehiclePosition
from pyresq.models.request import RescueRequest
from pyresq.state.events import PositionEvent, SessionEvent, StatusEvent

_logger = logging.getLogger(__name__)

K = TypeVar("K")
P = TypeVar("P")

EventSink = Callable[[SessionEvent], None]


class StreamBinding(Generic[K, P]):
    """Keyed subscription whose lifetime follows a guard predicate."""

    name = "stream"

    def __init__(self, backend: RescueBackend, sink: EventSink) -> None:
        self._backend = backend
        self._sink = sink
        self._key: K | None = None
        self._subscription: Subscription | None = None
        self._failed = False
        self._generation = 0

    @property
    def key(self) -> K | None:
        return self._key

    @property
    def active(self) -> bool:
        return self._subscription is not None

    @property
    def failed(self) -> bool:
        return self._failed

    def sync(self, key: K | None) -> None:
        if key == self._key and self._subscription is not None and not self._failed:
            return
        self._teardown()
        if key is None:
            return
        self._open(key)

    def close(self) -> None:
        self._teardown()

    def _teardown(self) -> None:
        subscription = self._subscription
        previous = self._key
        self._subscription = None
        self._key = None
        self._failed = False
        self._generation += 1
        if subscription is not None:
            _logger.debug("%s stream closed key=%s", self.name, previous)
            subscription.close()

    def _open(self, key: K) -> None:
        self._key = key
        generation = self._generation

        def _on_data(payload: P) -> None:
            if generation != self._generation or self._key != key:
                _logger.debug("%s stream dropping delivery for stale key=%s", self.name, key)
                return
            event = self._to_event(key, payload)
            if event is not None:
                self._sink(event)

        def _on_error(exc: Exception) -> None:
            if generation != self._generation:
                return
            self._failed = True
            _logger.warning("%s stream error key=%s: %s", self.name, key, exc)

        _logger.debug("%s stream open key=%s", self.name, key)
        self._subscription = self._subscribe(key, _on_data, _on_error)

    def _subscribe(
        self,
        key: K,
        on_data: Callable[[P], None],
        on_error: Callable[[Exception], None],
    ) -> Subscription:
        raise NotImplementedError

    def _to_event(self, key: K, payload: P) -> SessionEvent | None:
        raise NotImplementedError


class StatusStreamBinding(StreamBinding[int, RescueRequest]):
    """Status changes for the session's request id."""

    name = "status"

    def _subscribe(
        self,
        key: int,
        on_data: Callable[[RescueRequest], None],
        on_error: Callable[[Exception], None],
    ) -> Subscription:
        return self._backend.subscribe_request_status(key, on_data, on_error)

    def _to_event(self, key: int, payload: RescueRequest) -> SessionEvent | None:
        if payload.id != key:
            _logger.debug("status stream ignoring request=%s on key=%s", payload.id, key)
            return None
        return StatusEvent(request_id=key, detail=payload)


class LocationStreamBinding(StreamBinding[int, VehiclePosition]):
    """Vehicle positions while the tracking predicate holds."""

    name = "location"

    def _subscribe(
        self,
        key: int,
        on_data: Callable[[VehiclePosition], None],
        on_error: Callable[[Exception], None],
    ) -> Subscription:
        return self._backend.subscribe_vehicle_position(key, on_data, on_error)

    def _to_event(self, key: int, payload: VehiclePosition) -> SessionEvent | None:
        if payload.vehicle_id != key:
            _logger.debug("location stream ignoring vehicle=%s on key=%s", payload.vehicle_id, key)
            return None
        return PositionEvent(vehicle_id=key, position=payload)
