"""Delayed, cancelable session reset."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol

_logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class TimerLoop(Protocol):
    """The subset of :class:`asyncio.AbstractEventLoop` used for timers.

    Tests substitute :class:`pyresq.testing.ManualTimerLoop`.
    """

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...

    def time(self) -> float: ...


def default_timer_loop() -> TimerLoop:
    return asyncio.get_running_loop()


class ResetScheduler:
    """Arms a single delayed reset.

    ``schedule()`` replaces any armed timer (last call wins), ``cancel()``
    disarms it and ``close()`` disarms it for good.
    """

    def __init__(
        self,
        on_fire: Callable[[], None],
        *,
        delay: float = 5.0,
        loop: TimerLoop | None = None,
    ) -> None:
        self._on_fire = on_fire
        self._delay = delay
        self._loop = loop
        self._handle: TimerHandle | None = None
        self._deadline: float | None = None
        self._closed = False

    @property
    def armed(self) -> bool:
        return self._handle is not None

    @property
    def deadline(self) -> float | None:
        """Loop time at which the armed reset fires."""
        return self._deadline

    def _timer_loop(self) -> TimerLoop:
        if self._loop is None:
            self._loop = default_timer_loop()
        return self._loop

    def schedule(self) -> None:
        if self._closed:
            return
        self.cancel()
        loop = self._timer_loop()
        self._deadline = loop.time() + self._delay
        self._handle = loop.call_later(self._delay, self._fire)
        _logger.debug("Session reset armed for %.1fs", self._delay)

    def cancel(self) -> None:
        handle = self._handle
        self._handle = None
        self._deadline = None
        if handle is not None:
            handle.cancel()

    def close(self) -> None:
        self.cancel()
        self._closed = True

    def _fire(self) -> None:
        self._handle = None
        self._deadline = None
        if self._closed:
            return
        _logger.debug("Session reset fired")
        self._on_fire()
