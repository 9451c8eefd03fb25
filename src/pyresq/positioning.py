"""Device positioning with IP and fixed-coordinate fallbacks."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from collections.abc import AsyncIterator, Callable
from enum import StrEnum
from typing import Protocol

from pyresq._constants import FALLBACK_COORDINATE, MIN_MOVE_METERS
from pyresq.backend import IpLocator
from pyresq.exceptions import ResqPositionError
from pyresq.models.geo import Coordinate, haversine_m

_logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclasses.dataclass(frozen=True)
class PositionPolicy:
    """How long to wait for a fix and how old an accepted fix may be (seconds)."""

    timeout: float
    max_age: float


ONE_SHOT_POLICY = PositionPolicy(timeout=10.0, max_age=10.0)
CONTINUOUS_POLICY = PositionPolicy(timeout=10.0, max_age=5.0)


class FixSource(StrEnum):
    DEVICE = "device"
    IP = "ip"
    FALLBACK = "fallback"


@dataclasses.dataclass(frozen=True)
class PositionFix:
    coordinate: Coordinate
    timestamp: float
    accuracy_m: float | None = None
    source: FixSource = FixSource.DEVICE


class DevicePositionSource(Protocol):
    """Platform position provider.

    Both methods raise :class:`ResqPositionError` when the position is
    unavailable or permission is denied.
    """

    async def current_position(self, policy: PositionPolicy) -> PositionFix | None: ...

    def watch(self, policy: PositionPolicy) -> AsyncIterator[PositionFix]: ...


def fallback_fix(clock: Clock = time.time) -> PositionFix:
    lat, lng = FALLBACK_COORDINATE
    return PositionFix(coordinate=Coordinate(lat=lat, lng=lng), timestamp=clock(), source=FixSource.FALLBACK)


async def _ip_fix(locator: IpLocator | None, clock: Clock) -> PositionFix | None:
    if locator is None:
        return None
    coordinate = await locator.geolocate_ip()
    if coordinate is None:
        return None
    return PositionFix(coordinate=coordinate, timestamp=clock(), source=FixSource.IP)


async def resolve_position(
    device: DevicePositionSource | None,
    ip_locator: IpLocator | None = None,
    *,
    policy: PositionPolicy = ONE_SHOT_POLICY,
    clock: Clock = time.time,
) -> PositionFix:
    """One-shot position: device, then IP geolocation, then the fixed fallback.

    Never raises; the result's ``source`` tells which one answered.
    """
    if device is not None:
        try:
            fix = await asyncio.wait_for(device.current_position(policy), policy.timeout)
        except (ResqPositionError, TimeoutError) as exc:
            _logger.debug("Device position unavailable: %r", exc)
        else:
            if fix is not None and clock() - fix.timestamp <= policy.max_age:
                return fix
            _logger.debug("Device position missing or older than %.0fs", policy.max_age)

    fix = await _ip_fix(ip_locator, clock)
    if fix is not None:
        return fix
    _logger.debug("Using fallback coordinate %s", FALLBACK_COORDINATE)
    return fallback_fix(clock)


async def _next_fix(iterator: AsyncIterator[PositionFix]) -> PositionFix:
    return await iterator.__anext__()


def _moved(last: PositionFix | None, fix: PositionFix, min_move_m: float) -> bool:
    if last is None:
        return True
    return haversine_m(last.coordinate, fix.coordinate) >= min_move_m


async def watch_positions(
    device: DevicePositionSource,
    ip_locator: IpLocator | None = None,
    *,
    policy: PositionPolicy = CONTINUOUS_POLICY,
    min_move_m: float = MIN_MOVE_METERS,
    clock: Clock = time.time,
) -> AsyncIterator[PositionFix]:
    """Continuous position updates.

    Device fixes older than ``policy.max_age`` or closer than ``min_move_m``
    to the last yielded fix are skipped. When no fix arrives within
    ``policy.timeout`` the IP position is substituted and watching goes on;
    when the device source fails the IP position is substituted and the
    watch ends.
    """
    iterator = device.watch(policy).__aiter__()
    last: PositionFix | None = None
    step: asyncio.Future[PositionFix] | None = None
    try:
        while True:
            if step is None:
                step = asyncio.ensure_future(_next_fix(iterator))
            done, _ = await asyncio.wait({step}, timeout=policy.timeout)
            finished = False
            if not done:
                _logger.debug("No device fix within %.0fs; substituting IP position", policy.timeout)
                fix = await _ip_fix(ip_locator, clock)
            else:
                current, step = step, None
                try:
                    fix = current.result()
                except StopAsyncIteration:
                    return
                except ResqPositionError as exc:
                    _logger.debug("Device position watch failed: %s", exc)
                    fix = await _ip_fix(ip_locator, clock)
                    finished = True
                else:
                    if clock() - fix.timestamp > policy.max_age:
                        _logger.debug("Skipping stale device fix")
                        continue
            if fix is not None and _moved(last, fix, min_move_m):
                last = fix
                yield fix
            if finished:
                return
    finally:
        if step is not None:
            step.cancel()
            await asyncio.gather(step, return_exceptions=True)
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()
