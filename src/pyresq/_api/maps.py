"""Google Maps web-service lookups.

Every function degrades to ``None`` on failure (missing key, network error,
non-OK status); none of them raises into the request lifecycle.
"""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from pyresq._constants import DIRECTIONS_URL, GEOCODE_URL, GEOLOCATE_URL
from pyresq._redact import redact_url
from pyresq.ingestion.normalize import safe_float, safe_int
from pyresq.models.geo import Coordinate, Route

_logger = logging.getLogger(__name__)

_TIMEOUT = aiohttp.ClientTimeout(total=10)


async def _get_json(http: aiohttp.ClientSession, url: str, params: dict[str, str]) -> dict[str, Any] | None:
    try:
        async with http.get(url, params=params, timeout=_TIMEOUT) as resp:
            if resp.status != 200:
                _logger.debug("GET %s -> HTTP %s", redact_url(str(resp.url)), resp.status)
                return None
            body = await resp.json(content_type=None)
    except (aiohttp.ClientError, TimeoutError, ValueError):
        _logger.debug("GET %s failed", url, exc_info=True)
        return None
    return body if isinstance(body, dict) else None


async def reverse_geocode(
    http: aiohttp.ClientSession,
    api_key: str | None,
    lat: float,
    lng: float,
) -> str | None:
    """First formatted address for a coordinate, or ``None``."""
    if not api_key:
        return None
    body = await _get_json(http, GEOCODE_URL, {"latlng": f"{lat},{lng}", "key": api_key})
    if body is None:
        return None
    results = body.get("results")
    if not isinstance(results, list) or not results or not isinstance(results[0], dict):
        return None
    address = results[0].get("formatted_address")
    return address if isinstance(address, str) and address else None


async def geolocate_ip(http: aiohttp.ClientSession, api_key: str | None) -> Coordinate | None:
    """Coarse IP-based position, or ``None``."""
    if not api_key:
        return None
    try:
        async with http.post(
            GEOLOCATE_URL,
            params={"key": api_key},
            json={"considerIp": True},
            timeout=_TIMEOUT,
        ) as resp:
            if resp.status != 200:
                return None
            body = await resp.json(content_type=None)
    except (aiohttp.ClientError, TimeoutError, ValueError):
        _logger.debug("IP geolocation failed", exc_info=True)
        return None
    location = body.get("location") if isinstance(body, dict) else None
    if not isinstance(location, dict):
        return None
    lat = safe_float(location.get("lat"))
    lng = safe_float(location.get("lng"))
    if lat is None or lng is None:
        return None
    return Coordinate(lat=lat, lng=lng)


async def driving_route(
    http: aiohttp.ClientSession,
    api_key: str | None,
    origin: Coordinate,
    destination: Coordinate,
) -> Route | None:
    """Driving directions between two points, or ``None``."""
    if not api_key:
        return None
    body = await _get_json(
        http,
        DIRECTIONS_URL,
        {
            "origin": f"{origin.lat},{origin.lng}",
            "destination": f"{destination.lat},{destination.lng}",
            "mode": "driving",
            "key": api_key,
        },
    )
    if body is None or body.get("status") != "OK":
        return None
    routes = body.get("routes")
    if not isinstance(routes, list) or not routes or not isinstance(routes[0], dict):
        return None
    first = routes[0]
    polyline = first.get("overview_polyline")
    points = polyline.get("points") if isinstance(polyline, dict) else None

    distance: int | None = None
    duration: int | None = None
    legs = first.get("legs")
    if isinstance(legs, list) and legs and isinstance(legs[0], dict):
        leg = legs[0]
        if isinstance(leg.get("distance"), dict):
            distance = safe_int(leg["distance"].get("value"))
        if isinstance(leg.get("duration"), dict):
            duration = safe_int(leg["duration"].get("value"))

    return Route(
        origin=origin,
        destination=destination,
        polyline=points if isinstance(points, str) else None,
        distance_m=distance,
        duration_s=duration,
    )
