"""Client configuration for pyresq."""

from __future__ import annotations

import dataclasses
import os
from typing import Any
from urllib.parse import urljoin


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _derive_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url[len("https://") :]
    if http_url.startswith("http://"):
        return "ws://" + http_url[len("http://") :]
    return http_url


@dataclasses.dataclass(frozen=True)
class ResqConfig:
    """Client configuration.

    Parameters
    ----------
    graphql_url : str
        HTTP endpoint for GraphQL queries and mutations.
    graphql_ws_url : str or None
        WebSocket endpoint for GraphQL subscriptions. Derived from
        ``graphql_url`` (``http`` -> ``ws``) when omitted.
    auth_token : str or None
        Bearer token sent with every request when present.
    asset_base_url : str
        Base URL used to resolve relative asset paths (vehicle icons etc.).
    maps_api_key : str or None
        Map provider key. Without it the map degrades to a placeholder and
        routing/IP geolocation are skipped.
    geocoding_api_key : str or None
        Address-resolution key. Falls back to ``maps_api_key``.
    reset_delay : float
        Seconds between a terminal status and the automatic session reset.
    geocode_debounce : float
        Quiet period in seconds before a pin position is reverse-geocoded.
    stream_reconnect_delay : float
        Seconds to wait before a dropped subscription reconnects.
    request_timeout : float
        Total timeout in seconds for one HTTP request.
    api_trace_enabled : bool
        Log (redacted) request and response bodies at DEBUG level.
    """

    graphql_url: str = "http://localhost:5000/graphql"
    graphql_ws_url: str | None = None
    auth_token: str | None = None
    asset_base_url: str = ""
    maps_api_key: str | None = None
    geocoding_api_key: str | None = None
    reset_delay: float = 5.0
    geocode_debounce: float = 0.3
    stream_reconnect_delay: float = 3.0
    request_timeout: float = 30.0
    api_trace_enabled: bool = False

    @property
    def subscription_url(self) -> str:
        return self.graphql_ws_url or _derive_ws_url(self.graphql_url)

    @property
    def effective_geocoding_key(self) -> str | None:
        return self.geocoding_api_key or self.maps_api_key

    @property
    def map_placeholder(self) -> str | None:
        """Text to display instead of the map, or ``None`` when a key is set."""
        if self.maps_api_key:
            return None
        return "Missing RESQ_MAPS_API_KEY"

    def resolve_asset_url(self, path: str | None) -> str | None:
        """Resolve a relative asset path against ``asset_base_url``.

        Absolute URLs and ``data:`` URIs are returned unchanged.
        """
        if not path:
            return None
        if "://" in path or path.startswith("data:"):
            return path
        if not self.asset_base_url:
            return path
        base = self.asset_base_url if self.asset_base_url.endswith("/") else self.asset_base_url + "/"
        return urljoin(base, path.lstrip("/"))

    @classmethod
    def from_env(cls, **overrides: Any) -> ResqConfig:
        """Create configuration from environment variables.

        Reads ``RESQ_*`` variables. Explicit keyword arguments override
        environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        ResqConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "RESQ_GRAPHQL_URL": "graphql_url",
            "RESQ_GRAPHQL_WS_URL": "graphql_ws_url",
            "RESQ_AUTH_TOKEN": "auth_token",
            "RESQ_ASSET_BASE_URL": "asset_base_url",
            "RESQ_MAPS_API_KEY": "maps_api_key",
            "RESQ_GEOCODING_API_KEY": "geocoding_api_key",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None and val.strip():
                config_kwargs[field_name] = val.strip()

        _ENV_FLOAT_MAP = {
            "RESQ_RESET_DELAY": "reset_delay",
            "RESQ_GEOCODE_DEBOUNCE": "geocode_debounce",
            "RESQ_STREAM_RECONNECT_DELAY": "stream_reconnect_delay",
            "RESQ_REQUEST_TIMEOUT": "request_timeout",
        }
        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = float(val)

        if "api_trace_enabled" not in overrides:
            config_kwargs["api_trace_enabled"] = _env_bool(
                env.get("RESQ_API_TRACE_ENABLED"),
                False,
            )

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
