"""GraphQL subscription runtime over WebSocket (``graphql-transport-ws``)."""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import aiohttp

from pyresq._constants import GRAPHQL_WS_PROTOCOL
from pyresq._redact import redact_for_log
from pyresq._transport import build_headers
from pyresq.config import ResqConfig
from pyresq.exceptions import ResqStreamError

_ids = itertools.count(1)


@dataclass(frozen=True)
class SubscriptionRequest:
    """One subscription operation."""

    operation: str
    query: str
    variables: Mapping[str, Any]


def build_connection_init(config: ResqConfig) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    if config.auth_token:
        payload["Authorization"] = f"Bearer {config.auth_token}"
    return {"type": "connection_init", "payload": payload}


def build_subscribe(subscription_id: str, request: SubscriptionRequest) -> dict[str, Any]:
    return {
        "id": subscription_id,
        "type": "subscribe",
        "payload": {
            "operationName": request.operation,
            "query": request.query,
            "variables": dict(request.variables),
        },
    }


def parse_frame(raw: str) -> dict[str, Any]:
    frame = json.loads(raw)
    if not isinstance(frame, dict):
        raise ResqStreamError("Subscription frame is not an object")
    return frame


def error_message(payload: Any) -> str:
    if isinstance(payload, list) and payload and isinstance(payload[0], dict):
        message = payload[0].get("message")
        if isinstance(message, str) and message:
            return message
    if isinstance(payload, dict):
        message = payload.get("message")
        if isinstance(message, str) and message:
            return message
    return "Subscription error"


class GraphQLSubscription:
    """A single live subscription running as an asyncio task.

    The runtime connects, acknowledges, subscribes and forwards every
    ``next`` payload's ``data`` object to *on_data*. Dropped connections
    are re-established after ``config.stream_reconnect_delay`` until
    :meth:`close` is called. Error frames and connection failures are
    reported to *on_error* and never raised into the caller.
    """

    def __init__(
        self,
        *,
        config: ResqConfig,
        http_session: aiohttp.ClientSession,
        request: SubscriptionRequest,
        on_data: Callable[[dict[str, Any]], None],
        on_error: Callable[[Exception], None],
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._http = http_session
        self._request = request
        self._on_data = on_data
        self._on_error = on_error
        self._logger = logger or logging.getLogger(__name__)
        self._task: asyncio.Task[None] | None = None
        self._closed = False
        self._id = str(next(_ids))

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._closed or self.is_running:
            return
        self._logger.debug(
            "Subscription start operation=%s variables=%s",
            self._request.operation,
            self._request.variables,
        )
        self._task = asyncio.get_running_loop().create_task(self._run())

    def close(self) -> None:
        """Tear the subscription down. Safe to call more than once."""
        self._closed = True
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            self._logger.debug("Subscription closed operation=%s", self._request.operation)

    async def _run(self) -> None:
        while not self._closed:
            try:
                completed = await self._connect_once()
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                self._report(exc)
                completed = False
            if completed or self._closed:
                return
            await asyncio.sleep(self._config.stream_reconnect_delay)

    def _report(self, exc: Exception) -> None:
        self._logger.warning("Subscription %s failed: %s", self._request.operation, exc)
        try:
            self._on_error(exc)
        except Exception:
            self._logger.debug("Subscription error callback failed", exc_info=True)

    async def _connect_once(self) -> bool:
        """Run one connection; ``True`` when the server completed the stream."""
        url = self._config.subscription_url
        headers = build_headers(self._config)
        headers.pop("content-type", None)
        try:
            ws = await self._http.ws_connect(url, protocols=(GRAPHQL_WS_PROTOCOL,), headers=headers, heartbeat=30)
        except aiohttp.ClientError as exc:
            raise ResqStreamError(f"Connecting to {url} failed: {exc}", operation=self._request.operation) from exc

        async with contextlib.AsyncExitStack() as stack:
            stack.push_async_callback(ws.close)
            await ws.send_json(build_connection_init(self._config))
            async for msg in ws:
                if msg.type != aiohttp.WSMsgType.TEXT:
                    if msg.type in (aiohttp.WSMsgType.ERROR, aiohttp.WSMsgType.CLOSE):
                        break
                    continue
                frame = parse_frame(msg.data)
                kind = frame.get("type")
                if kind == "connection_ack":
                    await ws.send_json(build_subscribe(self._id, self._request))
                elif kind == "ping":
                    await ws.send_json({"type": "pong"})
                elif kind == "next" and frame.get("id") == self._id:
                    self._deliver(frame.get("payload"))
                elif kind == "error" and frame.get("id") == self._id:
                    self._report(ResqStreamError(error_message(frame.get("payload")), operation=self._request.operation))
                    return True
                elif kind == "complete" and frame.get("id") == self._id:
                    self._logger.debug("Subscription completed by server operation=%s", self._request.operation)
                    return True
        raise ResqStreamError("Subscription connection closed", operation=self._request.operation)

    def _deliver(self, payload: Any) -> None:
        if not isinstance(payload, dict):
            return
        if payload.get("errors"):
            self._report(ResqStreamError(error_message(payload["errors"]), operation=self._request.operation))
            return
        data = payload.get("data")
        if not isinstance(data, dict):
            return
        if self._config.api_trace_enabled:
            self._logger.debug("Subscription %s data=%s", self._request.operation, redact_for_log(data))
        try:
            self._on_data(data)
        except Exception:
            self._logger.debug("Subscription data callback failed", exc_info=True)
