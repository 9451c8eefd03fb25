"""GraphQL-over-HTTP transport with multipart upload support."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from pyresq._constants import GRAPHQL_PREFLIGHT_HEADER, USER_AGENT
from pyresq._redact import redact_for_log
from pyresq.config import ResqConfig
from pyresq.exceptions import ResqApiError, ResqTransportError
from pyresq.models.request import ProofImage

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by operation modules.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`GraphQLTransport`) concrete.
    """

    async def execute(
        self,
        operation: str,
        query: str,
        variables: Mapping[str, Any] | None = None,
        *,
        files: Mapping[str, ProofImage] | None = None,
    ) -> dict[str, Any]: ...


def build_headers(config: ResqConfig, *, json_body: bool = True) -> dict[str, str]:
    header_name, header_value = GRAPHQL_PREFLIGHT_HEADER
    headers: dict[str, str] = {
        "accept": "application/json",
        "user-agent": USER_AGENT,
        header_name: header_value,
    }
    if json_body:
        headers["content-type"] = "application/json"
    if config.auth_token:
        headers["authorization"] = f"Bearer {config.auth_token}"
    return headers


def build_multipart(
    operation: str,
    query: str,
    variables: Mapping[str, Any],
    files: Mapping[str, ProofImage],
) -> aiohttp.FormData:
    """Encode a request as a GraphQL multipart upload.

    Each entry in *files* is keyed by its variable path (e.g.
    ``"variables.proofImage"``); the variable itself is sent as ``null``.
    """
    form = aiohttp.FormData()
    operations = {"operationName": operation, "query": query, "variables": dict(variables)}
    file_map: dict[str, list[str]] = {}
    for index, path in enumerate(files):
        file_map[str(index)] = [path]
    form.add_field("operations", json.dumps(operations), content_type="application/json")
    form.add_field("map", json.dumps(file_map), content_type="application/json")
    for index, image in enumerate(files.values()):
        form.add_field(
            str(index),
            image.content,
            filename=image.filename,
            content_type=image.content_type,
        )
    return form


class GraphQLTransport:
    """HTTP transport for GraphQL queries and mutations."""

    def __init__(self, config: ResqConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session

    async def execute(
        self,
        operation: str,
        query: str,
        variables: Mapping[str, Any] | None = None,
        *,
        files: Mapping[str, ProofImage] | None = None,
    ) -> dict[str, Any]:
        """Run one GraphQL operation and return its ``data`` object.

        Raises
        ------
        ResqTransportError
            Network failure, non-200 status or a body that is not JSON.
        ResqApiError
            The response carried a GraphQL ``errors`` array.
        """
        url = self._config.graphql_url
        vars_dict = dict(variables or {})
        if files:
            body: Any = build_multipart(operation, query, vars_dict, files)
            headers = build_headers(self._config, json_body=False)
        else:
            body = json.dumps({"operationName": operation, "query": query, "variables": vars_dict})
            headers = build_headers(self._config)

        _logger.debug("POST %s operation=%s", url, operation)
        if self._config.api_trace_enabled:
            _logger.debug("GraphQL request operation=%s variables=%s", operation, redact_for_log(vars_dict))

        timeout = aiohttp.ClientTimeout(total=self._config.request_timeout)
        try:
            async with self._http.post(url, data=body, headers=headers, timeout=timeout) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise ResqTransportError(
                        f"HTTP {resp.status} from {operation}: {text[:200]}",
                        status_code=resp.status,
                        operation=operation,
                    )
        except ResqTransportError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise ResqTransportError(
                f"Request {operation} failed: {exc}",
                operation=operation,
            ) from exc

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ResqTransportError(
                f"Invalid JSON from {operation}: {text[:200]}",
                operation=operation,
            ) from exc

        if not isinstance(payload, dict):
            raise ResqTransportError(f"Unexpected response shape from {operation}", operation=operation)

        if self._config.api_trace_enabled:
            _logger.debug("GraphQL response operation=%s body=%s", operation, redact_for_log(payload))

        raise_for_graphql_errors(payload, operation=operation)

        data = payload.get("data")
        if not isinstance(data, dict):
            raise ResqTransportError(f"Missing 'data' field from {operation}", operation=operation)
        return data


def raise_for_graphql_errors(payload: Mapping[str, Any], *, operation: str) -> None:
    errors = payload.get("errors")
    if not errors:
        return
    message = "Something went wrong."
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        first = errors[0].get("message")
        if isinstance(first, str) and first.strip():
            message = first.strip()
    raise ResqApiError(message, operation=operation)
