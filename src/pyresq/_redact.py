"""Masking for DEBUG logs.

GraphQL variables carry bearer tokens and uploaded proof images, and map
URLs carry the API key in the query string. Nothing from those reaches a
log record unmasked.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel

from pyresq.models.request import ProofImage

REDACTED = "<redacted>"

_SECRET_KEYS: frozenset[str] = frozenset(
    {"authorization", "token", "authtoken", "accesstoken", "key", "apikey", "password", "cookie", "proofimage"}
)
_MAX_DEPTH = 20
_KEY_QUERY_PARAM = re.compile(r"([?&]key=)[^&]+")


def _is_secret(key: str) -> bool:
    return key.lower().replace("_", "") in _SECRET_KEYS


def redact_url(url: str) -> str:
    """Mask ``key=`` query parameters in a URL."""
    return _KEY_QUERY_PARAM.sub(rf"\1{REDACTED}", url)


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a copy of *value* that is safe to pass to a DEBUG log call.

    Secret keys are masked at any depth, long strings are truncated and
    binary content is replaced by its size.
    """
    if _depth > _MAX_DEPTH:
        return "<max-depth>"
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return value if len(value) <= max_string else f"{value[:max_string]}...<truncated>"
    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"
    if isinstance(value, ProofImage):
        return f"<proof-image:{value.content_type}:{len(value.content)}b>"
    if isinstance(value, BaseModel):
        value = value.model_dump(by_alias=True)

    if isinstance(value, Mapping):
        return {
            str(k): REDACTED if _is_secret(str(k)) else redact_for_log(v, max_string=max_string, _depth=_depth + 1)
            for k, v in value.items()
        }
    if isinstance(value, Sequence):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]
    return repr(value)
