"""Normalization helpers.

Centralizes tolerant parsing of loosely-typed server values.
"""

from __future__ import annotations

import math
from typing import Any


def safe_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def safe_int(value: Any) -> int | None:
    parsed = safe_float(value)
    if parsed is None:
        return None
    return int(parsed)


def safe_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def coerce_identifier(value: Any) -> int | None:
    """Parse a positive integer identifier (GraphQL ``Int`` ids)."""
    parsed = safe_float(value)
    if parsed is None or not parsed.is_integer() or parsed <= 0:
        return None
    return int(parsed)
