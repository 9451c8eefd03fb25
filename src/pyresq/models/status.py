"""Canonical request status and free-text classification.

Status strings arrive from the server as free text (``"Searching"``,
``"Dispatched"``, ``"Done"``, ...). They are classified once, at the edge,
with case-insensitive substring matching so the state machine never
compares raw strings.

Precedence (first match wins):

====================  ==========================
substring             status
====================  ==========================
``cancel``            ``CANCELLED``
``complete``/``done`` ``COMPLETED``
``arriv``             ``ARRIVED``
``dispatch``          ``DISPATCHED``
``search``            ``SEARCHING``
====================  ==========================

Anything else maps to ``UNKNOWN``.
"""

from __future__ import annotations

from enum import StrEnum


class CanonicalStatus(StrEnum):
    NONE = "none"
    SEARCHING = "searching"
    DISPATCHED = "dispatched"
    ARRIVED = "arrived"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_tracking_leg(self) -> bool:
        return self in TRACKING_STATUSES


TERMINAL_STATUSES: frozenset[CanonicalStatus] = frozenset({CanonicalStatus.COMPLETED, CanonicalStatus.CANCELLED})
TRACKING_STATUSES: frozenset[CanonicalStatus] = frozenset({CanonicalStatus.DISPATCHED, CanonicalStatus.ARRIVED})

#: Statuses the backing store reports as "active" for recovery.
ACTIVE_STATUS_NAMES: tuple[str, ...] = ("Searching", "Dispatched", "Arrived")

_RULES: tuple[tuple[tuple[str, ...], CanonicalStatus], ...] = (
    (("cancel",), CanonicalStatus.CANCELLED),
    (("complete", "done"), CanonicalStatus.COMPLETED),
    (("arriv",), CanonicalStatus.ARRIVED),
    (("dispatch",), CanonicalStatus.DISPATCHED),
    (("search",), CanonicalStatus.SEARCHING),
)


def classify(status_text: str | None) -> CanonicalStatus:
    """Map a free-text server status to a :class:`CanonicalStatus`."""
    if status_text is None:
        return CanonicalStatus.NONE
    text = status_text.strip().lower()
    if not text:
        return CanonicalStatus.NONE
    for needles, status in _RULES:
        if any(needle in text for needle in needles):
            return status
    return CanonicalStatus.UNKNOWN
