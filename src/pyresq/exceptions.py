"""Custom exception hierarchy for pyresq."""

from __future__ import annotations


class ResqError(Exception):
    """Base exception for all pyresq errors."""


class ResqConfigError(ResqError):
    """Invalid or missing configuration."""


class ResqValidationError(ResqError):
    """A local action was rejected before any network call was made.

    The message is meant to be shown to the user as-is.
    """


class ResqTransportError(ResqError):
    """HTTP or WebSocket failure (network, non-200, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        operation: str = "",
    ) -> None:
        self.status_code = status_code
        self.operation = operation
        super().__init__(message)


class ResqApiError(ResqError):
    """The server rejected an operation (GraphQL errors or ``success=false``).

    ``str(exc)`` is the server message verbatim when one was supplied.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str = "",
    ) -> None:
        self.operation = operation
        super().__init__(message)


class ResqStreamError(ResqError):
    """A push subscription delivered an error frame or terminated abnormally."""

    def __init__(
        self,
        message: str,
        *,
        operation: str = "",
    ) -> None:
        self.operation = operation
        super().__init__(message)


class ResqPositionError(ResqError):
    """The device position source failed (permission denied, unavailable)."""
