"""Error taxonomy for the offline queue and the authenticated pipeline."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .transport import TransportResponse

_STATUS_MESSAGES: dict[int, str] = {
    400: "Invalid request. Please check your input.",
    401: "Authentication required. Please log in.",
    403: "Access denied.",
    404: "Resource not found.",
    408: "Request timeout. Please try again.",
    429: "Too many requests. Please wait.",
    500: "Server error. Please try again later.",
    502: "Service unavailable. Please try again.",
    503: "Service temporarily unavailable.",
}


def describe_status(status: int) -> str:
    """Return a user-facing description of an HTTP status code."""
    return _STATUS_MESSAGES.get(status, "An error occurred. Please try again.")


class SyncClientError(RuntimeError):
    """Base class for every error raised by the sync client."""


class TransportError(SyncClientError):
    """No response was received (connection failure or timeout)."""


class PersistenceFailure(SyncClientError):
    """The persistent store could not be read or written."""


class AuthorizationFailure(SyncClientError):
    """The remote API answered 401 and the credential could not be renewed."""

    def __init__(self, response: TransportResponse, message: str | None = None) -> None:
        super().__init__(message or f"authorization failed: HTTP {response.status}")
        self.response = response
        self.status = response.status


class RemoteRejected(SyncClientError):
    """The remote API rejected a request with a non-auth 4xx status."""

    def __init__(self, status: int, message: str | None = None) -> None:
        super().__init__(message or f"HTTP {status}: {describe_status(status)}")
        self.status = status


class RefreshFailureReason(StrEnum):
    NO_REFRESH_TOKEN = "no_refresh_token"
    REMOTE_REJECTED = "remote_rejected"
    SUPERSEDED = "superseded"


class RefreshFailure(SyncClientError):
    """The credential refresh failed; the user has to authenticate again."""

    def __init__(self, reason: RefreshFailureReason, message: str | None = None) -> None:
        super().__init__(message or f"token refresh failed: {reason.value}")
        self.reason = reason


__all__ = [
    "AuthorizationFailure",
    "PersistenceFailure",
    "RefreshFailure",
    "RefreshFailureReason",
    "RemoteRejected",
    "SyncClientError",
    "TransportError",
    "describe_status",
]
