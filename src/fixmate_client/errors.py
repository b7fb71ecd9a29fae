from abc import ABC
from typing import Any


class ClientError(ABC, Exception):
    """Base class for errors raised by the client library."""


class RefreshError(ClientError):
    """Base class for credential refresh failures."""


class TransientRefreshError(RefreshError):
    """Raised when a refresh fails for a recoverable reason (network, 5xx).

    The stored credential is left untouched and the caller may retry later.
    """

    def __init__(self, message: str = "Credential refresh failed") -> None:
        super().__init__(message)


class InvalidSessionError(RefreshError):
    """Raised when the identity provider reports the session itself is invalid or expired."""

    def __init__(self, message: str = "Identity session is invalid") -> None:
        super().__init__(message)


class NotAuthenticatedError(RefreshError):
    """Raised when the identity provider has no signed-in user to refresh."""

    def __init__(self, message: str = "No signed-in user") -> None:
        super().__init__(message)


class SessionExpiredError(ClientError):
    """Terminal condition surfaced to the UI: the user must sign in again."""

    def __init__(self, message: str = "Session expired. Please sign in again.") -> None:
        super().__init__(message)


class AuthorizationError(ClientError):
    """Raised by a call site when the backend rejected the credential (HTTP 401)."""

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class ApiError(ClientError):
    """Raised for non-success backend responses and network failures."""

    def __init__(
        self, message: str, status: int | None = None, data: Any = None, *, is_network_error: bool = False
    ) -> None:
        super().__init__(message)
        self.status = status
        self.data = data
        self.is_network_error = is_network_error


class PollFetchError(ClientError):
    """Raised when a poll tick could not fetch notifications."""
