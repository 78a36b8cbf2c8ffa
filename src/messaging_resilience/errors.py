"""Shared error types for messaging_resilience."""

from __future__ import annotations


class MessagingError(Exception):
    """Base exception for the messaging resilience layer."""


class TransientError(MessagingError):
    """Retry-safe transient backend failure."""


class ApiError(MessagingError):
    """Base exception for failed backend requests."""

    def __init__(
        self,
        message: str,
        http_status: int | None = None,
        response_body: str | None = None,
    ) -> None:
        """Initialize request-error metadata.

        Args:
            message: Human-readable error message.
            http_status: HTTP status observed from the backend, if any.
            response_body: Optional response payload text.
        """
        super().__init__(message)
        self.message = message
        self.http_status = http_status
        self.response_body = response_body


class ClientError(ApiError):
    """Raised for 4xx responses. Never retried."""


class ServerError(ApiError, TransientError):
    """Raised for 5xx responses."""


class NetworkError(ApiError, TransientError):
    """Raised when the backend could not be reached at all."""


class InvalidResponseError(ApiError):
    """Raised when a successful response carries an undecodable body."""


class MalformedPushEvent(MessagingError):
    """Raised when a streaming frame cannot be decoded into a notification."""

    def __init__(self, message: str, raw: str | bytes) -> None:
        super().__init__(message)
        self.raw = raw


class PushConnectionError(MessagingError):
    """Raised by push transports when the streaming channel fails."""
