"""HTTP transport to the messaging backend.

Every call returns ``Ok(value)`` or ``Err(error)`` instead of raising, and all
payload normalization (for example a ``null`` message list) happens here so
callers never see ``None``.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from messaging_resilience.errors import (
    ApiError,
    ClientError,
    InvalidResponseError,
    NetworkError,
    ServerError,
)
from messaging_resilience.logging import StructuredLogger, get_logger, log_error
from messaging_resilience.models import (
    MESSAGE_LIST_ADAPTER,
    AuthToken,
    Credentials,
    MarkReadResult,
    Message,
    UnreadCount,
    User,
)

T = TypeVar("T")
ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful backend call."""

    value: T


@dataclass(frozen=True)
class Err:
    """Failed backend call; ``error`` carries the structured failure kind."""

    error: ApiError


BackendResult = Ok[T] | Err


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    message = body.get("message") if isinstance(body, dict) else None
    if isinstance(message, str) and message:
        return message
    return f"API error: {response.status_code}"


def classify_response_error(response: httpx.Response) -> ApiError:
    """Map a non-2xx response onto the error taxonomy by status code."""
    status = response.status_code
    message = _error_message(response)
    if status >= 500:
        return ServerError(
            f"Server error ({status}): {message}. This might be a temporary "
            "issue, please try again later.",
            http_status=status,
            response_body=response.text,
        )
    return ClientError(message, http_status=status, response_body=response.text)


class MessagingBackend:
    """Thin async client for the messaging REST API."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        base_url: str,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Create a backend bound to a shared HTTP client.

        Args:
            client: Shared async HTTP client.
            base_url: Backend root URL, for example ``http://localhost:8080``.
            logger: Structured logger; defaults to this module's logger.
        """
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._logger = get_logger(__name__) if logger is None else logger

    def _url(self, *parts: str) -> str:
        return "/".join([self._base_url, *(quote(part, safe="") for part in parts)])

    @staticmethod
    def _auth_headers(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    async def _request(
        self,
        method: str,
        url: str,
        decode: Callable[[object], T],
        *,
        json: object | None = None,
        headers: dict[str, str] | None = None,
    ) -> BackendResult[T]:
        try:
            response = await self._client.request(
                method, url, json=json, headers=headers
            )
        except httpx.RequestError as exc:
            return Err(NetworkError(f"Network error: {exc}"))

        if response.is_error:
            error = classify_response_error(response)
            if isinstance(error, ServerError):
                log_error(
                    self._logger,
                    "backend_server_error",
                    status=response.status_code,
                    url=str(response.url),
                    response_body=response.text,
                )
            return Err(error)

        try:
            payload = response.json()
        except ValueError:
            return Err(
                InvalidResponseError(
                    "Response body is not valid JSON.",
                    http_status=response.status_code,
                    response_body=response.text,
                )
            )
        try:
            return Ok(decode(payload))
        except ValidationError as exc:
            return Err(
                InvalidResponseError(
                    f"Unexpected response payload: {exc.error_count()} error(s).",
                    http_status=response.status_code,
                    response_body=response.text,
                )
            )

    @staticmethod
    def _model(model: type[ModelT]) -> Callable[[object], ModelT]:
        return TypeAdapter(model).validate_python

    @staticmethod
    def _message_list(payload: object) -> list[Message]:
        return MESSAGE_LIST_ADAPTER.validate_python(payload) or []

    async def fetch_messages(
        self, username: str, token: str
    ) -> BackendResult[list[Message]]:
        """``GET /messages/{username}``; a ``null`` body becomes ``[]``."""
        return await self._request(
            "GET",
            self._url("messages", username),
            self._message_list,
            headers=self._auth_headers(token),
        )

    async def mark_read(
        self, username: str, message_ids: Sequence[int], token: str
    ) -> BackendResult[MarkReadResult]:
        """``POST /messages/{username}/read``."""
        return await self._request(
            "POST",
            self._url("messages", username, "read"),
            self._model(MarkReadResult),
            json={"message_ids": list(message_ids)},
            headers=self._auth_headers(token),
        )

    async def fetch_unread_count(
        self, username: str, token: str
    ) -> BackendResult[UnreadCount]:
        """``GET /messages/{username}/unread``."""
        return await self._request(
            "GET",
            self._url("messages", username, "unread"),
            self._model(UnreadCount),
            headers=self._auth_headers(token),
        )

    async def register(self, credentials: Credentials) -> BackendResult[User]:
        """``POST /register``."""
        return await self._request(
            "POST",
            self._url("register"),
            self._model(User),
            json=credentials.model_dump(),
        )

    async def login(self, credentials: Credentials) -> BackendResult[AuthToken]:
        """``POST /login``."""
        return await self._request(
            "POST",
            self._url("login"),
            self._model(AuthToken),
            json=credentials.model_dump(),
        )

    async def send_message(
        self, username: str, content: str
    ) -> BackendResult[Message]:
        """``POST /messages/{username}``; sending needs no token."""
        return await self._request(
            "POST",
            self._url("messages", username),
            self._model(Message),
            json={"content": content},
        )
