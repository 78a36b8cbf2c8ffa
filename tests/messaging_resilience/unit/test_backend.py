from __future__ import annotations

import json

import httpx
import pytest
from pytest_httpx import HTTPXMock

from messaging_resilience.backend import Err, MessagingBackend, Ok
from messaging_resilience.errors import (
    ClientError,
    InvalidResponseError,
    NetworkError,
    ServerError,
)
from messaging_resilience.models import Credentials, MarkReadResult, UnreadCount
from tests.messaging_resilience.support.fakes import FakeLogger

pytestmark = pytest.mark.asyncio

_BASE_URL = "http://backend.local"
_MESSAGE = {
    "id": 1,
    "receiver_username": "alice",
    "content": "hello",
    "created_at": "2024-01-01T00:00:00Z",
    "is_read": False,
}


def _backend(client: httpx.AsyncClient, logger: FakeLogger) -> MessagingBackend:
    return MessagingBackend(client=client, base_url=f"{_BASE_URL}/", logger=logger)


async def test_fetch_messages_sends_bearer_token_and_decodes(
    httpx_mock: HTTPXMock, fake_logger: FakeLogger
) -> None:
    httpx_mock.add_response(
        method="GET", url=f"{_BASE_URL}/messages/alice", json=[_MESSAGE]
    )

    async with httpx.AsyncClient() as client:
        result = await _backend(client, fake_logger).fetch_messages("alice", "tok")

    assert isinstance(result, Ok)
    assert [message.id for message in result.value] == [1]
    request = httpx_mock.get_requests()[0]
    assert request.headers["Authorization"] == "Bearer tok"


async def test_fetch_messages_normalizes_null_body_to_empty_list(
    httpx_mock: HTTPXMock, fake_logger: FakeLogger
) -> None:
    httpx_mock.add_response(
        method="GET", url=f"{_BASE_URL}/messages/alice", content=b"null"
    )

    async with httpx.AsyncClient() as client:
        result = await _backend(client, fake_logger).fetch_messages("alice", "tok")

    assert result == Ok([])


async def test_server_error_uses_body_message_and_is_logged(
    httpx_mock: HTTPXMock, fake_logger: FakeLogger
) -> None:
    httpx_mock.add_response(
        method="GET",
        url=f"{_BASE_URL}/messages/alice/unread",
        status_code=503,
        json={"message": "database offline"},
    )

    async with httpx.AsyncClient() as client:
        result = await _backend(client, fake_logger).fetch_unread_count("alice", "tok")

    assert isinstance(result, Err)
    assert isinstance(result.error, ServerError)
    assert result.error.http_status == 503
    assert "Server error (503): database offline" in str(result.error)
    assert fake_logger.events == ["backend_server_error"]


async def test_client_error_synthesizes_message_when_body_has_none(
    httpx_mock: HTTPXMock, fake_logger: FakeLogger
) -> None:
    httpx_mock.add_response(
        method="POST",
        url=f"{_BASE_URL}/messages/alice/read",
        status_code=401,
        content=b"<html>unauthorized</html>",
    )

    async with httpx.AsyncClient() as client:
        result = await _backend(client, fake_logger).mark_read("alice", [1, 2], "tok")

    assert isinstance(result, Err)
    assert isinstance(result.error, ClientError)
    assert str(result.error) == "API error: 401"
    assert fake_logger.events == []


async def test_mark_read_posts_message_ids(
    httpx_mock: HTTPXMock, fake_logger: FakeLogger
) -> None:
    httpx_mock.add_response(
        method="POST",
        url=f"{_BASE_URL}/messages/alice/read",
        json={"success": True},
    )

    async with httpx.AsyncClient() as client:
        result = await _backend(client, fake_logger).mark_read("alice", (3, 4), "tok")

    assert result == Ok(MarkReadResult(success=True))
    request = httpx_mock.get_requests()[0]
    assert json.loads(request.content) == {"message_ids": [3, 4]}


async def test_transport_failure_becomes_network_error(
    httpx_mock: HTTPXMock, fake_logger: FakeLogger
) -> None:
    httpx_mock.add_exception(
        httpx.ConnectError("connection refused"),
        url=f"{_BASE_URL}/messages/alice/unread",
    )

    async with httpx.AsyncClient() as client:
        result = await _backend(client, fake_logger).fetch_unread_count("alice", "tok")

    assert isinstance(result, Err)
    assert isinstance(result.error, NetworkError)
    assert result.error.http_status is None


@pytest.mark.parametrize(
    "body",
    [b"not json", b'{"total": 3}'],
)
async def test_undecodable_success_body_is_invalid_response(
    httpx_mock: HTTPXMock, fake_logger: FakeLogger, body: bytes
) -> None:
    httpx_mock.add_response(
        method="GET", url=f"{_BASE_URL}/messages/alice/unread", content=body
    )

    async with httpx.AsyncClient() as client:
        result = await _backend(client, fake_logger).fetch_unread_count("alice", "tok")

    assert isinstance(result, Err)
    assert isinstance(result.error, InvalidResponseError)
    assert result.error.http_status == 200


async def test_message_without_read_flag_is_invalid_response(
    httpx_mock: HTTPXMock, fake_logger: FakeLogger
) -> None:
    incomplete = {key: value for key, value in _MESSAGE.items() if key != "is_read"}
    httpx_mock.add_response(
        method="GET", url=f"{_BASE_URL}/messages/alice", json=[incomplete]
    )

    async with httpx.AsyncClient() as client:
        result = await _backend(client, fake_logger).fetch_messages("alice", "tok")

    assert isinstance(result, Err)
    assert isinstance(result.error, InvalidResponseError)


async def test_account_and_send_endpoints(
    httpx_mock: HTTPXMock, fake_logger: FakeLogger
) -> None:
    httpx_mock.add_response(
        method="POST", url=f"{_BASE_URL}/register", json={"id": 7, "username": "bob"}
    )
    httpx_mock.add_response(
        method="POST", url=f"{_BASE_URL}/login", json={"token": "jwt"}
    )
    httpx_mock.add_response(
        method="POST", url=f"{_BASE_URL}/messages/alice", json=_MESSAGE
    )
    credentials = Credentials(username="bob", password="secret")

    async with httpx.AsyncClient() as client:
        backend = _backend(client, fake_logger)
        registered = await backend.register(credentials)
        logged_in = await backend.login(credentials)
        sent = await backend.send_message("alice", "hello")

    assert isinstance(registered, Ok) and registered.value.username == "bob"
    assert isinstance(logged_in, Ok) and logged_in.value.token == "jwt"
    assert isinstance(sent, Ok) and sent.value.content == "hello"
    send_request = httpx_mock.get_requests()[2]
    assert "Authorization" not in send_request.headers
    assert json.loads(send_request.content) == {"content": "hello"}


async def test_unread_count_decodes(
    httpx_mock: HTTPXMock, fake_logger: FakeLogger
) -> None:
    httpx_mock.add_response(
        method="GET", url=f"{_BASE_URL}/messages/alice/unread", json={"count": 4}
    )

    async with httpx.AsyncClient() as client:
        result = await _backend(client, fake_logger).fetch_unread_count("alice", "tok")

    assert result == Ok(UnreadCount(count=4))
