"""Streaming notification channel: transport protocol, aiohttp adapter, decoding."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol
from urllib.parse import urlencode

import aiohttp
from pydantic import ValidationError

from messaging_resilience.errors import MalformedPushEvent, PushConnectionError
from messaging_resilience.models import (
    PUSH_EVENT_ADAPTER,
    NewMessageEvent,
    UnreadCountEvent,
)

Frame = str | bytes


class PushConnection(Protocol):
    """One open streaming connection yielding raw frames until it closes."""

    def __aiter__(self) -> AsyncIterator[Frame]:
        """Iterate inbound frames; iteration ends when the peer closes."""

    async def close(self) -> None:
        """Close the connection. Safe to call more than once."""


class PushTransport(Protocol):
    """Factory for streaming connections."""

    async def connect(self, url: str) -> PushConnection:
        """Open a connection or raise ``PushConnectionError``."""

    async def close(self) -> None:
        """Release resources held for future connections."""


def build_push_url(ws_url: str, username: str, token: str) -> str:
    """Return the streaming URL authenticating ``username`` with ``token``."""
    separator = "&" if "?" in ws_url else "?"
    return f"{ws_url}{separator}{urlencode({'username': username, 'token': token})}"


def decode_push_event(raw: Frame) -> NewMessageEvent | UnreadCountEvent:
    """Decode one frame into a typed notification.

    Raises:
        MalformedPushEvent: Invalid JSON, unknown ``type`` or a bad payload.
    """
    try:
        return PUSH_EVENT_ADAPTER.validate_json(raw)
    except ValidationError as exc:
        raise MalformedPushEvent(
            f"Undecodable push frame: {exc.error_count()} error(s).", raw
        ) from exc


class _AiohttpPushConnection:
    def __init__(self, websocket: aiohttp.ClientWebSocketResponse) -> None:
        self._websocket = websocket

    async def __aiter__(self) -> AsyncIterator[Frame]:
        async for message in self._websocket:
            if message.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                yield message.data
            elif message.type == aiohttp.WSMsgType.ERROR:
                raise PushConnectionError(
                    f"WebSocket error: {self._websocket.exception()!r}"
                )

    async def close(self) -> None:
        if not self._websocket.closed:
            await self._websocket.close()


class AiohttpPushTransport:
    """``PushTransport`` backed by an aiohttp client session."""

    def __init__(
        self,
        *,
        session: aiohttp.ClientSession | None = None,
        heartbeat: float | None = 30.0,
    ) -> None:
        """Create a transport.

        Args:
            session: Shared session. When omitted the transport creates one
                lazily and closes it in ``close``.
            heartbeat: WebSocket ping interval in seconds, or ``None``.
        """
        self._session = session
        self._owns_session = session is None
        self._heartbeat = heartbeat

    async def connect(self, url: str) -> _AiohttpPushConnection:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        try:
            websocket = await self._session.ws_connect(url, heartbeat=self._heartbeat)
        except (aiohttp.ClientError, OSError, TimeoutError) as exc:
            raise PushConnectionError(f"WebSocket connect failed: {exc}") from exc
        return _AiohttpPushConnection(websocket)

    async def close(self) -> None:
        """Close the session when this transport created it."""
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
