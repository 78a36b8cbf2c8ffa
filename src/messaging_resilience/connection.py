"""Lifecycle manager for the streaming notification connection.

The manager owns one logical connection per authenticated session. It is
independent from the request layer: it has no cache and no circuit breaker,
and connection failures only ever show up in its health state.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass
from enum import StrEnum

from messaging_resilience.errors import MalformedPushEvent, PushConnectionError
from messaging_resilience.logging import (
    StructuredLogger,
    get_logger,
    log_error,
    log_exception,
    log_info,
    log_warning,
)
from messaging_resilience.models import Message, NewMessageEvent, UnreadCountEvent
from messaging_resilience.push import (
    AiohttpPushTransport,
    Frame,
    PushConnection,
    PushTransport,
    build_push_url,
    decode_push_event,
)
from messaging_resilience.settings import ResilienceSettings

Sleep = Callable[[float], Awaitable[None]]
NotificationCallback = Callable[[NewMessageEvent | UnreadCountEvent], None]


class ConnectionStatus(StrEnum):
    """Streaming connection states."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class ReconnectPolicy:
    """Bounded exponential backoff for automatic reconnects.

    Attributes:
        max_attempts: Automatic reconnects before giving up.
        base_delay: Delay in seconds before the first reconnect.
        max_delay: Upper bound for any single delay.
    """

    max_attempts: int = 10
    base_delay: float = 1.0
    max_delay: float = 30.0

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")

    def delay_for(self, attempt_count: int) -> float:
        return min(float(2**attempt_count) * self.base_delay, self.max_delay)


@dataclass(frozen=True)
class _Session:
    username: str
    token: str


class ConnectionManager:
    """Keep one push connection alive for the current session.

    Public surface for UI code: ``connected``, ``reconnecting``,
    ``reconnect()``, plus the accumulated ``messages`` and ``unread_count``.
    ``start``/``stop`` follow the authentication state.
    """

    def __init__(
        self,
        *,
        transport: PushTransport,
        ws_url: str,
        policy: ReconnectPolicy | None = None,
        sleep: Sleep = asyncio.sleep,
        on_notification: NotificationCallback | None = None,
        logger: StructuredLogger | None = None,
        owns_transport: bool = False,
    ) -> None:
        """Create an idle manager.

        Args:
            transport: Factory for streaming connections.
            ws_url: Streaming endpoint; credentials are added as query args.
            policy: Reconnect backoff and attempt bound.
            sleep: Awaitable used for reconnect delays.
            on_notification: Called with every decoded notification.
            logger: Structured logger; defaults to this module's logger.
            owns_transport: Close ``transport`` in ``stop``.
        """
        self._transport = transport
        self._owns_transport = owns_transport
        self._ws_url = ws_url
        self._policy = ReconnectPolicy() if policy is None else policy
        self._sleep = sleep
        self._on_notification = on_notification
        self._logger = get_logger(__name__) if logger is None else logger

        self._session: _Session | None = None
        self._task: asyncio.Task[None] | None = None
        self._connection: PushConnection | None = None
        self._status = ConnectionStatus.DISCONNECTED
        self._attempt_count = 0
        self._recovering = False
        self._error: str | None = None
        self._messages: list[Message] = []
        self._unread_count = 0

    @classmethod
    def from_settings(
        cls,
        settings: ResilienceSettings,
        *,
        transport: PushTransport | None = None,
        sleep: Sleep = asyncio.sleep,
        on_notification: NotificationCallback | None = None,
        logger: StructuredLogger | None = None,
    ) -> ConnectionManager:
        """Build a manager whose backoff comes from ``settings``."""
        return cls(
            transport=AiohttpPushTransport() if transport is None else transport,
            owns_transport=transport is None,
            ws_url=settings.ws_url,
            policy=ReconnectPolicy(
                max_attempts=settings.reconnect_max_attempts,
                base_delay=settings.reconnect_base_delay_seconds,
                max_delay=settings.reconnect_max_delay_seconds,
            ),
            sleep=sleep,
            on_notification=on_notification,
            logger=logger,
        )

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def attempt_count(self) -> int:
        return self._attempt_count

    @property
    def connected(self) -> bool:
        return self._status == ConnectionStatus.CONNECTED

    @property
    def reconnecting(self) -> bool:
        """True while a reconnect is pending or in progress."""
        return self._recovering

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def unread_count(self) -> int:
        return self._unread_count

    async def start(self, username: str, token: str) -> None:
        """Open the connection for an authenticated session."""
        session = _Session(username=username, token=token)
        if (
            self._session == session
            and self._task is not None
            and not self._task.done()
        ):
            return
        await self._discard_session()
        self._session = session
        self._spawn()

    async def stop(self) -> None:
        """Close the connection and discard session state (logout/unmount)."""
        await self._discard_session()
        if self._owns_transport:
            await self._transport.close()

    async def _discard_session(self) -> None:
        await self._teardown()
        self._session = None
        self._attempt_count = 0
        self._recovering = False
        self._error = None
        self._messages = []
        self._unread_count = 0
        self._set_status(ConnectionStatus.DISCONNECTED)

    async def reconnect(self) -> None:
        """Manual override: reset the attempt budget and connect again now.

        Any live connection and pending reconnect timer are torn down first.
        Does nothing without an authenticated session.
        """
        if self._session is None:
            return
        log_info(self._logger, "push_manual_reconnect", username=self._session.username)
        await self._teardown()
        self._error = None
        self._attempt_count = 0
        self._recovering = True
        self._spawn()

    async def wait_closed(self) -> None:
        """Wait until the lifecycle task ends (exhausted or cancelled)."""
        task = self._task
        if task is None:
            return
        with suppress(asyncio.CancelledError):
            await task

    def _spawn(self) -> None:
        self._task = asyncio.create_task(self._run(), name="push-connection")

    async def _teardown(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        connection = self._connection
        self._connection = None
        if connection is not None:
            await connection.close()

    def _set_status(self, status: ConnectionStatus) -> None:
        previous = self._status
        self._status = status
        if previous != status:
            log_info(
                self._logger,
                "push_connection_status_changed",
                previous_status=str(previous),
                status=str(status),
                attempt_count=self._attempt_count,
            )

    async def _run(self) -> None:
        session = self._session
        assert session is not None
        url = build_push_url(self._ws_url, session.username, session.token)

        while True:
            self._set_status(ConnectionStatus.CONNECTING)
            await self._connect_and_listen(url)
            self._set_status(ConnectionStatus.DISCONNECTED)

            if self._attempt_count >= self._policy.max_attempts:
                self._recovering = False
                self._error = (
                    "Unable to connect to the notification service after "
                    f"{self._policy.max_attempts} attempts."
                )
                self._set_status(ConnectionStatus.EXHAUSTED)
                log_error(
                    self._logger,
                    "push_reconnect_exhausted",
                    max_attempts=self._policy.max_attempts,
                )
                return

            self._recovering = True
            self._set_status(ConnectionStatus.RECONNECTING)
            delay = self._policy.delay_for(self._attempt_count)
            log_info(
                self._logger,
                "push_reconnect_scheduled",
                attempt=self._attempt_count + 1,
                max_attempts=self._policy.max_attempts,
                delay_seconds=delay,
            )
            await self._sleep(delay)
            self._attempt_count += 1

    async def _connect_and_listen(self, url: str) -> None:
        try:
            connection = await self._transport.connect(url)
        except PushConnectionError as exc:
            self._error = str(exc)
            log_warning(self._logger, "push_connect_failed", error=str(exc))
            return

        self._connection = connection
        self._attempt_count = 0
        self._recovering = False
        self._error = None
        self._set_status(ConnectionStatus.CONNECTED)
        try:
            async for frame in connection:
                self._handle_frame(frame)
        except PushConnectionError as exc:
            self._error = str(exc)
            log_warning(self._logger, "push_connection_error", error=str(exc))
        finally:
            if self._connection is connection:
                self._connection = None
            await connection.close()

    def _handle_frame(self, frame: Frame) -> None:
        try:
            event = decode_push_event(frame)
        except MalformedPushEvent as exc:
            log_warning(
                self._logger,
                "push_event_malformed",
                error=str(exc),
                frame=repr(exc.raw)[:200],
            )
            return

        if isinstance(event, NewMessageEvent):
            self._messages.append(event.data)
            self._unread_count += 1
        else:
            self._unread_count = event.data.count

        if self._on_notification is not None:
            try:
                self._on_notification(event)
            except Exception:
                log_exception(
                    self._logger,
                    "push_notification_callback_failed",
                    event_type=event.type,
                )
