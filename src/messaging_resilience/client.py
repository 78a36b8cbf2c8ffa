"""Entry point for resilient calls to the messaging backend."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TypeVar

import httpx

from messaging_resilience.backend import BackendResult, MessagingBackend, Ok
from messaging_resilience.cache import ResponseCache
from messaging_resilience.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    LoggingBreakerListener,
)
from messaging_resilience.logging import StructuredLogger, get_logger
from messaging_resilience.models import (
    AuthToken,
    Credentials,
    MarkReadResult,
    Message,
    UnreadCount,
    User,
)
from messaging_resilience.operations import (
    FetchMessagesOperation,
    FetchResult,
    FetchUnreadCountOperation,
    MarkAsReadOperation,
    Sleep,
)
from messaging_resilience.retry import RetryPolicy
from messaging_resilience.settings import ResilienceSettings

T = TypeVar("T")


def build_http_client(settings: ResilienceSettings) -> httpx.AsyncClient:
    """Build the shared HTTP client used by ``MessagingBackend``."""
    return httpx.AsyncClient(timeout=settings.request_timeout_seconds)


def _unwrap(result: BackendResult[T]) -> T:
    if isinstance(result, Ok):
        return result.value
    raise result.error


class ResilienceClient:
    """Owns the breaker registry, caches and retry policy for one session.

    Nothing is shared at module level: two clients never see each other's
    breakers or cached data.
    """

    def __init__(
        self,
        *,
        backend: MessagingBackend,
        breakers: CircuitBreakerRegistry | None = None,
        retry_policy: RetryPolicy | None = None,
        messages_cache: ResponseCache[list[Message]] | None = None,
        unread_cache: ResponseCache[UnreadCount] | None = None,
        sleep: Sleep | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Wire the three resilient operations around ``backend``.

        Args:
            backend: Transport returning ``Ok``/``Err`` results.
            breakers: Circuit breaker registry; a default one is created.
            retry_policy: Retry budget and backoff.
            messages_cache: Last-success cache for message lists.
            unread_cache: Last-success cache for unread counts.
            sleep: Awaitable used for retry backoff.
            logger: Structured logger shared by every component.
        """
        self._logger = get_logger(__name__) if logger is None else logger
        self.backend = backend
        self.breakers = (
            CircuitBreakerRegistry(listeners=[LoggingBreakerListener(self._logger)])
            if breakers is None
            else breakers
        )
        self.retry_policy = RetryPolicy() if retry_policy is None else retry_policy
        self.messages_cache = (
            ResponseCache[list[Message]]() if messages_cache is None else messages_cache
        )
        self.unread_cache = (
            ResponseCache[UnreadCount]() if unread_cache is None else unread_cache
        )

        self._fetch_messages = FetchMessagesOperation(
            cache=self.messages_cache,
            breakers=self.breakers,
            policy=self.retry_policy,
            sleep=sleep,
            logger=self._logger,
        )
        self._fetch_unread_count = FetchUnreadCountOperation(
            cache=self.unread_cache,
            breakers=self.breakers,
            policy=self.retry_policy,
            sleep=sleep,
            logger=self._logger,
        )
        self._mark_as_read = MarkAsReadOperation(
            breakers=self.breakers,
            policy=self.retry_policy,
            sleep=sleep,
            logger=self._logger,
        )

    @classmethod
    def from_settings(
        cls,
        settings: ResilienceSettings,
        *,
        client: httpx.AsyncClient,
        sleep: Sleep | None = None,
        logger: StructuredLogger | None = None,
    ) -> ResilienceClient:
        """Build a client whose policies come from ``settings``."""
        resolved_logger = get_logger(__name__) if logger is None else logger
        return cls(
            backend=MessagingBackend(
                client=client,
                base_url=settings.api_base_url,
                logger=resolved_logger,
            ),
            breakers=CircuitBreakerRegistry(
                CircuitBreakerConfig(
                    failure_threshold=settings.breaker_failure_threshold,
                    reset_timeout=settings.breaker_reset_timeout_seconds,
                ),
                listeners=[LoggingBreakerListener(resolved_logger)],
            ),
            retry_policy=RetryPolicy(
                budget=settings.retry_budget,
                base_delay=settings.retry_base_delay_seconds,
            ),
            messages_cache=ResponseCache(max_age=settings.cache_max_age_seconds),
            unread_cache=ResponseCache(max_age=settings.cache_max_age_seconds),
            sleep=sleep,
            logger=resolved_logger,
        )

    async def get_messages(
        self, username: str, token: str
    ) -> FetchResult[list[Message]]:
        """Fetch messages, degrading to the cached list when the backend fails."""
        return await self._fetch_messages.execute(
            username,
            lambda: self.backend.fetch_messages(username, token),
        )

    async def get_unread_count(
        self, username: str, token: str
    ) -> FetchResult[UnreadCount]:
        """Fetch the unread count, degrading to cache or zero."""
        return await self._fetch_unread_count.execute(
            username,
            lambda: self.backend.fetch_unread_count(username, token),
        )

    async def mark_messages_as_read(
        self, username: str, message_ids: Sequence[int], token: str
    ) -> MarkReadResult:
        """Mark messages read; any unrecoverable failure is raised.

        Callers must not apply local read state until this returns.
        """
        ids = list(message_ids)
        result = await self._mark_as_read.execute(
            username,
            lambda: self.backend.mark_read(username, ids, token),
        )
        return result.value

    async def register(self, username: str, password: str) -> User:
        """Create an account. Single attempt, no fallback."""
        credentials = Credentials(username=username, password=password)
        return _unwrap(await self.backend.register(credentials))

    async def login(self, username: str, password: str) -> AuthToken:
        """Exchange credentials for a token. Single attempt, no fallback."""
        credentials = Credentials(username=username, password=password)
        return _unwrap(await self.backend.login(credentials))

    async def send_message(self, username: str, content: str) -> Message:
        """Send an anonymous message to ``username``. Single attempt."""
        return _unwrap(await self.backend.send_message(username, content))
