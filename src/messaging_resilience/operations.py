"""Resilient wrappers around individual backend operations.

Each operation runs the same skeleton per attempt: ask the breaker for
permission, perform the backend call, report the outcome to the breaker, and
retry transient failures with backoff. Operations differ only in what they
do when no live result can be produced.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, TypeVar

from tenacity import RetryCallState

from messaging_resilience.backend import BackendResult, Ok
from messaging_resilience.cache import ResponseCache
from messaging_resilience.circuit_breaker import (
    CircuitBreakerRegistry,
    CircuitOpenError,
)
from messaging_resilience.errors import (
    ClientError,
    InvalidResponseError,
    MessagingError,
    TransientError,
)
from messaging_resilience.logging import (
    StructuredLogger,
    bind_log_context,
    get_logger,
    log_info,
    log_warning,
)
from messaging_resilience.models import MarkReadResult, Message, UnreadCount
from messaging_resilience.retry import RetryPolicy, build_backoff_retrying

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


class ResultSource(StrEnum):
    """Where a returned value came from."""

    LIVE = "live"
    CACHE = "cache"
    DEFAULT = "default"


@dataclass(frozen=True)
class FetchResult(Generic[T]):
    """Operation result plus its degraded-mode metadata.

    Attributes:
        value: The returned payload.
        source: Live backend response, cache fallback or safe default.
        fresh: False when a cached value is older than the cache max age, or
            when the value is a synthesized default.
    """

    value: T
    source: ResultSource = ResultSource.LIVE
    fresh: bool = True

    @property
    def degraded(self) -> bool:
        return self.source != ResultSource.LIVE


class ResilientOperation(Generic[T]):
    """Circuit breaking, retry and fallback around one backend call."""

    name: str = "operation"
    open_message: str | None = None
    fallback_errors: tuple[type[MessagingError], ...] = (
        CircuitOpenError,
        TransientError,
    )

    def __init__(
        self,
        *,
        breakers: CircuitBreakerRegistry,
        policy: RetryPolicy,
        sleep: Sleep | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Create an operation.

        Args:
            breakers: Registry shared with the other operations of a client.
            policy: Retry budget and backoff for one top-level invocation.
            sleep: Awaitable used for backoff delays; defaults to asyncio's.
            logger: Structured logger; defaults to this module's logger.
        """
        self._breakers = breakers
        self._policy = policy
        self._sleep = sleep
        self._logger = get_logger(__name__) if logger is None else logger

    def breaker_key(self, subject: str) -> str:
        return f"{self.name}:{subject}"

    def _fallback(self, subject: str, error: MessagingError) -> FetchResult[T] | None:
        """Return a degraded result for ``subject`` or ``None`` to re-raise."""
        return None

    def _on_success(self, subject: str, value: T) -> None:
        """Hook for read operations to refresh their cache."""

    def _log_retry(self, key: str, retry_state: RetryCallState) -> None:
        delay = None
        if retry_state.next_action is not None:
            delay = retry_state.next_action.sleep
        error = None
        if retry_state.outcome is not None:
            error = retry_state.outcome.exception()
        log_info(
            self._logger,
            "operation_retry_scheduled",
            breaker=key,
            retries_remaining=self._policy.budget - retry_state.attempt_number + 1,
            delay_seconds=delay,
            error=str(error),
        )

    async def execute(
        self,
        subject: str,
        call: Callable[[], Awaitable[BackendResult[T]]],
    ) -> FetchResult[T]:
        """Run ``call`` for ``subject`` under this operation's policy.

        Raises:
            CircuitOpenError: The breaker refused a real call and there is no
                fallback.
            ApiError: The last backend failure when no fallback applies.
        """
        key = self.breaker_key(subject)
        retrying = build_backoff_retrying(
            policy=self._policy,
            sleep=self._sleep,
            before_sleep=lambda retry_state: self._log_retry(key, retry_state),
        )
        with bind_log_context(operation=self.name, subject=subject):
            try:
                async for attempt in retrying:
                    with attempt:
                        return await self._attempt(key, subject, call)
            except self.fallback_errors as exc:
                fallback = self._fallback(subject, exc)
                if fallback is None:
                    raise
                log_warning(
                    self._logger,
                    "operation_degraded",
                    breaker=key,
                    source=str(fallback.source),
                    fresh=fallback.fresh,
                    error=str(exc),
                )
                return fallback

        raise RuntimeError(f"{self.name} retry loop exited unexpectedly.")

    async def _attempt(
        self,
        key: str,
        subject: str,
        call: Callable[[], Awaitable[BackendResult[T]]],
    ) -> FetchResult[T]:
        if not self._breakers.try_acquire(key):
            raise CircuitOpenError(
                key,
                retry_after=self._breakers.time_until_retry(key),
                message=self.open_message,
            )

        try:
            result = await call()
        except BaseException:
            # Cancellation or an unexpected error must not pin the probe slot.
            self._breakers.release(key)
            raise
        if isinstance(result, Ok):
            self._breakers.record_success(key)
            self._on_success(subject, result.value)
            return FetchResult(result.value)

        error = result.error
        if isinstance(error, ClientError):
            # 4xx says nothing about backend health.
            self._breakers.release(key)
        else:
            self._breakers.record_failure(key)
        raise error


class _CachedReadOperation(ResilientOperation[T]):
    """Read operation that refreshes and falls back to a response cache."""

    def __init__(
        self,
        *,
        cache: ResponseCache[T],
        breakers: CircuitBreakerRegistry,
        policy: RetryPolicy,
        sleep: Sleep | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        super().__init__(breakers=breakers, policy=policy, sleep=sleep, logger=logger)
        self.cache = cache

    def _on_success(self, subject: str, value: T) -> None:
        self.cache.put(subject, value)

    def _cached(self, subject: str) -> FetchResult[T] | None:
        lookup = self.cache.get(subject)
        if lookup is None:
            return None
        return FetchResult(lookup.data, source=ResultSource.CACHE, fresh=lookup.is_fresh)


class FetchMessagesOperation(_CachedReadOperation[list[Message]]):
    """Message list read; serves the cached list, else re-raises."""

    name = "messages"

    def _fallback(
        self, subject: str, error: MessagingError
    ) -> FetchResult[list[Message]] | None:
        return self._cached(subject)


class FetchUnreadCountOperation(_CachedReadOperation[UnreadCount]):
    """Unread counter read; never raises for transient trouble."""

    name = "unread_count"
    fallback_errors = (CircuitOpenError, TransientError, InvalidResponseError)

    def _fallback(
        self, subject: str, error: MessagingError
    ) -> FetchResult[UnreadCount] | None:
        cached = self._cached(subject)
        if cached is not None:
            return cached
        return FetchResult(
            UnreadCount(count=0), source=ResultSource.DEFAULT, fresh=False
        )


class MarkAsReadOperation(ResilientOperation[MarkReadResult]):
    """Write operation; success is never sourced from a cache."""

    name = "mark_read"
    open_message = (
        "The server is currently unavailable. Messages could not be marked "
        "as read; please try again once it is back online."
    )
