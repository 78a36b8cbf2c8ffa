from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from messaging_resilience.errors import TransientError


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget and exponential backoff for one logical operation.

    Attributes:
        budget: Retries allowed after the first attempt.
        base_delay: Delay in seconds before the first retry. Each further
            retry doubles it; no jitter is added.
    """

    budget: int = 3
    base_delay: float = 1.0

    def __post_init__(self) -> None:
        if self.budget < 0:
            raise ValueError("budget must be >= 0")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")

    @staticmethod
    def is_retryable(error: BaseException) -> bool:
        """Return true for 5xx and no-response failures only."""
        return isinstance(error, TransientError)

    def should_retry(self, error: BaseException, retries_remaining: int) -> bool:
        """Decide ``retry`` (true) or ``fail`` (false) for one failed attempt."""
        return retries_remaining > 0 and self.is_retryable(error)

    def delay_for(self, retries_remaining: int) -> float:
        """Return the backoff before the retry that consumes one unit of budget."""
        return float(2 ** (self.budget - retries_remaining)) * self.base_delay

    def wait(self, retry_state: RetryCallState) -> float:
        """Tenacity wait hook mapping attempt numbers onto ``delay_for``."""
        retries_remaining = self.budget - (retry_state.attempt_number - 1)
        return self.delay_for(retries_remaining)


def build_backoff_retrying(
    *,
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] | None = None,
    before_sleep: Callable[[RetryCallState], None] | None = None,
) -> AsyncRetrying:
    """Build an ``AsyncRetrying`` that follows ``policy`` exactly.

    The last error is re-raised unchanged once the budget is spent or the
    error is not retryable.
    """
    options: dict[str, Any] = {}
    if sleep is not None:
        options["sleep"] = sleep
    if before_sleep is not None:
        options["before_sleep"] = before_sleep
    return AsyncRetrying(
        retry=retry_if_exception(policy.is_retryable),
        wait=policy.wait,
        stop=stop_after_attempt(policy.budget + 1),
        reraise=True,
        **options,
    )
