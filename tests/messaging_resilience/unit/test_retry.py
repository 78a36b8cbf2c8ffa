from __future__ import annotations

import pytest

from messaging_resilience.errors import (
    ClientError,
    InvalidResponseError,
    NetworkError,
    ServerError,
)
from messaging_resilience.retry import RetryPolicy, build_backoff_retrying
from tests.messaging_resilience.support.fakes import RecordingSleep


@pytest.mark.parametrize(
    ("budget", "base_delay", "message"),
    [
        (-1, 1.0, "budget must be >= 0"),
        (3, -0.5, "base_delay must be >= 0"),
    ],
)
def test_retry_policy_validation(budget: int, base_delay: float, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        RetryPolicy(budget=budget, base_delay=base_delay)


def test_delays_double_from_one_second() -> None:
    policy = RetryPolicy()

    assert [policy.delay_for(remaining) for remaining in (3, 2, 1)] == [
        1.0,
        2.0,
        4.0,
    ]


@pytest.mark.parametrize(
    ("error", "retryable"),
    [
        (ServerError("boom", http_status=503), True),
        (NetworkError("unreachable"), True),
        (ClientError("nope", http_status=404), False),
        (InvalidResponseError("garbage", http_status=200), False),
        (ValueError("not a backend error"), False),
    ],
)
def test_should_retry_classifies_by_error_type(
    error: Exception, retryable: bool
) -> None:
    assert RetryPolicy().should_retry(error, retries_remaining=3) is retryable


def test_should_retry_stops_when_budget_is_spent() -> None:
    assert RetryPolicy().should_retry(ServerError("boom"), retries_remaining=0) is False


@pytest.mark.asyncio
async def test_retrying_waits_one_two_four_then_reraises_last_error() -> None:
    sleep = RecordingSleep()
    retrying = build_backoff_retrying(policy=RetryPolicy(), sleep=sleep)

    attempts = 0
    with pytest.raises(ServerError, match="attempt 4"):
        async for attempt in retrying:
            with attempt:
                attempts += 1
                raise ServerError(f"attempt {attempts}", http_status=503)

    assert attempts == 4
    assert sleep.delays == [1.0, 2.0, 4.0]


@pytest.mark.asyncio
async def test_retrying_does_not_retry_client_errors() -> None:
    sleep = RecordingSleep()
    retrying = build_backoff_retrying(policy=RetryPolicy(), sleep=sleep)

    attempts = 0
    with pytest.raises(ClientError):
        async for attempt in retrying:
            with attempt:
                attempts += 1
                raise ClientError("bad request", http_status=400)

    assert attempts == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_retrying_calls_before_sleep_hook() -> None:
    seen: list[int] = []
    retrying = build_backoff_retrying(
        policy=RetryPolicy(budget=2, base_delay=0.0),
        sleep=RecordingSleep(),
        before_sleep=lambda state: seen.append(state.attempt_number),
    )

    attempts = 0
    async for attempt in retrying:
        with attempt:
            attempts += 1
            if attempts < 3:
                raise NetworkError("flaky")

    assert attempts == 3
    assert seen == [1, 2]
