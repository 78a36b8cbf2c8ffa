"""Circuit breaker state primitives."""

from dataclasses import dataclass
from enum import StrEnum


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time view of one breaker, useful for logging and tests.

    Attributes:
        name: Breaker key, for example ``messages:alice``.
        state: Current breaker state.
        failure_count: Failures recorded since the last success.
        last_failure_at: Monotonic timestamp of the last failure, if any.
    """

    name: str
    state: CircuitState
    failure_count: int
    last_failure_at: float | None
