"""Per-key circuit breaking for backend operations.

Key behavior notes:
  - Each key (operation class + subject, e.g. ``messages:alice``) has its own
    breaker, so one unhealthy subject never blocks another.
  - A breaker opens after ``failure_threshold`` failures and refuses real
    calls for ``reset_timeout`` seconds after the most recent failure.
  - Half-open probing is conservative: at most one in-flight probe per key.
  - The registry is a pure state machine; it never performs I/O.
"""

from messaging_resilience.circuit_breaker.exceptions import (
    CircuitBreakerError,
    CircuitOpenError,
)
from messaging_resilience.circuit_breaker.metrics import (
    BreakerListener,
    LoggingBreakerListener,
)
from messaging_resilience.circuit_breaker.registry import (
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
)
from messaging_resilience.circuit_breaker.state import BreakerSnapshot, CircuitState

__all__ = [
    "BreakerListener",
    "BreakerSnapshot",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitBreakerRegistry",
    "CircuitOpenError",
    "CircuitState",
    "LoggingBreakerListener",
]
