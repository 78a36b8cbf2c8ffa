"""Observability hooks for circuit breakers."""

from typing import Protocol

from messaging_resilience.circuit_breaker.state import CircuitState
from messaging_resilience.logging import StructuredLogger, log_info, log_warning


class BreakerListener(Protocol):
    """Listener protocol for circuit breaker events."""

    def on_state_change(
        self,
        name: str,
        old: CircuitState,
        new: CircuitState,
        failure_count: int,
    ) -> None:
        """Handle circuit state transitions."""

    def on_call_rejected(self, name: str) -> None:
        """Handle an attempt refused because the circuit is open."""


class LoggingBreakerListener:
    """Write breaker transitions and rejections to a structured logger."""

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger = logger

    def on_state_change(
        self,
        name: str,
        old: CircuitState,
        new: CircuitState,
        failure_count: int,
    ) -> None:
        if new == CircuitState.OPEN:
            log_warning(
                self._logger,
                "circuit_breaker_opened",
                breaker=name,
                previous_state=str(old),
                failure_count=failure_count,
            )
            return
        log_info(
            self._logger,
            "circuit_breaker_state_changed",
            breaker=name,
            previous_state=str(old),
            state=str(new),
        )

    def on_call_rejected(self, name: str) -> None:
        log_info(self._logger, "circuit_breaker_rejected_call", breaker=name)
