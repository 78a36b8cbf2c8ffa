"""Per-key circuit breaker registry."""

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from messaging_resilience.circuit_breaker.metrics import BreakerListener
from messaging_resilience.circuit_breaker.state import BreakerSnapshot, CircuitState


@dataclass(slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        failure_threshold: Failures required before the breaker opens.
        reset_timeout: Seconds to wait while ``OPEN`` before allowing a probe.
    """

    failure_threshold: int = 5
    reset_timeout: float = 30.0

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.reset_timeout < 0:
            raise ValueError("reset_timeout must be >= 0")


@dataclass(slots=True)
class _BreakerRecord:
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    last_failure_at: float | None = None
    probe_in_flight: bool = False


class CircuitBreakerRegistry:
    """Independent circuit breakers keyed by operation class and subject.

    Records are created lazily in ``CLOSED`` and live as long as the registry.
    The registry performs no I/O; callers report the outcome of each attempt
    with ``record_success``/``record_failure``.
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        listeners: Sequence[BreakerListener] | None = None,
    ) -> None:
        """Build a registry.

        Args:
            config: Threshold and reset window shared by every key.
            clock: Monotonic time source in seconds.
            listeners: Optional hooks told about transitions and rejections.
        """
        self.config = CircuitBreakerConfig() if config is None else config
        self._clock = clock
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._records: dict[str, _BreakerRecord] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def _record(self, key: str) -> _BreakerRecord:
        record = self._records.get(key)
        if record is None:
            record = _BreakerRecord()
            self._records[key] = record
        return record

    def _transition(
        self, key: str, record: _BreakerRecord, new: CircuitState
    ) -> None:
        old = record.state
        record.state = new
        if old == new:
            return
        for listener in self._listeners:
            listener.on_state_change(key, old, new, record.failure_count)

    def _elapsed_since_failure(self, record: _BreakerRecord) -> float:
        if record.last_failure_at is None:
            return self.config.reset_timeout
        return self._clock() - record.last_failure_at

    def status(self, key: str) -> CircuitState:
        """Return the state for ``key``, moving ``OPEN`` to ``HALF_OPEN`` when due."""
        record = self._record(key)
        if (
            record.state == CircuitState.OPEN
            and self._elapsed_since_failure(record) >= self.config.reset_timeout
        ):
            self._transition(key, record, CircuitState.HALF_OPEN)
        return record.state

    def time_until_retry(self, key: str) -> float:
        """Return seconds until an open breaker admits a probe, else ``0.0``."""
        if self.status(key) != CircuitState.OPEN:
            return 0.0
        record = self._record(key)
        remaining = self.config.reset_timeout - self._elapsed_since_failure(record)
        return max(remaining, 0.0)

    def try_acquire(self, key: str) -> bool:
        """Return whether a real call may be made for ``key`` right now.

        ``HALF_OPEN`` admits exactly one in-flight probe; the probe slot is
        freed by ``record_success``, ``record_failure`` or ``release``.
        """
        state = self.status(key)
        if state == CircuitState.CLOSED:
            return True

        record = self._record(key)
        if state == CircuitState.HALF_OPEN and not record.probe_in_flight:
            record.probe_in_flight = True
            return True

        for listener in self._listeners:
            listener.on_call_rejected(key)
        return False

    def release(self, key: str) -> None:
        """Free a half-open probe slot without recording an outcome."""
        self._record(key).probe_in_flight = False

    def record_success(self, key: str) -> BreakerSnapshot:
        """Reset ``key`` to a healthy ``CLOSED`` state."""
        record = self._record(key)
        record.failure_count = 0
        record.last_failure_at = None
        record.probe_in_flight = False
        self._transition(key, record, CircuitState.CLOSED)
        return self.snapshot(key)

    def record_failure(self, key: str) -> BreakerSnapshot:
        """Count one failure for ``key``, opening the breaker when due.

        A failed half-open probe reopens the breaker. Any failure restarts the
        reset window.
        """
        record = self._record(key)
        record.failure_count += 1
        record.last_failure_at = self._clock()
        record.probe_in_flight = False
        if record.state == CircuitState.HALF_OPEN:
            self._transition(key, record, CircuitState.OPEN)
        elif (
            record.state == CircuitState.CLOSED
            and record.failure_count >= self.config.failure_threshold
        ):
            self._transition(key, record, CircuitState.OPEN)
        return self.snapshot(key)

    def snapshot(self, key: str) -> BreakerSnapshot:
        """Return a read-only view of ``key`` without changing its state."""
        record = self._record(key)
        return BreakerSnapshot(
            name=key,
            state=record.state,
            failure_count=record.failure_count,
            last_failure_at=record.last_failure_at,
        )
