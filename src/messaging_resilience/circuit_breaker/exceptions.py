"""Circuit breaker exceptions.

Callers can distinguish between:
  - A call being rejected because the circuit is open (``CircuitOpenError``).
  - Any other failure surfaced by the protected operation.
"""

from messaging_resilience.errors import MessagingError


class CircuitBreakerError(MessagingError):
    """Base exception for the circuit breaker package."""


class CircuitOpenError(CircuitBreakerError):
    """Raised when a call is short-circuited with no usable fallback.

    Attributes:
        breaker_name: Key of the breaker rejecting the call.
        retry_after: Seconds until a half-open probe may be attempted.
        circuit_open: Always ``True``; lets UI layers offer a cached-data
            affordance without importing this class.
    """

    circuit_open = True

    def __init__(
        self,
        breaker_name: str,
        retry_after: float,
        message: str | None = None,
    ) -> None:
        """Initialize a circuit-open exception payload.

        Args:
            breaker_name: Breaker rejecting the call.
            retry_after: Seconds until the next probe window opens.
            message: Optional user-facing message.
        """
        self.breaker_name = breaker_name
        self.retry_after = retry_after
        if message is None:
            message = "The server is currently unavailable. Please try again later."
        self.message = message
        super().__init__(
            f"{message} (circuit_open: {breaker_name} retry_after={retry_after:g}s)"
        )
