"""Circuit breaker guarding calls to the hosted database."""

import enum
import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

logger = logging.getLogger(__name__)


class CircuitState(enum.Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """Raised when a call is attempted on an open circuit."""

    def __init__(self, service_name: str) -> None:
        self.service_name = service_name
        super().__init__(f"Circuit breaker is open for {service_name}")


_registry: dict[str, "CircuitBreaker"] = {}
_registry_lock = threading.Lock()


def get_all_circuit_breakers() -> dict[str, "CircuitBreaker"]:
    """Return a snapshot of all registered circuit breakers."""
    with _registry_lock:
        return dict(_registry)


class CircuitBreaker:
    """Consecutive-failure circuit breaker.

    Opens after ``failure_threshold`` consecutive failures. Once
    ``recovery_timeout`` seconds have passed the next caller is let
    through (half-open); its outcome closes or re-opens the circuit.

    Expected outcomes such as "row not found" should be recorded as
    successes by the caller: they prove the service answered.

    Args:
        service_name: Identifier for the protected service (used in logs).
        failure_threshold: Number of consecutive failures before opening.
        recovery_timeout: Seconds to wait before half-opening.
    """

    def __init__(
        self,
        service_name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
    ) -> None:
        self.service_name = service_name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout

        self._failure_count = 0
        self._opened_at = 0.0
        self._state = CircuitState.CLOSED
        self._lock = threading.Lock()

        with _registry_lock:
            _registry[service_name] = self

    @property
    def state(self) -> CircuitState:
        """Current circuit state, accounting for recovery timeout."""
        with self._lock:
            if (
                self._state == CircuitState.OPEN
                and time.monotonic() - self._opened_at >= self.recovery_timeout
            ):
                self._state = CircuitState.HALF_OPEN
                logger.warning("Circuit breaker HALF_OPEN for %s", self.service_name)
            return self._state

    def check(self) -> None:
        """Raise ``CircuitBreakerOpen`` if calls are currently refused."""
        if self.state == CircuitState.OPEN:
            raise CircuitBreakerOpen(self.service_name)

    def record_success(self) -> None:
        with self._lock:
            if self._state != CircuitState.CLOSED:
                logger.warning("Circuit breaker CLOSED for %s", self.service_name)
            self._failure_count = 0
            self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        with self._lock:
            self._failure_count += 1
            half_open = self._state == CircuitState.HALF_OPEN
            if half_open or self._failure_count >= self.failure_threshold:
                if self._state != CircuitState.OPEN:
                    logger.warning(
                        "Circuit breaker OPEN for %s after %d consecutive failures",
                        self.service_name,
                        self._failure_count,
                    )
                self._state = CircuitState.OPEN
                self._opened_at = time.monotonic()

    def reset(self) -> None:
        """Force the circuit closed (tests and manual recovery)."""
        with self._lock:
            self._failure_count = 0
            self._opened_at = 0.0
            self._state = CircuitState.CLOSED

    @contextmanager
    def guard(self) -> Iterator[None]:
        """Run a block through the breaker.

        Raises:
            CircuitBreakerOpen: If the circuit is open.
        """
        self.check()
        try:
            yield
        except Exception:
            self.record_failure()
            raise
        self.record_success()

    def snapshot(self) -> dict[str, Any]:
        """Serializable state for health endpoints."""
        return {"state": self.state.value, "failures": self._failure_count}
