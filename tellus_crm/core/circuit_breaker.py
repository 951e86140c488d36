"""
Circuit breaker for calls to the object storage provider.

A call counts as failed when it raises, or when `is_failure(result)` says the
returned value is a failure (e.g. a 5xx response, which httpx does not raise).
"""
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional
from tellus_crm.config import settings

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"  # calls fail fast
    HALF_OPEN = "half_open"  # a few probe calls allowed


class CircuitBreakerOpenException(Exception):
    """Raised instead of calling the provider while the circuit is open."""

    def __init__(self, message: str = "Circuit breaker is open"):
        self.message = message
        super().__init__(self.message)


class CircuitBreaker:
    """
    Trip after `failure_threshold` consecutive failures, stay open for
    `recovery_timeout` seconds, then let `half_open_max_calls` probes through.
    Enough successful probes close the circuit; one failed probe reopens it.

    Usage:
        response = await breaker.call(client.request, "GET", url)
    """

    def __init__(
        self,
        name: str = "default",
        failure_threshold: Optional[int] = None,
        recovery_timeout: Optional[int] = None,
        half_open_max_calls: Optional[int] = None,
        is_failure: Optional[Callable[[Any], bool]] = None
    ):
        self.name = name
        self.failure_threshold = failure_threshold or settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD
        self.recovery_timeout = recovery_timeout or settings.CIRCUIT_BREAKER_RECOVERY_TIMEOUT
        self.half_open_max_calls = half_open_max_calls or settings.CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS
        self.is_failure = is_failure

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._probe_successes = 0
        self._probe_calls = 0
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def _transition(self, state: CircuitState) -> None:
        if state != self._state:
            log = logger.warning if state == CircuitState.OPEN else logger.info
            log(f"Circuit breaker '{self.name}' {self._state.value} -> {state.value} (failures={self._failure_count})")
        self._state = state
        self._probe_successes = 0
        self._probe_calls = 0
        if state == CircuitState.OPEN:
            self._opened_at = time.monotonic()
        elif state == CircuitState.CLOSED:
            self._failure_count = 0

    def _before_call(self) -> None:
        if self._state == CircuitState.OPEN:
            if time.monotonic() - self._opened_at < self.recovery_timeout:
                raise CircuitBreakerOpenException(
                    f"Circuit breaker '{self.name}' is open. Retry after {self.recovery_timeout}s"
                )
            self._transition(CircuitState.HALF_OPEN)

        if self._state == CircuitState.HALF_OPEN:
            if self._probe_calls >= self.half_open_max_calls:
                raise CircuitBreakerOpenException(
                    f"Circuit breaker '{self.name}' half-open call limit reached"
                )
            self._probe_calls += 1

    def _record_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._probe_successes += 1
            if self._probe_successes >= self.half_open_max_calls:
                self._transition(CircuitState.CLOSED)
        else:
            self._failure_count = 0

    def _record_failure(self) -> None:
        self._failure_count += 1
        if self._state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN)
        elif self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
            self._transition(CircuitState.OPEN)

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Await `func(*args, **kwargs)` through the breaker.

        Failed results are still returned to the caller; they only count
        against the circuit.

        Raises:
            CircuitBreakerOpenException: If the circuit is open
            Exception: Whatever `func` raises
        """
        self._before_call()
        try:
            result = await func(*args, **kwargs)
        except Exception:
            self._record_failure()
            raise

        if self.is_failure is not None and self.is_failure(result):
            self._record_failure()
        else:
            self._record_success()
        return result
