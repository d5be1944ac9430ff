"""Failure-rate circuit breaker for external provider calls."""

import threading
import time
from collections import deque
from enum import Enum
from typing import Any, Callable, NamedTuple, Optional

from comunidata.core.config import CircuitBreakerConfig
from comunidata.core.exceptions import CircuitOpenError, ProviderResponseError
from comunidata.observability import metrics
from comunidata.observability.logger import get_logger

logger = get_logger(__name__)


class CircuitBreakerState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Failing, reject calls
    HALF_OPEN = "half_open"  # Letting a probe through


_STATE_GAUGE = {
    CircuitBreakerState.CLOSED: 0,
    CircuitBreakerState.HALF_OPEN: 1,
    CircuitBreakerState.OPEN: 2,
}


class Permit(NamedTuple):
    """Admission of one call: the state and generation it was let through under."""
    state: CircuitBreakerState
    generation: int


class CircuitBreaker:
    """
    Count-based sliding-window circuit breaker.

    The outcomes of the last ``sliding_window_size`` calls are kept. Once at
    least ``minimum_calls`` outcomes are recorded and the share of failures
    reaches ``failure_rate_threshold`` percent, the breaker opens and every
    call is rejected with CircuitOpenError. After ``open_timeout`` seconds
    up to ``half_open_max_calls`` probes are let through: a successful probe
    closes the breaker with a fresh window, a failed one reopens it.

    Every state change starts a new generation. An outcome reported with a
    permit from an earlier generation is dropped, so a slow call admitted
    while closed cannot decide a later half-open trial.

    Shared by the worker threads of one stage, so all state changes happen
    under a lock; the wrapped call itself runs outside it.
    """

    def __init__(
        self,
        name: str,
        failure_rate_threshold: float = 50.0,
        sliding_window_size: int = 10,
        minimum_calls: int = 5,
        open_timeout: float = 30.0,
        half_open_max_calls: int = 1,
        ignored_exceptions: tuple[type[BaseException], ...] = (ProviderResponseError,),
        clock: Callable[[], float] = time.monotonic,
    ):
        """Configure a circuit breaker.

        Parameters
        - name: Identifier for logs/metrics
        - failure_rate_threshold: Percentage of failed calls that opens the breaker
        - sliding_window_size: Number of recent outcomes considered
        - minimum_calls: Outcomes required before the rate is evaluated
        - open_timeout: Seconds to stay open before probing
        - half_open_max_calls: Probes allowed while half-open
        - ignored_exceptions: Errors that prove the service answered; counted as success
        - clock: Monotonic time source (replaced in tests)
        """
        self.name = name
        self.failure_rate_threshold = failure_rate_threshold
        self.sliding_window_size = sliding_window_size
        self.minimum_calls = min(minimum_calls, sliding_window_size)
        self.open_timeout = open_timeout
        self.half_open_max_calls = half_open_max_calls
        self.ignored_exceptions = ignored_exceptions
        self.clock = clock

        self._outcomes: deque[bool] = deque(maxlen=sliding_window_size)
        self._state = CircuitBreakerState.CLOSED
        self._opened_at: Optional[float] = None
        self._half_open_in_flight = 0
        self._generation = 0
        self._lock = threading.Lock()
        metrics.circuit_breaker_state.labels(breaker=name).set(0)

    @classmethod
    def from_config(cls, name: str, config: CircuitBreakerConfig, **overrides) -> "CircuitBreaker":
        return cls(
            name=name,
            failure_rate_threshold=config.failure_rate_threshold,
            sliding_window_size=config.sliding_window_size,
            minimum_calls=config.minimum_calls,
            open_timeout=config.open_timeout_seconds,
            half_open_max_calls=config.half_open_max_calls,
            **overrides,
        )

    @property
    def state(self) -> CircuitBreakerState:
        with self._lock:
            self._maybe_half_open()
            return self._state

    def call(self, func: Callable, *args, **kwargs) -> Any:
        """Execute function with circuit breaker protection."""
        permit = self.acquire()
        try:
            result = func(*args, **kwargs)
        except self.ignored_exceptions:
            self.record_success(permit)
            raise
        except Exception:
            self.record_failure(permit)
            raise
        self.record_success(permit)
        return result

    def acquire(self) -> Permit:
        """Reserve permission for one call or raise CircuitOpenError."""
        with self._lock:
            self._maybe_half_open()
            if self._state is CircuitBreakerState.OPEN:
                raise CircuitOpenError(self.name)
            if self._state is CircuitBreakerState.HALF_OPEN:
                if self._half_open_in_flight >= self.half_open_max_calls:
                    raise CircuitOpenError(self.name)
                self._half_open_in_flight += 1
            return Permit(self._state, self._generation)

    def record_success(self, permit: Optional[Permit] = None) -> None:
        """
        Record a successful call.

        Without a permit the outcome applies to the current state.
        """
        with self._lock:
            if self._is_stale(permit):
                logger.debug("Ignoring outcome from an earlier breaker state", extra={"breaker": self.name})
                return
            if self._state is CircuitBreakerState.HALF_OPEN:
                self._transition(CircuitBreakerState.CLOSED)
                logger.info("Circuit breaker reset to CLOSED", extra={"breaker": self.name})
                return
            self._outcomes.append(False)

    def record_failure(self, permit: Optional[Permit] = None) -> None:
        with self._lock:
            if self._is_stale(permit):
                logger.debug("Ignoring outcome from an earlier breaker state", extra={"breaker": self.name})
                return
            if self._state is CircuitBreakerState.HALF_OPEN:
                self._transition(CircuitBreakerState.OPEN)
                logger.warning("Half-open probe failed, circuit breaker reopened", extra={"breaker": self.name})
                return
            self._outcomes.append(True)
            if self._state is CircuitBreakerState.CLOSED and self._threshold_reached():
                rate = self._failure_rate()
                self._transition(CircuitBreakerState.OPEN)
                logger.warning(
                    "Circuit breaker opened due to failure rate",
                    extra={
                        "breaker": self.name,
                        "failure_rate": rate,
                        "threshold": self.failure_rate_threshold,
                    },
                )

    def stats(self) -> dict:
        """Get circuit breaker statistics."""
        with self._lock:
            self._maybe_half_open()
            return {
                "name": self.name,
                "state": self._state.value,
                "recorded_calls": len(self._outcomes),
                "failure_rate": self._failure_rate(),
                "failure_rate_threshold": self.failure_rate_threshold,
                "open_timeout": self.open_timeout,
            }

    def force_open(self) -> None:
        with self._lock:
            self._transition(CircuitBreakerState.OPEN)
        logger.warning("Circuit breaker forced to OPEN", extra={"breaker": self.name})

    def force_close(self) -> None:
        with self._lock:
            self._transition(CircuitBreakerState.CLOSED)
        logger.info("Circuit breaker forced to CLOSED", extra={"breaker": self.name})

    # Helpers below expect self._lock to be held.

    def _is_stale(self, permit: Optional[Permit]) -> bool:
        if permit is None:
            return False
        self._maybe_half_open()
        return permit.generation != self._generation

    def _failure_rate(self) -> float:
        if not self._outcomes:
            return 0.0
        return 100.0 * sum(self._outcomes) / len(self._outcomes)

    def _threshold_reached(self) -> bool:
        return (
            len(self._outcomes) >= self.minimum_calls
            and self._failure_rate() >= self.failure_rate_threshold
        )

    def _maybe_half_open(self) -> None:
        if (
            self._state is CircuitBreakerState.OPEN
            and self._opened_at is not None
            and self.clock() - self._opened_at >= self.open_timeout
        ):
            self._transition(CircuitBreakerState.HALF_OPEN)
            logger.info("Circuit breaker transitioning to HALF_OPEN", extra={"breaker": self.name})

    def _transition(self, state: CircuitBreakerState) -> None:
        self._state = state
        self._generation += 1
        self._half_open_in_flight = 0
        if state is CircuitBreakerState.OPEN:
            self._opened_at = self.clock()
        elif state is CircuitBreakerState.CLOSED:
            self._opened_at = None
            self._outcomes.clear()
        metrics.circuit_breaker_state.labels(breaker=self.name).set(_STATE_GAUGE[state])
