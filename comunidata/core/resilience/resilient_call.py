"""
Retry + circuit breaker + fallback composed around one external call.

Usage:
    call = ResilientCall(
        provider.embed,
        name="embedding",
        retry_policy=RetryPolicy(max_attempts=3),
        breaker=CircuitBreaker("embedding"),
        fallback=lambda text, error: [],
    )
    vector = call("some text")
"""

from typing import Callable, Generic, TypeVar

from comunidata.core.exceptions import CircuitOpenError, ProviderResponseError
from comunidata.observability import metrics
from comunidata.observability.logger import get_logger

from .circuit_breaker import CircuitBreaker
from .retry import RetryPolicy

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class ResilientCall(Generic[T, R]):
    """
    Callable wrapper giving ``func`` retry-with-backoff and breaker semantics.

    Each attempt passes through the breaker, so failures feed its window and
    an opening breaker stops the retry loop at once. When the call cannot
    succeed (retries exhausted, a non-retryable error, or the breaker
    rejecting it) ``fallback(payload, error)`` produces the result instead.
    Nothing raised by ``func`` escapes ``__call__``.
    """

    def __init__(
        self,
        func: Callable[[T], R],
        *,
        name: str,
        retry_policy: RetryPolicy,
        breaker: CircuitBreaker,
        fallback: Callable[[T, Exception], R],
    ):
        self.func = func
        self.name = name
        self.retry_policy = retry_policy
        self.breaker = breaker
        self.fallback = fallback

    def __call__(self, payload: T) -> R:
        attempt = 0
        while True:
            attempt += 1
            try:
                result = self.breaker.call(self.func, payload)
            except CircuitOpenError as e:
                metrics.provider_calls_total.labels(provider=self.name, outcome="rejected").inc()
                logger.warning(
                    "Provider call short-circuited",
                    extra={"provider": self.name, "attempt": attempt},
                )
                return self._fall_back(payload, e)
            except ProviderResponseError as e:
                metrics.provider_calls_total.labels(provider=self.name, outcome="failure").inc()
                logger.error(
                    "Provider returned an unusable response",
                    extra={"provider": self.name, "error_message": str(e)},
                )
                return self._fall_back(payload, e)
            except Exception as e:
                metrics.provider_calls_total.labels(provider=self.name, outcome="failure").inc()
                if not self.retry_policy.should_retry(e, attempt):
                    logger.error(
                        "Provider call failed after all retries",
                        extra={
                            "provider": self.name,
                            "attempts": attempt,
                            "error_type": type(e).__name__,
                            "error_message": str(e),
                        },
                    )
                    return self._fall_back(payload, e)

                delay = self.retry_policy.wait(attempt)
                metrics.retries_total.labels(provider=self.name).inc()
                logger.warning(
                    "Provider call failed, retrying",
                    extra={
                        "provider": self.name,
                        "attempt": attempt,
                        "total_attempts": self.retry_policy.max_attempts,
                        "delay_seconds": round(delay, 3),
                        "error_message": str(e),
                    },
                )
            else:
                metrics.provider_calls_total.labels(provider=self.name, outcome="success").inc()
                if attempt > 1:
                    logger.info(
                        "Provider call succeeded after retry",
                        extra={"provider": self.name, "attempt": attempt},
                    )
                return result

    def _fall_back(self, payload: T, error: Exception) -> R:
        metrics.provider_calls_total.labels(provider=self.name, outcome="fallback").inc()
        return self.fallback(payload, error)
