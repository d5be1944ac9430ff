"""Retry policy with exponential backoff for external provider calls."""

import random
import time
from typing import Callable

from comunidata.core.config import RetryConfig
from comunidata.core.exceptions import CircuitOpenError, ProviderResponseError


class RetryPolicy:
    """How many times to call, how long to wait between calls, and on what."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        retry_on: tuple[type[BaseException], ...] = (Exception,),
        never_retry: tuple[type[BaseException], ...] = (ProviderResponseError, CircuitOpenError),
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Configure a retry policy.

        Parameters
        - max_attempts: Total calls including the first one
        - base_delay: Seconds before the first retry
        - max_delay: Upper bound for any single wait
        - exponential_base: Growth factor between waits
        - jitter: Spread waits by +/-10% to avoid synchronized retries
        - retry_on: Exception types that trigger another attempt
        - never_retry: Exception types that end the loop immediately
        - sleep: Waiting function (replaced in tests)
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retry_on = retry_on
        self.never_retry = never_retry
        self.sleep = sleep

    @classmethod
    def from_config(cls, config: RetryConfig, **overrides) -> "RetryPolicy":
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay,
            max_delay=config.max_delay,
            exponential_base=config.exponential_base,
            jitter=config.jitter,
            **overrides,
        )

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        """Whether a failure on ``attempt`` (1-based) deserves another call."""
        if attempt >= self.max_attempts:
            return False
        if isinstance(error, self.never_retry):
            return False
        return isinstance(error, self.retry_on)

    def delay_for(self, attempt: int) -> float:
        """Wait before the call following ``attempt`` (1-based)."""
        delay = min(self.base_delay * (self.exponential_base ** (attempt - 1)), self.max_delay)
        if self.jitter and delay > 0:
            spread = delay * 0.1
            delay += random.uniform(-spread, spread)
        return max(delay, 0.0)

    def wait(self, attempt: int) -> float:
        delay = self.delay_for(attempt)
        if delay > 0:
            self.sleep(delay)
        return delay
