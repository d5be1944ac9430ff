"""
Unit tests for retry, circuit breaker and the resilient call wrapper.
"""

import pytest

from comunidata.core.config import CircuitBreakerConfig, RetryConfig
from comunidata.core.exceptions import CircuitOpenError, ValidationResponseError
from comunidata.core.resilience import CircuitBreaker, CircuitBreakerState, ResilientCall, RetryPolicy


pytestmark = pytest.mark.unit


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def boom(_):
    raise ConnectionError("down")


class TestRetryPolicy:
    def test_exponential_delays_are_capped(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=5.0, exponential_base=2.0, jitter=False)
        assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]

    def test_jitter_stays_within_ten_percent(self):
        policy = RetryPolicy(base_delay=1.0, jitter=True)
        for _ in range(50):
            assert 0.9 <= policy.delay_for(1) <= 1.1

    def test_should_retry_respects_attempt_budget(self):
        policy = RetryPolicy(max_attempts=3)
        assert policy.should_retry(ConnectionError(), 1)
        assert policy.should_retry(ConnectionError(), 2)
        assert not policy.should_retry(ConnectionError(), 3)

    def test_structural_errors_never_retried(self):
        policy = RetryPolicy(max_attempts=5)
        assert not policy.should_retry(ValidationResponseError("bad json"), 1)
        assert not policy.should_retry(CircuitOpenError("validation"), 1)

    def test_from_config(self):
        policy = RetryPolicy.from_config(RetryConfig(max_attempts=4, base_delay=0.5, jitter=False))
        assert policy.max_attempts == 4
        assert policy.delay_for(1) == 0.5

    def test_invalid_attempts_rejected(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


class TestCircuitBreaker:
    """Tests for the sliding-window breaker"""

    def make_breaker(self, clock, **kwargs):
        params = {"sliding_window_size": 4, "minimum_calls": 4, "open_timeout": 30.0, "clock": clock}
        params.update(kwargs)
        return CircuitBreaker("test", **params)

    def test_opens_at_failure_rate_threshold(self):
        breaker = self.make_breaker(FakeClock())
        breaker.record_success()
        breaker.record_success()
        breaker.record_failure()
        assert breaker.state is CircuitBreakerState.CLOSED

        breaker.record_failure()

        assert breaker.state is CircuitBreakerState.OPEN
        with pytest.raises(CircuitOpenError):
            breaker.acquire()

    def test_not_evaluated_below_minimum_calls(self):
        breaker = self.make_breaker(FakeClock())
        for _ in range(3):
            breaker.record_failure()
        assert breaker.state is CircuitBreakerState.CLOSED

    def test_half_open_probe_success_closes(self):
        clock = FakeClock()
        breaker = self.make_breaker(clock)
        breaker.force_open()

        clock.advance(30.0)
        assert breaker.state is CircuitBreakerState.HALF_OPEN

        assert breaker.call(lambda: "ok") == "ok"
        assert breaker.state is CircuitBreakerState.CLOSED
        assert breaker.stats()["recorded_calls"] == 0

    def test_half_open_probe_failure_reopens(self):
        clock = FakeClock()
        breaker = self.make_breaker(clock)
        breaker.force_open()
        clock.advance(31.0)

        with pytest.raises(ConnectionError):
            breaker.call(boom, None)

        assert breaker.state is CircuitBreakerState.OPEN

    def test_half_open_limits_concurrent_probes(self):
        clock = FakeClock()
        breaker = self.make_breaker(clock)
        breaker.force_open()
        clock.advance(30.0)

        breaker.acquire()
        with pytest.raises(CircuitOpenError):
            breaker.acquire()

    def test_slow_call_from_closed_state_cannot_close_half_open_breaker(self):
        clock = FakeClock()
        breaker = self.make_breaker(clock, sliding_window_size=2, minimum_calls=2)

        slow = breaker.acquire()
        breaker.record_failure(breaker.acquire())
        breaker.record_failure(breaker.acquire())
        assert breaker.state is CircuitBreakerState.OPEN

        clock.advance(30.0)
        trial = breaker.acquire()
        assert trial.state is CircuitBreakerState.HALF_OPEN

        breaker.record_success(slow)
        assert breaker.state is CircuitBreakerState.HALF_OPEN

        breaker.record_success(trial)
        assert breaker.state is CircuitBreakerState.CLOSED

    def test_slow_failure_from_closed_state_cannot_reopen_breaker(self):
        clock = FakeClock()
        breaker = self.make_breaker(clock, sliding_window_size=2, minimum_calls=2)

        slow = breaker.acquire()
        breaker.force_open()
        clock.advance(30.0)
        trial = breaker.acquire()

        breaker.record_failure(slow)
        assert breaker.state is CircuitBreakerState.HALF_OPEN

        breaker.record_failure(trial)
        assert breaker.state is CircuitBreakerState.OPEN

    def test_outcome_after_forced_close_is_dropped(self):
        breaker = self.make_breaker(FakeClock(), sliding_window_size=2, minimum_calls=2)
        before = breaker.acquire()
        breaker.force_close()

        breaker.record_failure(before)

        assert breaker.stats()["recorded_calls"] == 0

    def test_ignored_exceptions_count_as_success(self):
        breaker = self.make_breaker(FakeClock())

        def unparseable():
            raise ValidationResponseError("not json")

        for _ in range(4):
            with pytest.raises(ValidationResponseError):
                breaker.call(unparseable)

        assert breaker.state is CircuitBreakerState.CLOSED
        assert breaker.stats()["failure_rate"] == 0.0

    def test_force_close_and_stats(self):
        breaker = self.make_breaker(FakeClock())
        breaker.force_open()
        assert breaker.stats()["state"] == "open"
        breaker.force_close()
        assert breaker.stats()["state"] == "closed"

    def test_from_config(self):
        breaker = CircuitBreaker.from_config("cfg", CircuitBreakerConfig(sliding_window_size=6, minimum_calls=3))
        assert breaker.sliding_window_size == 6
        assert breaker.minimum_calls == 3


class TestResilientCall:
    """Tests for retry + breaker + fallback composition"""

    def no_wait(self, attempts=3):
        return RetryPolicy(max_attempts=attempts, base_delay=0.0, jitter=False, sleep=lambda _: None)

    def test_success_passes_through(self):
        call = ResilientCall(
            lambda x: x * 2,
            name="double",
            retry_policy=self.no_wait(),
            breaker=CircuitBreaker("double"),
            fallback=lambda x, e: -1,
        )
        assert call(21) == 42

    def test_transient_failure_is_retried(self):
        attempts = []

        def flaky(x):
            attempts.append(x)
            if len(attempts) < 3:
                raise ConnectionError("blip")
            return "ok"

        call = ResilientCall(
            flaky,
            name="flaky",
            retry_policy=self.no_wait(3),
            breaker=CircuitBreaker("flaky", minimum_calls=100, sliding_window_size=100),
            fallback=lambda x, e: "fallback",
        )
        assert call("payload") == "ok"
        assert len(attempts) == 3

    def test_exhausted_retries_use_fallback(self):
        seen = []
        call = ResilientCall(
            boom,
            name="boom",
            retry_policy=self.no_wait(2),
            breaker=CircuitBreaker("boom", minimum_calls=100, sliding_window_size=100),
            fallback=lambda x, e: seen.append((x, e)) or "fallback",
        )

        assert call("p") == "fallback"
        assert seen[0][0] == "p"
        assert isinstance(seen[0][1], ConnectionError)

    def test_structural_error_not_retried(self):
        calls = []

        def unparseable(x):
            calls.append(x)
            raise ValidationResponseError("garbage")

        call = ResilientCall(
            unparseable,
            name="validation",
            retry_policy=self.no_wait(3),
            breaker=CircuitBreaker("validation"),
            fallback=lambda x, e: type(e).__name__,
        )
        assert call("p") == "ValidationResponseError"
        assert len(calls) == 1

    def test_open_breaker_short_circuits_without_calling(self):
        calls = []
        breaker = CircuitBreaker("open")
        breaker.force_open()

        call = ResilientCall(
            lambda x: calls.append(x),
            name="open",
            retry_policy=self.no_wait(),
            breaker=breaker,
            fallback=lambda x, e: e,
        )
        result = call("p")

        assert isinstance(result, CircuitOpenError)
        assert calls == []

    def test_breaker_opening_mid_retry_stops_loop(self):
        calls = []

        def down(x):
            calls.append(x)
            raise ConnectionError("down")

        breaker = CircuitBreaker("mid", sliding_window_size=2, minimum_calls=2)
        call = ResilientCall(
            down,
            name="mid",
            retry_policy=self.no_wait(5),
            breaker=breaker,
            fallback=lambda x, e: e,
        )

        result = call("p")

        assert isinstance(result, CircuitOpenError)
        assert len(calls) == 2
