"""
Property-based tests for the Retry Manager module.

Uses Hypothesis to verify backoff delays, attempt counting and the
distinction between raised errors and reported failures.
"""

import asyncio

from hypothesis import given, settings
from hypothesis import strategies as st

from keepens.config import RetryConfig
from keepens.retry_manager import RetryManager


# Strategies for generating test data

@st.composite
def retry_config_strategy(draw) -> RetryConfig:
    """Generate valid RetryConfig objects."""
    base_delay = draw(st.floats(min_value=0.001, max_value=1.0))
    return RetryConfig(
        max_retries=draw(st.integers(min_value=0, max_value=5)),
        base_delay_seconds=base_delay,
        max_delay_seconds=draw(st.floats(min_value=base_delay, max_value=60.0)),
    )


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def run_async(coro):
    """Helper to run async code in tests."""
    return asyncio.new_event_loop().run_until_complete(coro)


class TestExponentialBackoff:
    """delay(n) = base_delay * 2^n, capped at max_delay."""

    @given(config=retry_config_strategy(), attempt=st.integers(min_value=0, max_value=20))
    @settings(max_examples=100)
    def test_delay_formula(self, config: RetryConfig, attempt: int) -> None:
        delay = RetryManager(config).calculate_delay(attempt)

        expected = min(config.base_delay_seconds * (2 ** attempt), config.max_delay_seconds)
        assert abs(delay - expected) < 1e-9
        assert delay <= config.max_delay_seconds

    @given(config=retry_config_strategy())
    @settings(max_examples=100)
    def test_delays_non_decreasing(self, config: RetryConfig) -> None:
        manager = RetryManager(config)
        delays = [manager.calculate_delay(n) for n in range(10)]
        assert delays == sorted(delays)


class TestRetryExhaustion:
    """Failed operations run max_retries + 1 times."""

    @given(config=retry_config_strategy())
    @settings(max_examples=100, deadline=None)
    def test_raising_operation_exhausts_attempts(self, config: RetryConfig) -> None:
        sleep = RecordingSleep()
        manager = RetryManager(config, sleep=sleep)
        calls = 0

        async def always_failing():
            nonlocal calls
            calls += 1
            raise ConnectionError("smtp unreachable")

        result = run_async(manager.execute_with_retry(always_failing))

        assert not result.success
        assert result.attempts == config.max_retries + 1 == calls
        assert isinstance(result.last_error, ConnectionError)
        assert result.errors == ["smtp unreachable"] * calls
        # No sleep after the final attempt
        assert sleep.delays == [manager.calculate_delay(n) for n in range(calls - 1)]

    @given(config=retry_config_strategy())
    @settings(max_examples=100, deadline=None)
    def test_reported_failure_is_retried(self, config: RetryConfig) -> None:
        manager = RetryManager(config, sleep=RecordingSleep())

        async def returns_false():
            return False

        result = run_async(manager.execute_with_retry(returns_false, is_success=bool))

        assert not result.success
        assert result.attempts == config.max_retries + 1
        assert result.last_error is None
        assert result.result is False
        assert result.errors == ["Operation reported failure"] * result.attempts


class TestRetrySuccess:
    """Success stops retrying immediately."""

    @given(
        config=retry_config_strategy(),
        failures=st.integers(min_value=0, max_value=5),
    )
    @settings(max_examples=100, deadline=None)
    def test_succeeds_after_transient_failures(self, config: RetryConfig, failures: int) -> None:
        sleep = RecordingSleep()
        manager = RetryManager(config, sleep=sleep)
        calls = 0

        async def flaky():
            nonlocal calls
            calls += 1
            if calls <= failures:
                raise TimeoutError("slow")
            return "sent"

        result = run_async(manager.execute_with_retry(flaky))

        if failures <= config.max_retries:
            assert result.success
            assert result.result == "sent"
            assert result.attempts == failures + 1
            assert len(result.errors) == failures
            assert len(sleep.delays) == failures
        else:
            assert not result.success
            assert result.attempts == config.max_retries + 1

    def test_non_retryable_error_stops(self) -> None:
        manager = RetryManager(RetryConfig(max_retries=5), sleep=RecordingSleep())
        calls = 0

        async def bad_request():
            nonlocal calls
            calls += 1
            raise ValueError("invalid recipient")

        result = run_async(manager.execute_with_retry(
            bad_request,
            is_retryable=lambda e: not isinstance(e, ValueError),
        ))

        assert not result.success
        assert calls == 1
        assert result.attempts == 1
