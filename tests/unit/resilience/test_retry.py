"""
Unit tests for Retry.

Tests backoff calculation, attempt limits and error propagation.

Usage:
    pytest tests/unit/resilience/test_retry.py
"""

import pytest

from brale_core.exceptions import BraleError, ErrorKind
from brale_core.resilience import Retry, RetryConfig, retry, with_retry


def _network_error() -> BraleError:
    return BraleError.network("connection reset", cause=ConnectionError("reset"))


class TestRetry:
    """Test Retry execution."""

    # ================================================================
    # Attempts and propagation
    # ================================================================

    async def test_always_failing_operation_exhausts_attempts(self):
        """Test 3 attempts with 0.1s, x2 backoff and original error."""
        error = _network_error()
        calls = 0
        delays = []

        async def always_fails():
            nonlocal calls
            calls += 1
            raise error

        config = RetryConfig(
            max_attempts=3,
            initial_delay=0.1,
            backoff_multiplier=2.0,
            jitter=0.1,
            on_retry=lambda e, attempt, delay: delays.append(delay),
        )

        with pytest.raises(BraleError) as exc_info:
            await retry(always_fails, config)

        assert calls == 3
        assert exc_info.value is error
        assert len(delays) == 2
        assert 0.09 <= delays[0] <= 0.11
        assert 0.18 <= delays[1] <= 0.22

    async def test_succeeds_after_transient_failures(self):
        """Test result of the first successful attempt is returned."""
        calls = 0

        async def flaky():
            nonlocal calls
            calls += 1
            if calls < 3:
                raise _network_error()
            return "ok"

        result = await Retry(
            RetryConfig(max_attempts=5, initial_delay=0.001, jitter=0.0)
        ).execute(flaky)

        assert result == "ok"
        assert calls == 3

    async def test_non_retryable_error_not_retried(self):
        """Test validation errors fail on the first attempt."""
        calls = 0

        async def invalid():
            nonlocal calls
            calls += 1
            raise BraleError.validation("bad amount")

        with pytest.raises(BraleError) as exc_info:
            await retry(invalid, RetryConfig(initial_delay=0.001))

        assert calls == 1
        assert exc_info.value.kind == ErrorKind.VALIDATION

    async def test_custom_should_retry_predicate(self):
        """Test should_retry overrides default classification."""
        calls = 0

        async def fails():
            nonlocal calls
            calls += 1
            raise ValueError("boom")

        config = RetryConfig(
            max_attempts=4,
            initial_delay=0.001,
            should_retry=lambda e, attempt: isinstance(e, ValueError),
        )

        with pytest.raises(ValueError):
            await retry(fails, config)

        assert calls == 4

    async def test_passes_arguments_through(self):
        """Test positional and keyword arguments reach the operation."""

        async def add(a, b=0):
            return a + b

        assert await Retry().execute(add, 2, b=3) == 5

    async def test_with_retry_preserves_metadata(self):
        """Test composed function keeps the wrapped function's name."""

        async def fetch_account(account_id):
            return account_id

        wrapped = with_retry(fetch_account, RetryConfig(max_attempts=2))

        assert wrapped.__name__ == "fetch_account"
        assert await wrapped("acc_1") == "acc_1"

    # ================================================================
    # Delay calculation
    # ================================================================

    def test_delay_grows_exponentially_without_jitter(self):
        """Test delay doubles per attempt."""
        handler = Retry(RetryConfig(initial_delay=1.0, jitter=0.0))

        assert handler.calculate_delay(1) == 1.0
        assert handler.calculate_delay(2) == 2.0
        assert handler.calculate_delay(3) == 4.0

    def test_delay_capped_at_max_delay(self):
        """Test delay never exceeds max_delay."""
        handler = Retry(RetryConfig(initial_delay=1.0, max_delay=5.0, jitter=0.0))

        assert handler.calculate_delay(10) == 5.0

    def test_jitter_stays_within_fraction(self):
        """Test jittered delay stays within +/- jitter fraction."""
        handler = Retry(RetryConfig(initial_delay=1.0, jitter=0.5))

        for _ in range(50):
            assert 0.5 <= handler.calculate_delay(1) <= 1.5

    # ================================================================
    # Configuration
    # ================================================================

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_attempts": 0},
            {"initial_delay": -1.0},
            {"backoff_multiplier": 0.5},
            {"jitter": 1.5},
        ],
    )
    def test_invalid_config_rejected(self, kwargs):
        """Test nonsensical settings raise ValueError."""
        with pytest.raises(ValueError):
            Retry(RetryConfig(**kwargs))
