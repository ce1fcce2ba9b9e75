"""Tests for retry and backoff helpers."""

import pytest

from healthlog.core.retry import RetryConfig, backoff_delay_ms, retry_with_backoff

pytestmark = pytest.mark.asyncio


class TestBackoffDelay:
    """Tests for queue backoff delays."""

    async def test_doubles_per_attempt(self):
        assert [backoff_delay_ms(n, 2000) for n in (1, 2, 3)] == [2000, 4000, 8000]

    async def test_no_attempts_no_delay(self):
        assert backoff_delay_ms(0, 2000) == 0


class TestRetryWithBackoff:
    """Tests for retry_with_backoff."""

    async def test_returns_after_transient_failures(self):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("db not ready")
            return "ok"

        result = await retry_with_backoff(
            flaky, config=RetryConfig(max_attempts=3, backoff_base=0, jitter=False)
        )

        assert result == "ok"
        assert len(calls) == 3

    async def test_raises_when_exhausted(self):
        async def broken():
            raise ConnectionError("db down")

        with pytest.raises(ConnectionError, match="db down"):
            await retry_with_backoff(broken, config=RetryConfig(max_attempts=2, backoff_base=0))

    async def test_non_retryable_error_is_raised_immediately(self):
        calls = []

        async def invalid():
            calls.append(1)
            raise ValueError("bad input")

        config = RetryConfig(max_attempts=3, backoff_base=0, retryable_exceptions=(ConnectionError,))
        with pytest.raises(ValueError):
            await retry_with_backoff(invalid, config=config)

        assert len(calls) == 1
