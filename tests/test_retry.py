"""Tests for the retry executor."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from repocheckout.errors import ConfigurationError, TransientNetworkError
from repocheckout.git import retry
from repocheckout.git.retry import RetryExecutor, RetryPolicy


class TestRetryPolicy:
    """Tests for policy validation."""

    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_attempts == 3
        assert policy.min_seconds == 10
        assert policy.max_seconds == 20

    def test_seconds_are_floored(self):
        policy = RetryPolicy(min_seconds=1.9, max_seconds=2.7)
        assert policy.min_seconds == 1
        assert policy.max_seconds == 2

    def test_min_greater_than_max_rejected(self):
        with pytest.raises(ConfigurationError):
            RetryPolicy(min_seconds=5, max_seconds=4)

    def test_zero_attempts_rejected(self):
        with pytest.raises(ConfigurationError):
            RetryPolicy(max_attempts=0)

    def test_sleep_amount_within_bounds(self):
        policy = RetryPolicy(min_seconds=3, max_seconds=5)
        for _ in range(50):
            assert 3 <= policy.sleep_amount() <= 5

    def test_equal_bounds_give_flat_wait(self):
        policy = RetryPolicy(min_seconds=7, max_seconds=7)
        assert policy.sleep_amount() == 7


class TestRetryExecutor:
    """Tests for attempt counting and error propagation."""

    @pytest.mark.asyncio
    async def test_success_on_first_attempt_does_not_wait(self):
        action = AsyncMock(return_value="done")
        with patch("repocheckout.git.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await RetryExecutor().execute(action)

        assert result == "done"
        assert action.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_success_on_second_attempt_waits_once(self):
        action = AsyncMock(side_effect=[TransientNetworkError("boom"), "done"])
        executor = RetryExecutor(RetryPolicy(max_attempts=3, min_seconds=10, max_seconds=20))
        with patch("repocheckout.git.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            result = await executor.execute(action)

        assert result == "done"
        assert action.await_count == 2
        assert sleep.await_count == 1
        waited = sleep.await_args.args[0]
        assert 10 <= waited <= 20

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        errors = [TransientNetworkError(f"failure {i}") for i in range(3)]
        action = AsyncMock(side_effect=errors)
        with patch("repocheckout.git.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(TransientNetworkError) as exc_info:
                await RetryExecutor().execute(action)

        assert action.await_count == 3
        assert sleep.await_count == 2
        # The last error surfaces unmodified
        assert exc_info.value is errors[-1]

    @pytest.mark.asyncio
    async def test_single_attempt_never_waits(self):
        action = AsyncMock(side_effect=ValueError("bad"))
        executor = RetryExecutor(RetryPolicy(max_attempts=1))
        with patch("repocheckout.git.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(ValueError):
                await executor.execute(action)

        assert action.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failures_are_logged(self, caplog):
        action = AsyncMock(side_effect=[TransientNetworkError("remote hung up"), 1])
        with patch("repocheckout.git.retry.asyncio.sleep", new=AsyncMock()):
            with caplog.at_level("INFO", logger="repocheckout.git.retry"):
                await RetryExecutor(RetryPolicy(min_seconds=1, max_seconds=1)).execute(action)

        assert "remote hung up" in caplog.text
        assert "Waiting 1 seconds before trying again" in caplog.text

    @pytest.mark.asyncio
    async def test_module_level_execute_uses_default_policy(self):
        action = AsyncMock(side_effect=[OSError("x"), OSError("y"), OSError("z")])
        with patch("repocheckout.git.retry.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(OSError, match="z"):
                await retry.execute(action)

        assert action.await_count == 3
        assert sleep.await_count == 2
