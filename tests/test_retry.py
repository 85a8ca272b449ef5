"""Tests for the retry primitive."""

from unittest.mock import AsyncMock

import pytest

from spa_sync.errors import TransientUpstreamError
from spa_sync.retry import RetryExhaustedError, RetryPolicy, retry_async


class Flaky:
    """Fails with the given errors, then returns ``result``."""

    def __init__(self, errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


def retry_transient(error):
    return isinstance(error, TransientUpstreamError)


class TestRetryAsync:
    """Tests for retry_async."""

    @pytest.mark.asyncio
    async def test_returns_after_transient_errors(self):
        operation = Flaky([TransientUpstreamError("busy"), TransientUpstreamError("busy")])
        sleep = AsyncMock()

        result = await retry_async(
            operation, RetryPolicy(max_attempts=5, delay=1.5), retry_transient, sleep=sleep
        )

        assert result == "ok"
        assert operation.calls == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.5, 1.5]

    @pytest.mark.asyncio
    async def test_other_errors_propagate_immediately(self):
        operation = Flaky([KeyError("boom")])
        sleep = AsyncMock()

        with pytest.raises(KeyError):
            await retry_async(
                operation, RetryPolicy(max_attempts=5, delay=1.0), retry_transient, sleep=sleep
            )

        assert operation.calls == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        last = TransientUpstreamError("still busy")
        operation = Flaky([TransientUpstreamError("busy")] * 2 + [last])

        with pytest.raises(RetryExhaustedError) as exc_info:
            await retry_async(
                operation,
                RetryPolicy(max_attempts=3, delay=0.0),
                retry_transient,
                sleep=AsyncMock(),
            )

        assert operation.calls == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.last_error is last

    @pytest.mark.asyncio
    async def test_exhaustion_is_transient(self):
        """Callers that retry transient errors can treat exhaustion the same way."""
        with pytest.raises(TransientUpstreamError):
            await retry_async(
                Flaky([TransientUpstreamError("busy")]),
                RetryPolicy(max_attempts=1, delay=0.0),
                retry_transient,
            )

    @pytest.mark.asyncio
    async def test_initial_delay_and_backoff(self):
        sleep = AsyncMock()
        operation = Flaky([TransientUpstreamError("busy")] * 3)

        await retry_async(
            operation,
            RetryPolicy(max_attempts=4, delay=1.0, initial_delay=2.0, backoff=2.0),
            retry_transient,
            sleep=sleep,
        )

        assert [c.args[0] for c in sleep.await_args_list] == [2.0, 1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_elapsed_budget(self):
        """Stops once the next pause would overrun max_elapsed."""
        now = [0.0]

        async def sleep(seconds):
            now[0] += seconds

        operation = Flaky([TransientUpstreamError("busy")] * 10)

        with pytest.raises(RetryExhaustedError) as exc_info:
            await retry_async(
                operation,
                RetryPolicy(max_attempts=100, delay=10.0, max_elapsed=25.0),
                retry_transient,
                sleep=sleep,
                clock=lambda: now[0],
            )

        assert operation.calls == 3
        assert exc_info.value.attempts == 3
