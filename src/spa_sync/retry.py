"""Bounded retry primitive shared by pagination and push polling."""

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import structlog

from spa_sync.errors import TransientUpstreamError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How long and how often to retry.

    Attributes:
        max_attempts: Total calls allowed, including the first.
        delay: Pause between attempts, in seconds.
        initial_delay: Pause before the first attempt.
        max_elapsed: Give up once this many seconds have passed, if set.
        backoff: Multiplier applied to ``delay`` after every retry.
    """

    max_attempts: int
    delay: float
    initial_delay: float = 0.0
    max_elapsed: float | None = None
    backoff: float = 1.0


class RetryExhaustedError(TransientUpstreamError):
    """Retry budget ran out while the error was still retryable."""

    def __init__(self, message: str, attempts: int, last_error: BaseException | None):
        super().__init__(message, details={"attempts": attempts})
        self.attempts = attempts
        self.last_error = last_error


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    retry_on: Callable[[Exception], bool],
    *,
    sleep: Callable[[float], Awaitable[None]] | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """Call ``operation`` until it returns or raises a non-retryable error.

    Raises:
        RetryExhaustedError: Attempts or elapsed time ran out.
    """
    pause = sleep or asyncio.sleep
    started = clock()
    if policy.initial_delay > 0:
        await pause(policy.initial_delay)

    delay = policy.delay
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as e:
            if not retry_on(e):
                raise
            last_error = e

        if attempt >= policy.max_attempts:
            raise RetryExhaustedError(
                f"Gave up after {attempt} attempts: {last_error}", attempt, last_error
            )
        if policy.max_elapsed is not None and clock() - started + delay > policy.max_elapsed:
            raise RetryExhaustedError(
                f"Gave up after {policy.max_elapsed:g}s: {last_error}", attempt, last_error
            )

        logger.debug("retry_scheduled", attempt=attempt, delay=delay, error=str(last_error))
        await pause(delay)
        delay *= policy.backoff
