"""Wait for Codat push operations to reach a terminal state."""

import time
from typing import Awaitable, Callable

import structlog

from spa_sync.clients.base import APIError, RateLimitError
from spa_sync.clients.codat import CodatClient
from spa_sync.config import FlatSettings
from spa_sync.errors import TransientUpstreamError
from spa_sync.models import PollOutcome, PollResult, PushOperation, PushStatus
from spa_sync.retry import RetryExhaustedError, RetryPolicy, retry_async

logger = structlog.get_logger(__name__)

DEFAULT_POLL_POLICY = RetryPolicy(
    max_attempts=30,
    delay=2.0,
    initial_delay=2.0,
    max_elapsed=120.0,
)


class OperationPendingError(TransientUpstreamError):
    """The operation is still running, or not visible yet."""

    pass


def _is_pending(error: Exception) -> bool:
    return isinstance(error, (OperationPendingError, RateLimitError))


class PushOperationPoller:
    """Poll a push operation until it succeeds, fails or the budget runs out.

    A 404 from the status endpoint means Codat has not indexed the
    operation yet and is polled again. Any other API error ends the wait
    with a FAILED result.
    """

    def __init__(
        self,
        client: CodatClient,
        policy: RetryPolicy = DEFAULT_POLL_POLICY,
        *,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._client = client
        self.policy = policy
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_settings(cls, client: CodatClient, settings: FlatSettings) -> "PushOperationPoller":
        return cls(
            client,
            RetryPolicy(
                max_attempts=settings.push_max_attempts,
                delay=settings.push_poll_interval_seconds,
                initial_delay=settings.push_initial_delay_seconds,
                max_elapsed=settings.push_max_elapsed_seconds,
            ),
        )

    async def wait(self, company_id: str, push_operation_key: str) -> PollResult:
        """Block until the operation is terminal or the poll budget is spent."""
        log = logger.bind(company_id=company_id, push_operation_key=push_operation_key)

        async def poll_once() -> PushOperation:
            try:
                operation = await self._client.get_push_operation(company_id, push_operation_key)
            except APIError as e:
                if e.status_code == 404:
                    raise OperationPendingError("Push operation not visible yet") from e
                raise
            if not operation.is_terminal:
                raise OperationPendingError("Push operation pending")
            return operation

        try:
            operation = await retry_async(
                poll_once, self.policy, _is_pending, sleep=self._sleep, clock=self._clock
            )
        except RetryExhaustedError as e:
            log.warning("push_operation_timeout", attempts=e.attempts)
            return PollResult(PollOutcome.TIMEOUT, error=str(e))
        except APIError as e:
            log.warning("push_operation_poll_failed", error=str(e), status_code=e.status_code)
            return PollResult(PollOutcome.FAILED, error=e.error_text)

        if operation.status is PushStatus.SUCCESS:
            log.debug("push_operation_succeeded")
            return PollResult(PollOutcome.SUCCESS, operation=operation)

        error = operation.error_message or "Push operation failed"
        log.info("push_operation_failed", error=error)
        return PollResult(PollOutcome.FAILED, operation=operation, error=error)
