"""
Bounded fixed-backoff retry for store operations.

Only TransientStoreError is retried. Conflicts and every other error end the
run on the attempt that raised them.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from dsqlbench.db.errors import RetriesExhaustedError, TransientStoreError
from dsqlbench.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff: float = 0.5  # seconds between attempts

    def __post_init__(self):
        if isinstance(self.max_attempts, bool) or not isinstance(self.max_attempts, int):
            raise ValueError(f"max_attempts must be an integer, got {self.max_attempts!r}")
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.backoff < 0:
            raise ValueError(f"backoff must be >= 0, got {self.backoff}")


class RetryState(Enum):
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    FAILED_TERMINAL = "failed_terminal"
    FAILED_EXHAUSTED = "failed_exhausted"


class RetryExecutor:
    """
    Runs one operation under a RetryPolicy.

    ``attempts`` counts calls made so far, the first call being attempt 1.
    An executor is single-use; create one per operation.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        operation_name: str = "operation",
        sleep: Sleep = asyncio.sleep,
    ):
        self.policy = policy
        self.operation_name = operation_name
        self.state = RetryState.ATTEMPTING
        self.attempts = 0
        self.last_error: BaseException | None = None
        self._sleep = sleep

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        if self.attempts:
            raise RuntimeError("RetryExecutor instances cannot be reused")

        while self.state is RetryState.ATTEMPTING:
            self.attempts += 1
            try:
                result = await operation()

            except TransientStoreError as e:
                self.last_error = e
                if self.attempts >= self.policy.max_attempts:
                    self.state = RetryState.FAILED_EXHAUSTED
                    break

                logger.warning(
                    "Database operation failed, retrying",
                    operation=self.operation_name,
                    attempt=self.attempts,
                    max_attempts=self.policy.max_attempts,
                    delay=self.policy.backoff,
                    error=str(e),
                )
                await self._sleep(self.policy.backoff)

            except Exception as e:
                self.last_error = e
                self.state = RetryState.FAILED_TERMINAL
                logger.error(
                    "Database operation failed with permanent error",
                    operation=self.operation_name,
                    attempt=self.attempts,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

            else:
                self.state = RetryState.SUCCEEDED
                return result

        logger.error(
            "Database operation failed after all retries",
            operation=self.operation_name,
            attempts=self.attempts,
            error=str(self.last_error),
        )
        raise RetriesExhaustedError(
            self.operation_name, self.attempts, self.last_error
        ) from self.last_error


async def execute_with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    backoff: float = 0.5,
    *,
    operation_name: str = "operation",
    sleep: Sleep = asyncio.sleep,
) -> T:
    """
    Run ``operation`` until it succeeds, fails terminally or runs out of attempts.

    Args:
        operation: Zero-argument coroutine function performing one attempt
        max_attempts: Total attempts allowed, including the first
        backoff: Fixed delay in seconds between attempts
        operation_name: Name used in logs and errors

    Returns:
        Whatever the successful attempt returned

    Raises:
        RetriesExhaustedError: Every attempt raised TransientStoreError
        Exception: Any non-transient error, re-raised on the attempt it occurred
    """
    policy = RetryPolicy(max_attempts=max_attempts, backoff=backoff)
    executor = RetryExecutor(policy, operation_name=operation_name, sleep=sleep)
    return await executor.run(operation)
