"""
Module: utils/retry.py
Description: Bounded retry with deterministic exponential backoff.

Wraps blob store and queue operations so that transient failures are
retried according to a RetryPolicy. Built on tenacity; the wait after a
failed attempt a is min(base_delay * multiplier ** (a - 1), max_delay).
Errors derived from NonRetryableError (bad properties, malformed
pointers, unsupported operations, unusable arguments) propagate
immediately; every other exception is retried.

Key Components:
- RetryPolicy: attempt budget and backoff parameters
- RetryExecutor: blocking executor, sleeps on the caller's thread
- AsyncRetryExecutor: same policy for coroutine functions

Dependencies: tenacity, pydantic
Author: Large Message Client Team
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from large_message.utils.errors import NonRetryableError, RetryExhaustedError
from large_message.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """
    Retry budget and backoff parameters.

    Attributes:
        max_attempts: Total attempts including the first one
        base_delay: Delay in seconds after the first failure
        multiplier: Growth factor applied per further failure
        max_delay: Upper bound for any single delay, in seconds
    """

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=1.0, ge=0)
    multiplier: float = Field(default=2.0, ge=1)
    max_delay: float = Field(default=30.0, ge=0)

    def delay_for(self, attempt: int) -> float:
        """Return the delay slept after failed attempt number `attempt` (1-based)."""
        return min(self.base_delay * self.multiplier ** (attempt - 1), self.max_delay)


def _log_before_sleep(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Operation failed, retrying",
        operation=getattr(retry_state.fn, "__name__", repr(retry_state.fn)),
        attempt=retry_state.attempt_number,
        delay_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        error=str(error),
        error_type=type(error).__name__,
    )


class _BaseRetryExecutor:
    def __init__(self, policy: Optional[RetryPolicy] = None):
        self.policy = policy or RetryPolicy()

    def _retry_kwargs(self) -> dict:
        return dict(
            stop=stop_after_attempt(self.policy.max_attempts),
            wait=wait_exponential(
                multiplier=self.policy.base_delay,
                exp_base=self.policy.multiplier,
                max=self.policy.max_delay,
            ),
            retry=retry_if_not_exception_type(NonRetryableError),
            before_sleep=_log_before_sleep,
            reraise=False,
        )

    def _exhausted(self, error: RetryError) -> RetryExhaustedError:
        last_error = error.last_attempt.exception()
        logger.error(
            "Operation failed after all retries",
            attempts=error.last_attempt.attempt_number,
            error=str(last_error),
            error_type=type(last_error).__name__,
        )
        return RetryExhaustedError(error.last_attempt.attempt_number, last_error)


class RetryExecutor(_BaseRetryExecutor):
    """
    Blocking retry executor.

    The executor holds no per-call state, so one instance can be shared by
    concurrent pipeline calls.

    Example:
        >>> executor = RetryExecutor(RetryPolicy(max_attempts=3, base_delay=0.1))
        >>> executor.execute(store.put, "blob-1", b"data")
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(policy)
        self._sleep = sleep

    def execute(self, operation: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """
        Run `operation(*args, **kwargs)` with retries.

        Raises:
            RetryExhaustedError: If every attempt failed
            NonRetryableError: Propagated unchanged from the first attempt
        """
        retrying = Retrying(sleep=self._sleep, **self._retry_kwargs())
        try:
            return retrying(operation, *args, **kwargs)
        except RetryError as e:
            raise self._exhausted(e) from e.last_attempt.exception()


class AsyncRetryExecutor(_BaseRetryExecutor):
    """Retry executor for coroutine functions; sleeps with asyncio.sleep."""

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        super().__init__(policy)
        self._sleep = sleep

    async def execute(
        self, operation: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
    ) -> T:
        """Await `operation(*args, **kwargs)` with retries."""
        retrying = AsyncRetrying(sleep=self._sleep, **self._retry_kwargs())
        try:
            return await retrying(operation, *args, **kwargs)
        except RetryError as e:
            raise self._exhausted(e) from e.last_attempt.exception()
