"""Bounded retry policy shared by search, generation and lookup call sites."""
from __future__ import annotations

from typing import Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_none,
)

from noboox.services.logger import logger


def _log_retry(operation: str) -> Callable[[RetryCallState], None]:
    def before_sleep(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        logger.warning(
            f"RETRY: {operation} attempt {state.attempt_number} failed "
            f"({type(exc).__name__}: {exc}); retrying"
        )

    return before_sleep


def retrying(
    operation: str,
    *,
    max_attempts: int,
    retry_on: Callable[[BaseException], bool],
    base_delay: float = 1.0,
    max_delay: float = 8.0,
) -> AsyncRetrying:
    """Build an ``AsyncRetrying`` that re-raises the last error once exhausted.

    Usage::

        async for attempt in retrying("search", max_attempts=2, retry_on=is_transient):
            with attempt:
                ...
    """
    wait = (
        wait_exponential(multiplier=base_delay, min=base_delay, max=max_delay)
        if base_delay > 0
        else wait_none()
    )
    return AsyncRetrying(
        stop=stop_after_attempt(max(int(max_attempts), 1)),
        wait=wait,
        retry=retry_if_exception(retry_on),
        before_sleep=_log_retry(operation),
        reraise=True,
    )
