"""Retry with exponential backoff and jitter for async operations.

The attempt loop is driven by ``tenacity``; this module supplies the
backoff formula and the error classification.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import structlog
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt

from jira_confluence.core.errors import get_status_code, is_network_error
from jira_confluence.exceptions import RETRYABLE_STATUS_CODES

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

T = TypeVar("T")

ShouldRetry = Callable[[BaseException, int], bool]
OnRetry = Callable[[BaseException, int, float], None]

JITTER_FRACTION = 0.3


def _always_retry(error: BaseException, attempt: int) -> bool:
    return True


@dataclass(frozen=True)
class RetryOptions:
    """Retry policy. Delays are in seconds."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    should_retry: ShouldRetry = _always_retry
    on_retry: OnRetry | None = None
    attempt_timeout: float | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            msg = f"max_attempts must be at least 1, got {self.max_attempts}"
            raise ValueError(msg)
        if self.base_delay < 0 or self.max_delay < 0:
            msg = "base_delay and max_delay must be non-negative"
            raise ValueError(msg)


def compute_backoff(
    attempt: int,
    base_delay: float,
    max_delay: float,
    jitter: float | None = None,
) -> float:
    """Return the delay before the attempt following *attempt*.

    ``base_delay * 2**(attempt - 1)`` plus up to 30% jitter, capped at
    ``max_delay``. Pass ``jitter`` in ``[0, 1)`` to make the result
    deterministic.
    """
    exponential = base_delay * 2 ** (attempt - 1)
    if jitter is None:
        jitter = random.random()
    return min(exponential + jitter * JITTER_FRACTION * exponential, max_delay)


def is_retryable_status_code(status: int | None) -> bool:
    return status in RETRYABLE_STATUS_CODES


def is_retryable_error(error: BaseException) -> bool:
    """Network failures and 429/502/503/504 responses are worth retrying."""
    if is_network_error(error):
        return True
    return is_retryable_status_code(get_status_code(error))


def default_should_retry() -> ShouldRetry:
    """Predicate suitable for ``RetryOptions.should_retry``."""

    def _should_retry(error: BaseException, attempt: int) -> bool:
        return is_retryable_error(error)

    return _should_retry


async def _sleep(delay: float) -> None:
    await asyncio.sleep(delay)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    options: RetryOptions | None = None,
) -> T:
    """Run *operation* until it succeeds or the retry policy gives up.

    The error from the final attempt is re-raised unchanged.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt.
        options: Retry policy; defaults to ``RetryOptions()``.

    Returns:
        The value of the first successful attempt.
    """
    opts = options or RetryOptions()

    def _retry(state: RetryCallState) -> bool:
        error = state.outcome.exception() if state.outcome else None
        if not isinstance(error, Exception):
            return False
        if state.attempt_number >= opts.max_attempts:
            return False
        return opts.should_retry(error, state.attempt_number)

    def _wait(state: RetryCallState) -> float:
        return compute_backoff(state.attempt_number, opts.base_delay, opts.max_delay)

    def _before_sleep(state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome else None
        delay = state.next_action.sleep if state.next_action else 0.0
        if opts.on_retry is not None and error is not None:
            opts.on_retry(error, state.attempt_number, delay)
        logger.debug(
            "retry_scheduled",
            attempt=state.attempt_number,
            max_attempts=opts.max_attempts,
            delay=round(delay, 3),
            error=str(error),
        )

    async def _attempt() -> T:
        if opts.attempt_timeout is not None:
            return await asyncio.wait_for(operation(), timeout=opts.attempt_timeout)
        return await operation()

    retrying = AsyncRetrying(
        stop=stop_after_attempt(opts.max_attempts),
        wait=_wait,
        retry=_retry,
        before_sleep=_before_sleep,
        sleep=_sleep,
        reraise=True,
    )
    return await retrying(_attempt)
