"""
Bounded retry with exponential backoff for enrichment calls (tenacity).

Only transient failures are retried (see errors.is_retryable). A 429 with
a retry-after hint waits at least that long, capped at max_delay.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)
from tenacity.wait import wait_base

from ideaforge.config import Settings
from ideaforge.errors import RateLimitError, is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy(BaseModel):
    max_retries: int = 3
    initial_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 30.0
    jitter: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicy:
        return cls(
            max_retries=settings.retry_max_attempts,
            initial_delay=settings.retry_initial_delay_seconds,
            multiplier=settings.retry_multiplier,
            max_delay=settings.retry_max_delay_seconds,
            jitter=settings.retry_jitter,
        )

    def wait_strategy(self) -> wait_base:
        backoff: wait_base = wait_exponential(
            multiplier=self.initial_delay,
            exp_base=self.multiplier,
            max=self.max_delay,
        )
        if self.jitter and self.initial_delay > 0:
            backoff = backoff + wait_random(0, self.initial_delay * 0.1)
        return wait_retry_after(backoff, self.max_delay)


class wait_retry_after(wait_base):
    """Honor RateLimitError.retry_after when it asks for more than the backoff."""

    def __init__(self, backoff: wait_base, max_delay: float):
        self.backoff = backoff
        self.max_delay = max_delay

    def __call__(self, retry_state: RetryCallState) -> float:
        delay = self.backoff(retry_state)
        outcome = retry_state.outcome
        exc = outcome.exception() if outcome is not None and outcome.failed else None
        if isinstance(exc, RateLimitError) and exc.retry_after:
            delay = max(delay, min(float(exc.retry_after), self.max_delay))
        return delay


def _log_before_sleep(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    delay = retry_state.next_action.sleep if retry_state.next_action else 0
    logger.warning(
        f"[RETRY] Attempt {retry_state.attempt_number} failed ({exc}); "
        f"retrying in {delay:.2f}s"
    )


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> tuple[T, int]:
    """
    Await *fn* until it succeeds, fails permanently or runs out of retries.
    Returns (result, attempts). The last exception propagates unchanged.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_retries + 1),
        wait=policy.wait_strategy(),
        retry=retry_if_exception(is_retryable),
        before_sleep=_log_before_sleep,
        reraise=True,
        sleep=sleep,
    )
    attempts = 0
    async for attempt in retrying:
        with attempt:
            attempts = attempt.retry_state.attempt_number
            result = await fn()
    return result, attempts
