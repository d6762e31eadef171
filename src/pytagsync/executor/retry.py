"""
Retry decorator for remote calls.

Design Pattern: Decorator
retry_on_rate_limit() wraps a single remote-call coroutine. Failures that
the classifier marks as rate-limited are retried with the policy's backoff;
anything else propagates immediately. When the policy runs out of attempts
the last error is re-raised unchanged.

Only the remote primitive is wrapped, so checks performed before the call
(such as duplicate-name lookups) run once per step, not once per attempt.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pytagsync.errors import is_rate_limit_error
from pytagsync.models import RetryPolicy

logger = logging.getLogger(__name__)

__all__ = ["Sleep", "retry_on_rate_limit"]

T = TypeVar("T")
Sleep = Callable[[float], Awaitable[Any]]


def retry_on_rate_limit(
    policy: RetryPolicy,
    *,
    sleep: Sleep = asyncio.sleep,
    classify: Callable[[BaseException], bool] = is_rate_limit_error,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Retry a coroutine function while it fails with rate-limit errors.

    Args:
        policy: Attempt count and backoff; exactly policy.max_attempts calls
            are made for a permanently rate-limited operation
        sleep: Awaitable sleep taking seconds (injectable for tests)
        classify: Decides whether an error is worth retrying

    Example:
        @retry_on_rate_limit(RetryPolicy.STANDARD)
        async def create(config):
            return await service.create(EntityKind.TAG, config)
    """

    def decorator(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            attempt = 0
            while True:
                attempt += 1
                try:
                    return await fn(*args, **kwargs)
                except Exception as e:
                    if not classify(e):
                        raise
                    delay_ms = policy.delay_for_attempt(attempt)
                    if delay_ms is None:
                        logger.error(
                            f"Rate limit: giving up after {attempt}/{policy.max_attempts} attempts: {e}"
                        )
                        raise
                    logger.warning(
                        f"Rate limit hit (attempt {attempt}/{policy.max_attempts}), "
                        f"retrying in {delay_ms}ms"
                    )
                    await sleep(delay_ms / 1000.0)

        return wrapper

    return decorator
