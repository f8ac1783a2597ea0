"""
Crucible Core - Resilience helpers for providers.

The engine never retries a handler; providers wrap their own calls to
external APIs with ``retry`` (transient failures) or ``poll`` (waiting for an
eventually-consistent remote object).
"""

from __future__ import annotations

import asyncio
import random
import time
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, TypeVar

from loguru import logger

T = TypeVar("T")


def backoff_delay(
    attempt: int,
    initial_delay: float,
    max_delay: float,
    exponential_base: float = 2.0,
    jitter: float = 0.0,
) -> float:
    """Delay before retry number ``attempt`` (1-based), with optional jitter."""
    delay = min(initial_delay * (exponential_base ** (attempt - 1)), max_delay)
    if jitter:
        delay += random.uniform(0, jitter * delay)
    return delay


def retry(
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 10.0,
    exponential_base: float = 2.0,
    jitter: float = 0.5,
    exceptions: tuple[type[Exception], ...] = (Exception,),
) -> Callable:
    """
    Retry an async provider call on transient errors.

    Only ``exceptions`` are retried; anything else propagates at once. The
    error of the last attempt is re-raised unchanged.

    Usage:
        @retry(max_attempts=5, exceptions=(RateLimitedError,))
        async def create_bucket(name: str) -> dict:
            ...
    """

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        name = getattr(func, "__qualname__", repr(func))

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            attempt = 1
            while True:
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_attempts:
                        logger.error(f"❌ {name} failed after {attempt} attempt(s): {e}")
                        raise
                    delay = backoff_delay(
                        attempt, initial_delay, max_delay, exponential_base, jitter
                    )
                    logger.warning(
                        f"🔄 {name} attempt {attempt}/{max_attempts} failed, "
                        f"retrying in {delay:.1f}s: {e}"
                    )
                    await asyncio.sleep(delay)
                    attempt += 1

        return wrapper

    return decorator


async def poll(
    description: str,
    fn: Callable[[], Awaitable[T]],
    predicate: Callable[[T], bool],
    initial_delay: float = 0.25,
    max_delay: float = 5.0,
    timeout: float = 1000.0,
) -> T:
    """
    Call ``fn`` until ``predicate`` accepts its result.

    The delay doubles after every miss up to ``max_delay``.

    Raises:
        TimeoutError: If ``timeout`` seconds elapse first.
    """
    deadline = time.monotonic() + timeout
    attempt = 1
    while True:
        result = await fn()
        if predicate(result):
            return result
        if time.monotonic() >= deadline:
            raise TimeoutError(f"Timed out waiting for {description} after {round(timeout)}s")
        await asyncio.sleep(backoff_delay(attempt, initial_delay, max_delay))
        # Past this the delay is pinned at max_delay anyway
        attempt = min(attempt + 1, 32)
