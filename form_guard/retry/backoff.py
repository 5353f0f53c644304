"""
Retry Backoff
=============
Bounded exponential backoff for transient storage failures.
"""

import asyncio
import random
from typing import Awaitable, Callable, Iterator, Optional, Tuple, Type, TypeVar

import structlog

from .exceptions import RetryExhausted

logger = structlog.get_logger(__name__)

T = TypeVar('T')


def backoff_delays(
    attempts: int,
    base_delay: float = 0.05,
    max_delay: float = 1.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
) -> Iterator[float]:
    """
    Yield the sleep before each retry: ``attempts - 1`` values.

    With jitter each delay is scaled by a random factor in [0.5, 1.5).
    """
    for retry in range(attempts - 1):
        delay = min(base_delay * exponential_base ** retry, max_delay)
        yield delay * random.uniform(0.5, 1.5) if jitter else delay


async def retry_with_backoff(
    func: Callable[..., Awaitable[T]],
    *args,
    max_attempts: int = 3,
    base_delay: float = 0.05,
    max_delay: float = 1.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retryable_exceptions: Optional[Tuple[Type[Exception], ...]] = None,
    **kwargs,
) -> T:
    """
    Await ``func(*args, **kwargs)``, retrying retryable errors.

    Delays default to milliseconds since callers sit on the request path.
    Errors outside ``retryable_exceptions`` propagate immediately.

    Raises:
        RetryExhausted: After ``max_attempts`` retryable failures
    """
    retryable = retryable_exceptions or (Exception,)
    operation = getattr(func, "__name__", repr(func))
    delays = backoff_delays(max_attempts, base_delay, max_delay, exponential_base, jitter)
    attempt = 0

    while True:
        attempt += 1
        try:
            return await func(*args, **kwargs)
        except retryable as e:
            delay = next(delays, None)
            if delay is None:
                logger.error("retry_exhausted", operation=operation, attempts=attempt, error=str(e))
                raise RetryExhausted(
                    f"{operation} failed after {attempt} attempts: {e}",
                    last_exception=e,
                ) from e

            logger.warning(
                "retrying_after_failure",
                operation=operation,
                attempt=attempt,
                delay=round(delay, 4),
                error=str(e),
            )
            await asyncio.sleep(delay)
