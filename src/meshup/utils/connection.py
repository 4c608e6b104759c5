"""Retry helper for reaching the daemon's socket.

Only connection establishment is retried: a daemon that is still starting
refuses connections for a moment. Requests that reached the daemon are never
retried.
"""
import logging
from functools import wraps
from typing import Any, Callable, TypeVar

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# Socket-level failures worth another attempt
RETRYABLE_EXCEPTIONS = (
    ConnectionRefusedError,
    FileNotFoundError,
    httpx.ConnectError,
)


def with_retry(
    max_attempts: int = 3,
    min_wait: float = 0.2,
    max_wait: float = 2,
    exceptions: tuple = RETRYABLE_EXCEPTIONS,
) -> Callable:
    """Decorator factory for retrying a coroutine with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts
        min_wait: Minimum wait time between retries (seconds)
        max_wait: Maximum wait time between retries (seconds)
        exceptions: Tuple of exception types to retry on
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @retry(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=min_wait, min=min_wait, max=max_wait),
            retry=retry_if_exception_type(exceptions),
            before_sleep=before_sleep_log(logger, logging.DEBUG),
            reraise=True,
        )
        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> T:
            return await func(*args, **kwargs)  # type: ignore[misc]

        return async_wrapper  # type: ignore[return-value]

    return decorator
