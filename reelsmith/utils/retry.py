"""
Retry Decorator with Exponential Backoff
Automatic retry logic for transient provider failures
"""

import asyncio
import functools
import random
from typing import Type, Tuple, Optional, Callable

from .logger import get_logger
from .exceptions import JobCancelledError

logger = get_logger()


def retry_async(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retryable_exceptions: Tuple[Type[Exception], ...] = (Exception,),
    fatal_exceptions: Tuple[Type[Exception], ...] = (JobCancelledError,),
    on_retry: Optional[Callable[[Exception, int], None]] = None
):
    """
    Async retry decorator with exponential backoff

    Args:
        max_retries: Maximum number of retry attempts (total attempts = max_retries + 1)
        base_delay: Initial delay between retries in seconds
        max_delay: Maximum delay between retries
        exponential_base: Base for exponential backoff calculation
        jitter: Add random jitter to prevent thundering herd
        retryable_exceptions: Tuple of exception types to retry on
        fatal_exceptions: Exception types that are re-raised immediately
        on_retry: Optional callback called on each retry (exception, attempt)
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            last_exception = None

            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)

                except fatal_exceptions:
                    raise

                except retryable_exceptions as e:
                    last_exception = e

                    delay = min(base_delay * (exponential_base ** attempt), max_delay)
                    if jitter:
                        delay = delay * (0.5 + random.random())

                    if attempt < max_retries:
                        logger.debug(
                            f"Retry {attempt + 1}/{max_retries} for {func.__name__} "
                            f"after {delay:.1f}s: {str(e)[:100]}"
                        )

                        if on_retry:
                            on_retry(e, attempt + 1)

                        if delay > 0:
                            await asyncio.sleep(delay)
                    else:
                        logger.debug(
                            f"Max retries ({max_retries}) exceeded for {func.__name__}: {e}"
                        )
                        raise

            raise last_exception

        return wrapper
    return decorator
