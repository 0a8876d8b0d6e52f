"""Retry utilities with exponential backoff."""

import time
from functools import wraps
from typing import Callable, Tuple, Type

import structlog

log = structlog.stdlib.get_logger()


def exponential_backoff_retry(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> Callable:
    """
    Decorator that retries a function with exponential backoff.

    Only exceptions listed in ``exceptions`` are retried; anything else
    propagates on the first attempt. After ``max_retries`` retries the last
    error is re-raised unchanged.

    Args:
        max_retries: Maximum number of retry attempts (0 disables retrying)
        base_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        exceptions: Tuple of exception types to catch and retry
        sleep: Function used to wait between attempts

    Returns:
        Decorated function with retry logic
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_retries:
                        if max_retries:
                            log.error(
                                "max_retries_reached",
                                function=getattr(func, "__name__", repr(func)),
                                max_retries=max_retries,
                                error=str(e),
                            )
                        raise

                    delay = min(base_delay * (2**attempt), max_delay)
                    attempt += 1

                    log.warning(
                        "retrying_after_error",
                        function=getattr(func, "__name__", repr(func)),
                        attempt=attempt,
                        max_retries=max_retries,
                        delay_seconds=delay,
                        error=str(e),
                    )

                    sleep(delay)

        return wrapper

    return decorator
