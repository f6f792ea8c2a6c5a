"""
Retry with exponential backoff for transient object-store failures.

Batch transfers are retried a few times when the failure looks transient
(connection drops, throttling, 5xx). Anything else, and the last transient
failure, propagates to the caller unchanged.

Usage:
    from s3upload.utils.retry import retry_with_backoff, is_transient_error

    @retry_with_backoff(max_attempts=3, base_delay=1.0, retry_if=is_transient_error)
    def put_batch(...):
        ...
"""

import functools
import random
import time
from typing import Any, Callable, Optional, Tuple, Type

from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from s3upload.utils.logging import get_logger

logger = get_logger(__name__)

TRANSIENT_ERROR_CODES = {
    "RequestTimeout",
    "RequestTimeoutException",
    "SlowDown",
    "Throttling",
    "ThrottlingException",
    "InternalError",
    "ServiceUnavailable",
}

TRANSIENT_STATUS_CODES = {429, 500, 502, 503, 504}


def calculate_backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    multiplier: float,
    jitter: bool,
) -> float:
    """
    Delay before the next attempt.

    Formula:
        delay = min(base_delay * (multiplier ** attempt), max_delay)
        if jitter:
            delay = delay * random.uniform(0.5, 1.5)

    Example:
        >>> calculate_backoff_delay(2, base_delay=1.0, max_delay=60.0,
        ...                         multiplier=2.0, jitter=False)
        4.0
    """
    delay = min(base_delay * (multiplier ** attempt), max_delay)
    if jitter:
        delay = delay * random.uniform(0.5, 1.5)
    return delay


def is_transient_error(exception: BaseException) -> bool:
    """
    Whether an object-store failure is worth retrying.

    Args:
        exception: Exception raised by a store call

    Returns:
        True for connection/timeout errors, throttling and 5xx responses
    """
    if isinstance(exception, (EndpointConnectionError, ConnectionClosedError, ReadTimeoutError)):
        return True
    if isinstance(exception, (ConnectionError, TimeoutError)):
        return True
    if isinstance(exception, ClientError):
        error = exception.response.get("Error", {})
        status = exception.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return error.get("Code") in TRANSIENT_ERROR_CODES or status in TRANSIENT_STATUS_CODES
    return False


def retry_with_backoff(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    backoff_multiplier: float = 2.0,
    jitter: bool = True,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    retry_if: Optional[Callable[[BaseException], bool]] = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Decorator retrying a function with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts (including the first)
        base_delay: Initial delay between attempts in seconds
        max_delay: Upper bound of the delay
        backoff_multiplier: Multiplier for exponential backoff
        jitter: Randomize delays by +/-50%
        exceptions: Exception types considered for retry
        retry_if: Optional predicate; exceptions it rejects propagate at once

    Returns:
        Decorator

    Example:
        >>> @retry_with_backoff(max_attempts=5, base_delay=0.5, retry_if=is_transient_error)
        ... def list_keys(bucket, prefix):
        ...     return store.list_objects(bucket, prefix)
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(max_attempts):
                try:
                    result = func(*args, **kwargs)
                except exceptions as e:
                    retryable = retry_if is None or retry_if(e)
                    if not retryable or attempt == max_attempts - 1:
                        if retryable:
                            logger.error(
                                f"{func.__name__} failed after {max_attempts} attempts. "
                                f"Last error: {e}"
                            )
                        raise

                    delay = calculate_backoff_delay(
                        attempt=attempt,
                        base_delay=base_delay,
                        max_delay=max_delay,
                        multiplier=backoff_multiplier,
                        jitter=jitter,
                    )
                    logger.warning(
                        f"{func.__name__} failed on attempt {attempt + 1}: {e}. "
                        f"Retrying in {delay:.2f}s..."
                    )
                    time.sleep(delay)
                else:
                    if attempt > 0:
                        logger.info(f"{func.__name__} succeeded on attempt {attempt + 1}")
                    return result

            raise RuntimeError(f"{func.__name__} called with max_attempts={max_attempts}")

        return wrapper

    return decorator
