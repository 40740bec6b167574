"""Retry utilities for remote store writes with exponential backoff."""
import logging
from typing import Callable, TypeVar

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from gym_tracker_sync.config import settings


logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default retry configuration
DEFAULT_MIN_WAIT_SECONDS = 1
DEFAULT_MAX_WAIT_SECONDS = 10


def is_retryable_error(exception: BaseException) -> bool:
    """
    Determine if a remote store error is transient.

    Retryable errors include:
    - Rate limit errors (429)
    - Server errors (5xx)
    - Timeout errors
    - Connection and DNS errors

    Everything else (constraint violations, permission errors, bad requests)
    fails immediately.
    """
    error_str = str(exception).lower()
    exception_type = type(exception).__name__.lower()

    if "429" in error_str or ("rate" in error_str and "limit" in error_str):
        return True

    if any(code in error_str for code in ["500", "502", "503", "504"]):
        return True

    if "timeout" in error_str or "timed out" in error_str or "timeout" in exception_type:
        return True

    if "connection" in error_str or "connect" in exception_type:
        return True

    if "name or service not known" in error_str:
        return True
    if "temporary failure in name resolution" in error_str:
        return True

    # Default: don't retry unknown errors
    return False


def create_retry_decorator(
    max_attempts: int = 3,
    min_wait_seconds: float = DEFAULT_MIN_WAIT_SECONDS,
    max_wait_seconds: float = DEFAULT_MAX_WAIT_SECONDS,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Create a retry decorator with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts, including the first one
        min_wait_seconds: Minimum wait time between retries
        max_wait_seconds: Maximum wait time between retries

    Returns:
        A retry decorator that re-raises the last error once attempts run out
    """
    return retry(
        retry=retry_if_exception(is_retryable_error),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(
            multiplier=1,
            min=min_wait_seconds,
            max=max_wait_seconds,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


# Pre-configured retry decorator for remote store writes
remote_retry = create_retry_decorator(max_attempts=settings.REMOTE_MAX_ATTEMPTS)

