"""Retry policy for sensor requests.

Connection errors and timeouts are retried with exponential backoff using
tenacity; anything else (HTTP status, bad payload) fails immediately so a
broken sensor never stalls the poll for long.

Example usage:
    retry = create_retry_decorator(max_retries=3)

    @retry
    def fetch():
        return client.get("/redfish/v1/Chassis")
"""

import logging
from typing import Any, Callable

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

RETRYABLE_ERRORS = (httpx.ConnectError, httpx.TimeoutException)


def create_retry_decorator(
    max_retries: int = 3,
    min_wait: float = 1,
    max_wait: float = 10,
    log_level: int = logging.WARNING,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Create a tenacity retry decorator with exponential backoff.

    Args:
        max_retries: Total number of attempts, including the first.
        min_wait: Minimum wait time in seconds between attempts.
        max_wait: Maximum wait time in seconds between attempts.
        log_level: Log level for retry attempt messages.

    Returns:
        A tenacity retry decorator that re-raises the last error.
    """
    # tenacity's before_sleep_log needs a stdlib logger
    stdlib_logger = logging.getLogger(__name__)

    return retry(
        stop=stop_after_attempt(max_retries),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(RETRYABLE_ERRORS),
        before_sleep=before_sleep_log(stdlib_logger, log_level),
        reraise=True,
    )
