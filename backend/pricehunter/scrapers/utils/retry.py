"""Retry policy for retailer HTTP requests.

Network timeouts, connection errors and 5xx responses are retried with
exponential backoff. 4xx responses are final.
"""

import logging

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)


logger = structlog.get_logger(__name__)


def is_retryable(exc: BaseException) -> bool:
    """Classify an httpx failure as transient."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, (httpx.TimeoutException, httpx.TransportError))


def http_retrying(
    max_attempts: int = 3,
    backoff_min: float = 2.0,
    backoff_max: float = 8.0,
) -> AsyncRetrying:
    """Build the AsyncRetrying controller used by FetchTransport.

    Args:
        max_attempts: Total attempts including the first one
        backoff_min: Lower bound of the exponential wait in seconds
        backoff_max: Upper bound of the exponential wait in seconds

    Returns:
        AsyncRetrying that re-raises the last exception when exhausted
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=backoff_min, max=backoff_max),
        retry=retry_if_exception(is_retryable),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
