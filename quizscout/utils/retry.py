"""
Retry helpers for QuizScout.

Two layers of retry exist:

- fetch_retry: short in-process retries (tenacity) around a single HTTP
  request, for connection resets and similar transport blips.
- backoff_seconds: the exponential countdown used when a whole detail job
  is re-queued after a FetchError.
"""

import logging
import random
from typing import Tuple, Type

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

# Transport-level failures worth retrying inside one request.
# Timeouts are excluded: they surface as FetchTimeoutError and the job retries.
TRANSPORT_EXCEPTIONS: Tuple[Type[Exception], ...] = (
    httpx.ConnectError,
    httpx.RemoteProtocolError,
    httpx.ReadError,
    httpx.WriteError,
)


def fetch_retry(
    max_attempts: int = 3,
    min_wait_seconds: float = 1,
    max_wait_seconds: float = 8,
):
    """
    Retry decorator for async HTTP calls.

    Args:
        max_attempts: Maximum number of attempts
        min_wait_seconds: Minimum wait time between retries
        max_wait_seconds: Maximum wait time between retries

    Examples:
        >>> @fetch_retry(max_attempts=3)
        ... async def get_page(client, url):
        ...     return await client.get(url)
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait_seconds, max=max_wait_seconds),
        retry=retry_if_exception_type(TRANSPORT_EXCEPTIONS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def backoff_seconds(attempt: int, base: int = 30, cap: int = 3600, jitter: bool = True) -> int:
    """
    Exponential backoff for re-queued jobs.

    Args:
        attempt: Attempt that just failed (1-based)
        base: Delay after the first failure
        cap: Upper bound in seconds
        jitter: Add up to 10% random jitter

    Examples:
        >>> backoff_seconds(1, base=30, jitter=False)
        30
        >>> backoff_seconds(3, base=30, jitter=False)
        120
    """
    delay = min(cap, base * (2 ** max(0, attempt - 1)))
    if jitter:
        delay += random.randint(0, max(1, delay // 10))
    return int(delay)
