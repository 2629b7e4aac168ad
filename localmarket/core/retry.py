"""
Bounded exponential backoff for the spatial store and the ZIP geocoder.

After the last attempt the final error is re-raised unchanged; callers
decide what a give-up means for them.
"""
import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

import httpx
from sqlalchemy.exc import DBAPIError, DisconnectionError, OperationalError

logger = logging.getLogger(__name__)

T = TypeVar('T')

_TRANSIENT_DB_MARKERS = ("connection", "prepared statement")


def should_retry_error(error: Exception) -> bool:
    """
    Transient failures only: HTTP timeouts, network errors and 5xx
    responses, dropped database connections and stale prepared statements.
    Client errors and query bugs fail fast.
    """
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code >= 500

    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError)):
        return True

    if isinstance(error, (OperationalError, DisconnectionError)):
        return True

    if isinstance(error, DBAPIError):
        if error.connection_invalidated:
            return True
        message = str(error).lower()
        return any(marker in message for marker in _TRANSIENT_DB_MARKERS)

    return isinstance(error, ConnectionError)


def backoff_delay(
    attempt: int,
    initial_delay: float,
    max_delay: float,
    exponential_base: float,
    jitter: bool,
) -> float:
    """Seconds to wait after the given (1-based) failed attempt"""
    delay = min(initial_delay * exponential_base ** (attempt - 1), max_delay)
    if jitter:
        delay += delay * 0.1 * random.random()
    return delay


async def retry_with_backoff(
    func: Callable[..., Awaitable[T]],
    *args,
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    **kwargs
) -> T:
    """
    Await func(*args, **kwargs) up to max_attempts times.

    Non-retryable errors propagate on the first failure.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    attempt = 1
    while True:
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if not should_retry_error(e):
                logger.debug(f"Not retrying {type(e).__name__}: {e}")
                raise
            if attempt >= max_attempts:
                logger.warning(f"Giving up after {attempt} attempts: {e}")
                raise

            delay = backoff_delay(attempt, initial_delay, max_delay, exponential_base, jitter)
            logger.info(f"Attempt {attempt}/{max_attempts} failed ({e}); retrying in {delay:.2f}s")
            await asyncio.sleep(delay)
            attempt += 1
