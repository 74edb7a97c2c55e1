"""
Bounded retry policy for store operations.

Only transient connectivity failures are retried. Integrity violations and
domain errors (duplicates, invalid transitions) are surfaced immediately.
"""
import asyncio
import logging

from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


def is_transient_store_error(exc: BaseException) -> bool:
    """True for errors worth another attempt (dropped connections, locks, timeouts)."""
    if isinstance(exc, IntegrityError):
        return False
    if isinstance(exc, (OperationalError, InterfaceError, asyncio.TimeoutError, ConnectionError)):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return False


def store_retrying(attempts: int, backoff_seconds: float) -> AsyncRetrying:
    """
    Build the tenacity controller used by ``Store.run``.

    Args:
        attempts: Total attempts including the first one
        backoff_seconds: Base delay of the exponential backoff

    Returns:
        AsyncRetrying instance that re-raises the last error when exhausted
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max(1, attempts)),
        wait=wait_exponential(multiplier=backoff_seconds, min=backoff_seconds, max=backoff_seconds * 8),
        retry=retry_if_exception(is_transient_store_error),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
