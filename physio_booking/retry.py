"""Retry with exponential backoff for read-only calendar calls.

Writes (create, update, cancel) must never go through ``with_retry``: the
Calendar API gives no idempotency guarantee, so a retried insert can leave a
patient double-booked.
"""
from __future__ import annotations
import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar
from . import config
from .errors import BookingError, CalendarError, NetworkError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable(error: BaseException) -> bool:
    if isinstance(error, NetworkError):
        return True
    if isinstance(error, CalendarError):
        return error.status == 429 or error.status >= 500
    return False


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = config.RETRY_MAX_ATTEMPTS,
    delay: float = config.RETRY_BASE_DELAY_SECONDS,
    backoff: bool = True,
    retry_condition: Callable[[BaseException], bool] = is_retryable,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    description: str = "calendar read",
) -> T:
    attempt = 1
    while True:
        try:
            return await operation()
        except BookingError as exc:
            if attempt >= max_attempts or not retry_condition(exc):
                raise
            wait = delay * 2 ** (attempt - 1) if backoff else delay
            # up to 10% jitter
            wait += random.uniform(0, 0.1 * wait)
            logger.warning(
                "Retry %d/%d for %s after %s, waiting %.2fs", attempt, max_attempts - 1, description, exc.code, wait
            )
            await sleep(wait)
            attempt += 1
