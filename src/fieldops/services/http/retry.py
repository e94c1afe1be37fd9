"""Bounded retry for idempotent read calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from ...config import settings
from ...errors import ErrorKind, GatewayError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_KINDS = frozenset({ErrorKind.TIMEOUT, ErrorKind.NETWORK_UNREACHABLE, ErrorKind.SERVER})


def backoff_delay(attempt: int, backoff_seconds: float, max_backoff_seconds: float) -> float:
    """Exponential delay before retry number ``attempt`` (1-based), capped."""

    return min(backoff_seconds * (2 ** (attempt - 1)), max_backoff_seconds)


async def retry_read(
    call: Callable[[], Awaitable[T]],
    *,
    attempts: int | None = None,
    backoff_seconds: float | None = None,
    max_backoff_seconds: float | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``call`` and retry transient failures up to ``attempts`` more times.

    Only for reads that are safe to repeat. Validation, authorization and
    cancellation errors are raised immediately.
    """

    retries = attempts if attempts is not None else settings.read_retry_attempts
    base = backoff_seconds if backoff_seconds is not None else settings.read_retry_backoff_seconds
    cap = max_backoff_seconds if max_backoff_seconds is not None else settings.read_retry_max_backoff_seconds

    attempt = 0
    while True:
        try:
            return await call()
        except GatewayError as error:
            if error.kind not in RETRYABLE_KINDS:
                raise
            attempt += 1
            if attempt > retries:
                raise
            wait_time = backoff_delay(attempt, base, cap)
            logger.debug(f"Read failed with {error.kind.value}, retrying in {wait_time:.1f}s (attempt {attempt}/{retries})")
            await sleep(wait_time)
