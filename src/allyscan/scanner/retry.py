"""Retry with exponential backoff for transient network/timeout failures."""

from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryCallback = Callable[[int, BaseException, float], None]

# Matched case-insensitively against the exception message and class name
TRANSIENT_ERROR_PATTERNS = (
    "ECONNRESET",
    "ECONNREFUSED",
    "ETIMEDOUT",
    "ESOCKETTIMEDOUT",
    "ENOTFOUND",
    "EAI_AGAIN",
    "net::ERR_",
    "Navigation timeout",
    "Timeout exceeded",
    "TimeoutError",
    "TimeoutException",
    "socket hang up",
    "Name or service not known",
    "Connection reset",
    "Connection refused",
)

_TRANSIENT_TYPES: tuple[type[BaseException], ...] = (
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
    socket.gaierror,
)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget for one scan. Delays are in seconds."""

    max_retries: int = 3
    base_delay: float = 1.0

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * (2**attempt)


def is_transient_error(error: BaseException) -> bool:
    """Whether an error looks like a network/timeout hiccup worth retrying."""
    if isinstance(error, _TRANSIENT_TYPES):
        return True
    message = str(error).lower()
    name = type(error).__name__.lower()
    for pattern in TRANSIENT_ERROR_PATTERNS:
        needle = pattern.lower()
        if needle in message or needle in name:
            return True
    return False


async def with_retry(
    op: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    on_retry: RetryCallback | None = None,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> T:
    """Run ``op``, retrying transient failures with pure exponential backoff.

    Non-transient errors propagate on the first failure. A transient error is
    retried up to ``max_retries`` more times, waiting ``base_delay * 2**attempt``
    seconds before each retry; ``on_retry(attempt_number, error, delay)`` is
    called before each wait. Once the budget is spent the last error propagates
    unchanged.
    """
    attempt = 0
    while True:
        try:
            return await op()
        except Exception as exc:
            if not is_transient_error(exc) or attempt >= max_retries:
                raise
            delay = base_delay * (2**attempt)
            attempt += 1
            logger.debug(
                "Transient failure (attempt %d/%d), retrying in %.2fs: %s",
                attempt,
                max_retries,
                delay,
                exc,
            )
            if on_retry is not None:
                on_retry(attempt, exc, delay)
            await sleep(delay)
