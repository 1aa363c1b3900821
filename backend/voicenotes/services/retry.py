"""Bounded retry policy for remote store calls.

The policy is split in two so it can be tested without any network mocks:
:func:`classify` decides *whether* a failure may be retried and
:func:`with_retries` decides *how often* and *how long to wait*.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, TypeVar

from voicenotes.errors import TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


class Disposition(str, Enum):
    FATAL = "FATAL"
    RETRYABLE = "RETRYABLE"


def classify(exc: BaseException) -> Disposition:
    """Return whether ``exc`` is worth retrying."""
    if isinstance(exc, (TransientError, asyncio.TimeoutError)):
        return Disposition.RETRYABLE
    return Disposition.FATAL


async def with_retries(
    operation: Callable[[], Awaitable[T]],
    *,
    retries: int = 2,
    backoff: float = 1.0,
    sleep: Sleep = asyncio.sleep,
    description: str = "remote call",
) -> T:
    """Await ``operation()``, retrying retryable failures up to ``retries`` times.

    Fatal failures and the last retryable failure are re-raised unchanged.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as exc:
            if classify(exc) is Disposition.FATAL:
                raise
            if attempt >= retries:
                logger.warning("%s failed after %d attempts: %s", description, attempt + 1, exc)
                raise
            attempt += 1
            logger.info(
                "%s failed (%s); retry %d/%d in %.1fs",
                description,
                exc,
                attempt,
                retries,
                backoff,
            )
            await sleep(backoff)
