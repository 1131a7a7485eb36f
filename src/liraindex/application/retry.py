from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (attempt, attempts, error, delay before next attempt or None when giving up)
RetryCallback = Callable[[int, int, BaseException, "float | None"], None]
Sleep = Callable[[float], Awaitable[None]]


async def retry(
    operation: Callable[[], Awaitable[T]],
    attempts: int,
    base_delay: float,
    backoff_factor: float = 2.0,
    on_retry: RetryCallback | None = None,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Run `operation` up to `attempts` times with exponential backoff.

    The wait after failed attempt n is `base_delay * backoff_factor ** (n - 1)`.
    The last error is re-raised once every attempt has failed.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if attempt == attempts:
                if on_retry is not None:
                    on_retry(attempt, attempts, e, None)
                raise
            delay = base_delay * backoff_factor ** (attempt - 1)
            if on_retry is not None:
                on_retry(attempt, attempts, e, delay)
            else:
                logger.warning("Retry attempt %d/%d after %.2fs: %s", attempt, attempts, delay, e)
            await sleep(delay)
    raise AssertionError("unreachable")


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    base_delay: float = 1.0          # seconds
    backoff_factor: float = 2.0
    sleep: Sleep = field(default=asyncio.sleep, repr=False, compare=False)

    async def run(self, operation: Callable[[], Awaitable[T]], *, on_retry: RetryCallback | None = None) -> T:
        return await retry(operation, self.attempts, self.base_delay, self.backoff_factor,
                           on_retry=on_retry, sleep=self.sleep)
