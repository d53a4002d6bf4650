"""Bounded exponential backoff shared by every provider client."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from ..config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """How many times to try an operation and how long to wait in between.

    ``max_attempts`` counts every call, the first one included. Delays double
    from ``base_delay`` and are capped at ``max_delay``. ``jitter`` adds up to
    that fraction of the delay (clamped to ``[0, 1]`` so delays never shrink
    from one attempt to the next).
    """

    max_attempts: int = 4
    base_delay: float = 2.0
    max_delay: float = 30.0
    jitter: float = 0.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
        )

    def delay_for(self, attempt: int) -> float:
        """Return the wait before retry number ``attempt`` (1-based)."""

        delay = self.base_delay * (2 ** max(attempt - 1, 0))
        jitter = min(max(self.jitter, 0.0), 1.0)
        if jitter:
            delay += random.uniform(0, jitter * delay)
        return min(delay, self.max_delay)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    should_retry: Callable[[BaseException], bool],
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    description: str = "operation",
) -> T:
    """Run ``operation`` until it succeeds, fails permanently or runs out of attempts.

    The last exception is re-raised once ``policy.max_attempts`` calls have been
    made or ``should_retry`` rejects the failure.
    """

    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as exc:
            if attempt >= policy.max_attempts or not should_retry(exc):
                raise
            delay = policy.delay_for(attempt)
            logger.info(
                "Transient failure during %s (%s). Retry %s/%s in %.1fs",
                description,
                exc.__class__.__name__,
                attempt,
                policy.max_attempts - 1,
                delay,
            )
            await sleep(delay)
