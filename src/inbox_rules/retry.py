"""Bounded retry with exponential backoff for provider calls."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from inbox_rules.errors import TransientProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def exponential_backoff(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number ``attempt`` (1-based), capped at ``max_delay``."""
    return min(base_delay * (2 ** (attempt - 1)), max_delay)


@dataclass(frozen=True)
class RetryPolicy:
    """How many times, and how patiently, to retry a transient failure.

    Only ``TransientProviderError`` is retried. Everything else, including
    permission and schema errors, propagates on the first attempt.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: bool = True

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
        )

    def delay_for(self, attempt: int) -> float:
        delay = exponential_backoff(attempt, self.base_delay, self.max_delay)
        if self.jitter and delay > 0:
            delay = random.uniform(delay / 2, delay)
        return delay

    async def call(
        self,
        fn: Callable[[], Awaitable[T]],
        *,
        description: str = "provider call",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> T:
        """Run ``fn`` until it succeeds or attempts are exhausted.

        Raises:
            TransientProviderError: The last failure once attempts run out.
        """
        attempt = 1
        while True:
            try:
                return await fn()
            except TransientProviderError as e:
                if attempt >= self.max_attempts:
                    logger.warning(
                        "%s failed after %d attempts: %s", description, attempt, e
                    )
                    raise
                delay = self.delay_for(attempt)
                logger.info(
                    "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                    description,
                    attempt,
                    self.max_attempts,
                    delay,
                    e,
                )
                await sleep(delay)
                attempt += 1

