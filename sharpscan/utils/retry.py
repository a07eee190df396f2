"""
Retry policy shared by every provider call site.

    policy = RetryPolicy(max_attempts=3, base_delay=0.4, jitter=0.12)
    data = await policy.run(lambda: client.get_json(...), label="nba h2h")

Only errors accepted by `is_retryable` are retried. After `max_attempts`
calls the last error is re-raised; callers own the fail-soft decision.
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

import structlog

from sharpscan.errors import RateLimitedError

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Bounded exponential backoff with jitter."""
    max_attempts: int = 3
    base_delay: float = 0.4      # seconds
    jitter: float = 0.12         # seconds, uniform
    retry_on: tuple[type[BaseException], ...] = (RateLimitedError,)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    rng: random.Random = field(default_factory=random.Random)

    def backoff(self, attempt: int) -> float:
        """Delay before retrying after the given (0-based) failed attempt."""
        return self.base_delay * (2 ** attempt) + self.rng.uniform(0, self.jitter)

    def is_retryable(self, error: BaseException) -> bool:
        return isinstance(error, self.retry_on)

    async def run(self, fn: Callable[[], Awaitable[T]], label: str = "") -> T:
        attempt = 0
        while True:
            try:
                return await fn()
            except Exception as e:
                if not self.is_retryable(e):
                    raise
                attempt += 1
                if attempt >= self.max_attempts:
                    logger.warning(
                        "Retries exhausted",
                        label=label,
                        attempts=attempt,
                        error=str(e),
                    )
                    raise

                wait = self.backoff(attempt - 1)
                logger.warning(
                    "Retrying after backoff",
                    label=label,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    wait=f"{wait:.2f}s",
                )
                await self.sleep(wait)
