"""
Bounded retry with exponential backoff for calls that fail transiently.
Only exceptions of the `retry_on` types are retried; anything else propagates at once.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetriesExhaustedError(Exception):
    """Every attempt failed with a retryable error. `last_error` is the final one, if any."""

    def __init__(self, attempts: int, last_error: BaseException | None = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Failed to get response after {attempts} attempts")


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    retry_on: tuple[type[BaseException], ...] = (Exception,)
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def delay_for(self, failed_attempts: int) -> float:
        """Seconds to wait after `failed_attempts` failures: base, base*m, base*m^2, ..."""
        return self.base_delay * (self.multiplier ** (failed_attempts - 1))

    async def run(self, call: Callable[[], Awaitable[T]], *, label: str = "call") -> T:
        last_error: BaseException | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await call()
            except self.retry_on as e:
                last_error = e
                if attempt >= self.max_attempts:
                    break
                delay = self.delay_for(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                    label, attempt, self.max_attempts, e, delay,
                )
                await self.sleep(delay)
        raise RetriesExhaustedError(self.max_attempts, last_error) from last_error
