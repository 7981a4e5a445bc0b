"""
Backoff for record-store calls.

Only the exception types a caller names are retried; anything else
propagates from the first attempt unchanged.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

R = TypeVar("R")


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter_ratio: float = 0.1

    def delay_for(self, retry_number: int) -> float:
        """Seconds to wait before retry number retry_number (0-indexed)."""
        delay = min(self.base_delay * (self.exponential_base**retry_number), self.max_delay)
        if self.jitter_ratio > 0:
            spread = delay * self.jitter_ratio
            delay += random.uniform(-spread, spread)
        return max(0.0, delay)


class RetryError(Exception):
    """Raised when every attempt failed with a retryable error"""

    def __init__(self, operation: str, attempts: int, last_exception: Exception):
        self.operation = operation
        self.attempts = attempts
        self.last_exception = last_exception
        super().__init__(f"{operation} failed after {attempts} attempts: {last_exception}")


class AsyncRetrier:
    """
    Runs async callables under a RetryConfig and counts what happened.
    """

    def __init__(self, config: RetryConfig, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.config = config
        self._sleep = sleep
        self.stats: Dict[str, int] = {
            "calls": 0,
            "retries": 0,
            "exhausted": 0,
        }

    async def call(
        self,
        func: Callable[[], Awaitable[R]],
        retry_on: Tuple[Type[Exception], ...],
        operation: Optional[str] = None,
    ) -> R:
        """
        Raises:
            RetryError: If the last allowed attempt also failed with a retry_on error
        """
        name = operation or getattr(func, "__name__", "operation")
        self.stats["calls"] += 1

        attempt = 0
        while True:
            attempt += 1
            try:
                return await func()
            except retry_on as e:
                if attempt >= self.config.max_attempts:
                    self.stats["exhausted"] += 1
                    raise RetryError(name, attempt, e) from e

                delay = self.config.delay_for(attempt - 1)
                self.stats["retries"] += 1
                logger.warning(
                    f"{name} failed with {type(e).__name__}, "
                    f"retry {attempt}/{self.config.max_attempts - 1} in {delay:.2f}s"
                )
                await self._sleep(delay)

    def get_stats(self) -> Dict[str, Any]:
        return dict(self.stats)


RECORD_STORE_RETRY_CONFIG = RetryConfig(
    max_attempts=5,
    base_delay=0.5,
    max_delay=10.0,
    exponential_base=1.5,
)
