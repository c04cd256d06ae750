"""Retry with exponential backoff for whole-pass jobs (provider indexing)."""
from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from ..exceptions import LumeCineError

log = logging.getLogger("lumecine.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 60.0
    factor: float = 2.0
    retry_on: tuple[type[BaseException], ...] = (LumeCineError,)

    def delay(self, attempt: int) -> float:
        """Sleep before attempt number `attempt + 1` (attempt is 1-based)."""
        return min(self.base_delay * self.factor ** (attempt - 1), self.max_delay)

    async def run(
        self,
        fn: Callable[[], Awaitable[T]],
        *,
        label: str = "job",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> T:
        for attempt in range(1, self.attempts + 1):
            try:
                result = await fn()
            except self.retry_on as e:
                if attempt == self.attempts:
                    log.error(f"[{label}] giving up after {attempt} attempts: {e}")
                    raise
                wait = self.delay(attempt)
                log.warning(f"[{label}] attempt {attempt}/{self.attempts} failed: {e}; retrying in {wait:.1f}s")
                await sleep(wait)
            else:
                if attempt > 1:
                    log.info(f"[{label}] succeeded on attempt {attempt}")
                return result
        raise ValueError("attempts must be >= 1")
