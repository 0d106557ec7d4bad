"""
Retry / Back-off

Design Decision: Retry Budget
=============================

Options Considered:
1. One budget for the whole upload
   - A single flaky part starves every other part's retries
2. Per-part budget
   - Parts fail independently, so they retry independently

Decision: Per-part budget, exponential back-off
- Failure n (1-based) of a part waits 2**n * base before the part goes back
  into the backlog: 200ms, 400ms, ... 6.4s with the defaults
- The failure after max_retries is fatal for the whole upload
- No jitter by default; it can be switched on to avoid many parts
  retrying in lockstep

Sleeping goes through a Clock so tests can run the schedule instantly.
"""

import asyncio
import random
from dataclasses import dataclass

DEFAULT_MAX_RETRIES = 6
DEFAULT_BASE_DELAY_MS = 100


class Clock:
    """Something that can wait."""

    async def sleep(self, seconds: float) -> None:
        raise NotImplementedError


class AsyncioClock(Clock):
    """Real time, via the event loop."""

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


@dataclass(frozen=True)
class BackoffPolicy:
    """How long to wait after a part fails, and when to stop."""
    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay_ms: int = DEFAULT_BASE_DELAY_MS
    jitter: float = 0.0  # fraction of the delay added at random

    def should_retry(self, failures: int) -> bool:
        """True while *failures* is within the retry budget."""
        return failures <= self.max_retries

    def delay(self, failures: int) -> float:
        """Seconds to wait after the *failures*-th failure."""
        delay_ms = (2 ** failures) * self.base_delay_ms
        if self.jitter:
            delay_ms += random.uniform(0, delay_ms * self.jitter)
        return delay_ms / 1000.0
