"""
Clock abstraction and bounded retry schedules.

Every polling loop in the engine (DOM retries, story-id polling, waiting
for a visible video) is a fixed number of attempts separated by a fixed
delay. `BoundedRetry` expresses that as an async iterator so loops read as
plain `async for` and tests can drive them with a virtual clock.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import AsyncIterator, Protocol


class Clock(Protocol):
    def now(self) -> float:
        """Monotonic seconds."""
        ...

    async def sleep(self, seconds: float) -> None:
        ...


class SystemClock:
    def now(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


@dataclass(frozen=True, slots=True)
class Attempt:
    index: int          # zero-based
    started_at: float
    deadline: float     # clock time by which the last attempt starts

    @property
    def number(self) -> int:
        return self.index + 1


class BoundedRetry:
    """
    `max_attempts` attempts, `delay` seconds apart.

    The delay is only applied between attempts: breaking out of the loop
    after a success never waits.
    """

    def __init__(self, max_attempts: int, delay: float, clock: Clock):
        self.max_attempts = max(0, int(max_attempts))
        self.delay = max(0.0, float(delay))
        self.clock = clock

    async def attempts(self) -> AsyncIterator[Attempt]:
        if self.max_attempts == 0:
            return
        start = self.clock.now()
        deadline = start + self.delay * (self.max_attempts - 1)
        for index in range(self.max_attempts):
            if index:
                await self.clock.sleep(self.delay)
            yield Attempt(index=index, started_at=self.clock.now(), deadline=deadline)

    def __aiter__(self) -> AsyncIterator[Attempt]:
        return self.attempts()
