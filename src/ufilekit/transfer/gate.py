"""Bounded-parallelism gate for part operations."""

import asyncio
import os

from ufilekit import metrics as _metrics

# Default bound is this multiple of the available CPUs.
DEFAULT_CONCURRENCY_FACTOR = 2


def default_concurrency() -> int:
    return (os.cpu_count() or 1) * DEFAULT_CONCURRENCY_FACTOR


class ConcurrencyGate:
    """Admits at most ``limit`` concurrent holders.

    Usage::

        async with gate:
            await do_part()

    Acquiring is the only suspension point before the guarded work starts.
    The gate also tracks how many holders are inside and the highest count
    ever observed, which lets tests verify the bound.

    Attributes:
        limit: The maximum number of concurrent holders.
        in_flight: Current number of holders.
        high_water: Highest ``in_flight`` ever observed.
    """

    def __init__(self, limit: int | None = None) -> None:
        if limit is None:
            limit = default_concurrency()
        if limit < 1:
            raise ValueError(f"concurrency limit must be at least 1, got {limit}")
        self.limit = limit
        self.in_flight = 0
        self.high_water = 0
        self._semaphore = asyncio.Semaphore(limit)

    async def acquire(self) -> None:
        await self._semaphore.acquire()
        self.in_flight += 1
        self.high_water = max(self.high_water, self.in_flight)
        _metrics.adjust_parts_in_flight(1)

    def release(self) -> None:
        self.in_flight -= 1
        _metrics.adjust_parts_in_flight(-1)
        self._semaphore.release()

    async def __aenter__(self) -> "ConcurrencyGate":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()
