"""Bounded parallel batches of remote calls.

A batch issues its calls concurrently (at most ``limit`` in flight), waits for
all of them, and reports the first failure. A failing call never stops its
siblings: everything submitted runs to completion. Cancellation of the
awaiting task propagates to every call still in flight.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field

DEFAULT_BATCH_LIMIT = 8


@dataclass
class BatchResult:
    """Failures of one batch, in the order they happened."""

    failures: list[Exception] = field(default_factory=list)

    @property
    def first_failure(self) -> Exception | None:
        return self.failures[0] if self.failures else None

    @property
    def ok(self) -> bool:
        return not self.failures


async def run_batch(
    calls: Iterable[Callable[[], Awaitable[object]]],
    limit: int = DEFAULT_BATCH_LIMIT,
) -> BatchResult:
    """Run zero-argument coroutine functions concurrently and join them.

    Args:
        calls: Coroutine functions to run.
        limit: Maximum number of calls in flight.

    Returns:
        The batch result; ``first_failure`` is the earliest exception raised.
    """
    if limit < 1:
        raise ValueError("batch limit must be at least 1")

    semaphore = asyncio.Semaphore(limit)
    lock = asyncio.Lock()
    result = BatchResult()

    async def guarded(call: Callable[[], Awaitable[object]]) -> None:
        async with semaphore:
            try:
                await call()
            except Exception as e:
                async with lock:
                    result.failures.append(e)

    await asyncio.gather(*(guarded(call) for call in calls))
    return result
