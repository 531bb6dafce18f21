"""
Bounded concurrent batching for outbound calls
"""

import asyncio
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")

ProgressCallback = Callable[[int, int], None]


async def run_in_batches(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    batch_size: int = 10,
    spacing: Optional[Callable[[], float]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    cancel_event: Optional[asyncio.Event] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> List[Optional[R]]:
    """
    Run worker over items in sub-batches of batch_size.

    Inside a sub-batch, task starts are staggered by spacing() seconds.
    The worker must not raise. Once cancel_event is set no new task is
    started; tasks already running are awaited. Slots for items that were
    never started stay None. Results keep input order.
    """
    total = len(items)
    results: List[Optional[R]] = [None] * total
    completed = 0
    batch_size = max(1, batch_size)

    async def run_one(index: int, item: T) -> None:
        nonlocal completed
        results[index] = await worker(item)
        completed += 1
        if on_progress is not None:
            on_progress(completed, total)

    started = 0
    for batch_start in range(0, total, batch_size):
        tasks = []
        for index in range(batch_start, min(batch_start + batch_size, total)):
            if started > 0 and spacing is not None:
                await sleep(spacing())
            if cancel_event is not None and cancel_event.is_set():
                break
            tasks.append(asyncio.create_task(run_one(index, items[index])))
            started += 1
        if tasks:
            await asyncio.gather(*tasks)
        if cancel_event is not None and cancel_event.is_set():
            break

    return results
