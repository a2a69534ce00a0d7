from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Iterable, TypeVar


logger = logging.getLogger(__name__)


T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class WorkResult(Generic[T, R]):
    item: T
    value: R | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def run_bounded(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    concurrency: int,
) -> list[WorkResult[T, R]]:
    """Run ``worker`` over ``items`` with exactly ``concurrency`` workers.

    Workers pull from a shared queue until it is empty. Results come back in
    completion order, each carrying the item it was produced from. A failing
    item is recorded as an error result; it never stops the other workers.
    """
    if isinstance(concurrency, bool) or not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError(f"concurrency must be a positive integer, got {concurrency!r}")

    queue: deque[T] = deque(items)
    results: list[WorkResult[Any, Any]] = []

    async def _drain(worker_id: int) -> None:
        while queue:
            item = queue.popleft()
            try:
                value = await worker(item)
            except Exception as e:
                logger.warning("worker %s: item failed err=%s", worker_id, e)
                results.append(WorkResult(item=item, error=str(e) or e.__class__.__name__))
            else:
                results.append(WorkResult(item=item, value=value))

    await asyncio.gather(*(_drain(i) for i in range(concurrency)))
    return results
