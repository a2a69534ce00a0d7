from __future__ import annotations

import asyncio

import pytest

from nightly_digest.workers import run_bounded


@pytest.mark.asyncio
async def test_every_item_processed_once_despite_failures():
    seen: list[int] = []

    async def _work(n: int) -> int:
        seen.append(n)
        await asyncio.sleep(0)
        if n % 3 == 0:
            raise ValueError(f"bad {n}")
        return n * 10

    results = await run_bounded(list(range(1, 11)), _work, concurrency=3)

    assert sorted(seen) == list(range(1, 11))
    assert sorted(r.item for r in results) == list(range(1, 11))
    failed = {r.item for r in results if not r.ok}
    assert failed == {3, 6, 9}
    assert all(r.value == r.item * 10 for r in results if r.ok)
    assert all("bad" in r.error for r in results if not r.ok)


@pytest.mark.asyncio
async def test_concurrency_is_bounded():
    active = 0
    peak = 0

    async def _work(n: int) -> int:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01)
        active -= 1
        return n

    results = await run_bounded(range(8), _work, concurrency=2)
    assert len(results) == 8
    assert peak == 2


@pytest.mark.asyncio
async def test_falsy_items_are_not_skipped():
    async def _work(n: int) -> int:
        return n

    results = await run_bounded([0, 0, 1], _work, concurrency=1)
    assert sorted(r.value for r in results) == [0, 0, 1]


@pytest.mark.asyncio
async def test_empty_input_returns_empty():
    async def _work(n: int) -> int:  # pragma: no cover
        return n

    assert await run_bounded([], _work, concurrency=4) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("concurrency", [0, -1])
async def test_rejects_non_positive_concurrency(concurrency):
    async def _work(n: int) -> int:  # pragma: no cover
        return n

    with pytest.raises(ValueError):
        await run_bounded([1, 2], _work, concurrency=concurrency)
