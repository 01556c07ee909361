"""Tests for the bounded-parallelism limiter."""

from __future__ import annotations

import asyncio

import pytest

from stockroom.imports.limiter import ConcurrencyLimiter


def test_limiter_rejects_zero_slots():
    with pytest.raises(ValueError):
        ConcurrencyLimiter(0)


@pytest.mark.asyncio
async def test_limiter_never_exceeds_width_and_resolves_each_task_once():
    limiter = ConcurrencyLimiter(2)
    active = 0
    peak = 0
    calls: list[int] = []

    async def work(index: int) -> int:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        calls.append(index)
        await asyncio.sleep(0.01)
        active -= 1
        return index * 10

    results = await asyncio.gather(*(limiter.run(lambda i=i: work(i)) for i in range(6)))

    assert results == [0, 10, 20, 30, 40, 50]
    assert peak == 2
    assert sorted(calls) == list(range(6))
    assert limiter.active_count == 0
    assert limiter.pending_count == 0


@pytest.mark.asyncio
async def test_limiter_starts_queued_tasks_in_submission_order():
    limiter = ConcurrencyLimiter(1)
    started: list[str] = []

    async def work(name: str) -> None:
        started.append(name)
        await asyncio.sleep(0)

    await asyncio.gather(*(limiter.run(lambda n=name: work(n)) for name in "abcd"))

    assert started == ["a", "b", "c", "d"]


@pytest.mark.asyncio
async def test_failed_task_frees_its_slot():
    limiter = ConcurrencyLimiter(1)

    async def boom() -> None:
        raise RuntimeError("upload failed")

    async def ok() -> str:
        return "done"

    outcomes = await asyncio.gather(
        limiter.run(boom), limiter.run(ok), return_exceptions=True
    )

    assert isinstance(outcomes[0], RuntimeError)
    assert outcomes[1] == "done"
    assert limiter.active_count == 0


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_leak_a_slot():
    limiter = ConcurrencyLimiter(1)
    release = asyncio.Event()

    async def hold() -> None:
        await release.wait()

    holder = asyncio.ensure_future(limiter.run(hold))
    await asyncio.sleep(0)
    waiter = asyncio.ensure_future(limiter.run(hold))
    await asyncio.sleep(0)
    assert limiter.pending_count == 1

    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter
    release.set()
    await holder

    assert limiter.active_count == 0
    assert await limiter.run(lambda: asyncio.sleep(0, result="after")) == "after"
