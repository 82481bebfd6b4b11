"""Unit tests for ResourcePool (arena, free-list, exhaustion policy, resize)."""

from __future__ import annotations

import asyncio

import pytest

from mscbench.exceptions import PoolExhaustedError
from mscbench.pool import ResourcePool


class FakeResource:
    def __init__(self, n: int) -> None:
        self.n = n
        self.closed = False


def _factory():
    counter = {"n": 0}

    def make() -> FakeResource:
        counter["n"] += 1
        return FakeResource(counter["n"])

    return make


async def _close(resource: FakeResource) -> None:
    resource.closed = True


def test_acquire_creates_up_to_capacity() -> None:
    async def _run():
        pool = ResourcePool(2, factory=_factory(), closer=_close)
        a = await pool.acquire()
        b = await pool.acquire()
        return pool, a, b

    pool, a, b = asyncio.run(_run())
    assert a.busy and b.busy
    assert a.id != b.id
    assert a.id.startswith("ctx-")
    assert not a.temporary
    assert pool.status().total == 2
    assert pool.status().in_use == 2
    assert pool.status().available == 0


def test_release_returns_entry_for_reuse_fifo() -> None:
    async def _run():
        pool = ResourcePool(3, factory=_factory(), closer=_close)
        a = await pool.acquire()
        b = await pool.acquire()
        await pool.release(a)
        await pool.release(b)
        first = await pool.acquire()
        second = await pool.acquire()
        return pool, a, b, first, second

    pool, a, b, first, second = asyncio.run(_run())
    assert first is a
    assert second is b
    assert first.resource.closed is False
    assert pool.status().total == 2


def test_acquire_release_restores_pool_size() -> None:
    async def _run():
        pool = ResourcePool(2, factory=_factory())
        e = await pool.acquire()
        await pool.release(e)
        before = pool.status()
        e2 = await pool.acquire()
        during = pool.status()
        await pool.release(e2)
        return before, during, pool.status()

    before, during, after = asyncio.run(_run())
    assert before == after
    assert during.in_use == before.in_use + 1
    assert after.in_use == 0


def test_busy_entries_never_exceed_capacity() -> None:
    capacity = 3
    peak = 0

    async def _run():
        nonlocal peak
        pool = ResourcePool(capacity, factory=_factory(), acquire_timeout=5)

        async def worker():
            nonlocal peak
            entry = await pool.acquire()
            try:
                peak = max(peak, pool.status().in_use)
                await asyncio.sleep(0.005)
            finally:
                await pool.release(entry)

        await asyncio.gather(*(worker() for _ in range(20)))
        return pool.status()

    status = asyncio.run(_run())
    assert peak <= capacity
    assert status.in_use == 0
    assert status.total <= capacity


def test_exhausted_pool_blocks_until_release() -> None:
    async def _run():
        pool = ResourcePool(1, factory=_factory(), acquire_timeout=2.0)
        held = await pool.acquire()
        waiter = asyncio.create_task(pool.acquire())
        await asyncio.sleep(0.01)
        assert not waiter.done()
        await pool.release(held)
        got = await asyncio.wait_for(waiter, timeout=1.0)
        return held, got

    held, got = asyncio.run(_run())
    assert got is held
    assert got.busy


def test_exhausted_pool_times_out_with_error() -> None:
    async def _run():
        pool = ResourcePool(1, factory=_factory(), acquire_timeout=0.05)
        await pool.acquire()
        with pytest.raises(PoolExhaustedError):
            await pool.acquire()

    asyncio.run(_run())


def test_pooling_disabled_issues_temporary_entries() -> None:
    async def _run():
        pool = ResourcePool(1, factory=_factory(), closer=_close, enable_pooling=False)
        tracked = await pool.acquire()
        temp = await pool.acquire()
        status_during = pool.status()
        await pool.release(temp)
        return tracked, temp, status_during, pool.status()

    tracked, temp, during, after = asyncio.run(_run())
    assert not tracked.temporary
    assert temp.temporary
    assert temp.id.startswith("tmp-")
    assert during.total == 1  # temporary entries never count
    assert after.total == 1
    assert temp.resource is None  # destroyed on release


def test_double_release_rejected() -> None:
    async def _run():
        pool = ResourcePool(1)
        e = await pool.acquire()
        await pool.release(e)
        with pytest.raises(ValueError):
            await pool.release(e)

    asyncio.run(_run())


def test_resize_down_destroys_on_release() -> None:
    async def _run():
        pool = ResourcePool(2, factory=_factory(), closer=_close)
        a = await pool.acquire()
        b = await pool.acquire()
        await pool.resize(1)
        res_a = a.resource
        await pool.release(a)  # over capacity -> destroyed
        after_a = pool.status()
        await pool.release(b)  # back within capacity -> kept
        return res_a, after_a, pool.status()

    res_a, after_a, final = asyncio.run(_run())
    assert res_a.closed is True
    assert after_a.total == 1
    assert final == final.__class__(capacity=1, total=1, available=1, in_use=0)


def test_resize_up_wakes_waiters() -> None:
    async def _run():
        pool = ResourcePool(1, factory=_factory(), acquire_timeout=2.0)
        await pool.acquire()
        waiter = asyncio.create_task(pool.acquire())
        await asyncio.sleep(0.01)
        await pool.resize(2)
        entry = await asyncio.wait_for(waiter, timeout=1.0)
        return pool, entry

    pool, entry = asyncio.run(_run())
    assert entry.busy
    assert pool.status().total == 2


def test_cleanup_closes_everything() -> None:
    async def _run():
        pool = ResourcePool(2, factory=_factory(), closer=_close)
        a = await pool.acquire()
        b = await pool.acquire()
        await pool.release(a)
        resources = [a.resource, b.resource]
        await pool.cleanup()
        return pool, resources

    pool, resources = asyncio.run(_run())
    assert all(r.closed for r in resources)
    assert pool.status().total == 0


def test_capacity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        ResourcePool(0)
