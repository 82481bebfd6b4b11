"""Bounded pool of reusable execution contexts.

Entries live in an arena (a list indexed by slot) with a FIFO free-list of
slot indices, so acquire/release are O(1) regardless of capacity. All
bookkeeping happens under one asyncio.Condition.

Exhaustion policy: when pooling is enabled and every tracked entry is busy,
``acquire`` waits for a release up to ``acquire_timeout`` seconds and then
raises PoolExhaustedError. When pooling is disabled, ``acquire`` hands out a
temporary entry that never counts against capacity and is destroyed on
release.
"""

from __future__ import annotations

import asyncio
import itertools
import time
from collections import deque
from typing import Any, Awaitable, Callable

from .exceptions import PoolExhaustedError
from .logging_config import get_logger
from .models import PoolEntry, PoolStatus

logger = get_logger("pool")

DEFAULT_MEMORY_LIMIT_MB = 100
DEFAULT_CONTEXT_TIMEOUT_SEC = 30.0
DEFAULT_ACQUIRE_TIMEOUT_SEC = 30.0

ResourceFactory = Callable[[], Any]
ResourceCloser = Callable[[Any], Awaitable[None]]


class ResourcePool:
    """Fixed-capacity pool of PoolEntry objects.

    Args:
        capacity: Maximum number of tracked entries
        factory: Builds the resource held by a new entry (sync, called under the lock)
        closer: Releases a resource when its entry is destroyed
        enable_pooling: When False, exhaustion yields temporary entries instead of waiting
        memory_limit: Per-entry memory budget in MB (metadata for the context owner)
        timeout: Per-entry operation timeout in seconds (metadata for the context owner)
        acquire_timeout: Longest wait for a free entry when pooling is enabled
    """

    def __init__(
        self,
        capacity: int,
        factory: ResourceFactory | None = None,
        closer: ResourceCloser | None = None,
        enable_pooling: bool = True,
        memory_limit: int = DEFAULT_MEMORY_LIMIT_MB,
        timeout: float = DEFAULT_CONTEXT_TIMEOUT_SEC,
        acquire_timeout: float = DEFAULT_ACQUIRE_TIMEOUT_SEC,
    ) -> None:
        if capacity < 1:
            raise ValueError("pool capacity must be >= 1")
        self._capacity = capacity
        self._factory = factory
        self._closer = closer
        self._enable_pooling = enable_pooling
        self._memory_limit = memory_limit
        self._timeout = timeout
        self._acquire_timeout = acquire_timeout
        self._cond = asyncio.Condition()
        self._slots: list[PoolEntry | None] = []
        self._vacant: list[int] = []
        self._free: deque[int] = deque()
        self._total = 0
        self._ids = itertools.count(1)
        self._tmp_ids = itertools.count(1)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def enable_pooling(self) -> bool:
        return self._enable_pooling

    def status(self) -> PoolStatus:
        available = len(self._free)
        return PoolStatus(
            capacity=self._capacity,
            total=self._total,
            available=available,
            in_use=self._total - available,
        )

    def _new_entry(self, entry_id: str, slot: int | None) -> PoolEntry:
        resource = self._factory() if self._factory is not None else None
        return PoolEntry(
            id=entry_id,
            created_at=time.time(),
            memory_limit=self._memory_limit,
            timeout=self._timeout,
            busy=True,
            slot=slot,
            resource=resource,
        )

    def _create_tracked(self) -> PoolEntry:
        slot = self._vacant.pop() if self._vacant else len(self._slots)
        entry = self._new_entry(f"ctx-{next(self._ids)}", slot)
        if slot == len(self._slots):
            self._slots.append(entry)
        else:
            self._slots[slot] = entry
        self._total += 1
        return entry

    async def acquire(self) -> PoolEntry:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._acquire_timeout
        async with self._cond:
            while True:
                if self._free:
                    entry = self._slots[self._free.popleft()]
                    assert entry is not None
                    entry.busy = True
                    return entry
                if self._total < self._capacity:
                    return self._create_tracked()
                if not self._enable_pooling:
                    entry = self._new_entry(f"tmp-{next(self._tmp_ids)}", None)
                    logger.debug("Pool at capacity (%d), issued temporary entry %s", self._capacity, entry.id)
                    return entry
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise PoolExhaustedError(
                        "No pool entry available before acquire timeout",
                        context={"capacity": self._capacity, "timeout": self._acquire_timeout},
                    )
                try:
                    await asyncio.wait_for(self._cond.wait(), timeout=remaining)
                except asyncio.TimeoutError:
                    # Loop once more: a release may have landed right at the deadline.
                    continue

    async def release(self, entry: PoolEntry) -> None:
        if entry.temporary:
            entry.busy = False
            await self._destroy(entry)
            return
        async with self._cond:
            if not entry.busy:
                raise ValueError(f"pool entry {entry.id} released twice")
            entry.busy = False
            if self._total <= self._capacity:
                self._free.append(entry.slot)
                self._cond.notify()
                return
            self._forget(entry)
        logger.debug("Pool over capacity, destroying %s", entry.id)
        await self._destroy(entry)

    def _forget(self, entry: PoolEntry) -> None:
        assert entry.slot is not None
        self._slots[entry.slot] = None
        self._vacant.append(entry.slot)
        self._total -= 1

    async def resize(self, capacity: int) -> None:
        """Change capacity. Idle surplus entries are destroyed now, busy ones on release."""
        if capacity < 1:
            raise ValueError("pool capacity must be >= 1")
        doomed: list[PoolEntry] = []
        async with self._cond:
            logger.debug("Resizing pool %d -> %d", self._capacity, capacity)
            self._capacity = capacity
            while self._total > self._capacity and self._free:
                entry = self._slots[self._free.pop()]
                assert entry is not None
                self._forget(entry)
                doomed.append(entry)
            self._cond.notify_all()
        for entry in doomed:
            await self._destroy(entry)

    async def cleanup(self) -> None:
        """Destroy every tracked entry and reset the pool."""
        async with self._cond:
            entries = [e for e in self._slots if e is not None]
            self._slots.clear()
            self._vacant.clear()
            self._free.clear()
            self._total = 0
            self._cond.notify_all()
        for entry in entries:
            entry.busy = False
            await self._destroy(entry)

    async def _destroy(self, entry: PoolEntry) -> None:
        if self._closer is not None and entry.resource is not None:
            await self._closer(entry.resource)
        entry.resource = None
