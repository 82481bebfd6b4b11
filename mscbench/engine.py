"""Task execution for one concurrency level.

- run_task: one gated, timed task attempt; never raises for task-level failures
- run_level: N parallel workers (round-robin over URLs) joined before returning

Workers are fresh asyncio tasks per call; nothing survives across levels.
"""

from __future__ import annotations

import asyncio
import time

from .exceptions import MscError
from .fetch import Fetcher
from .logging_config import get_logger
from .models import PoolEntry, TaskResult
from .pool import ResourcePool
from .safety import SAFETY_DENIED_MESSAGE, SafetyGate

logger = get_logger("engine")

NS_TO_MS = 1_000_000


def _error_message(e: Exception) -> str:
    if isinstance(e, MscError):
        return e.message
    return str(e) or type(e).__name__


class TaskRunner:
    """Runs task attempts through the safety gate, the pool and the fetcher.

    Args:
        gate: Admission control shared by every worker
        fetcher: Injected page fetch capability
        pool: Context pool; None when the workload mode needs no context
    """

    def __init__(self, gate: SafetyGate, fetcher: Fetcher, pool: ResourcePool | None = None) -> None:
        self._gate = gate
        self._fetcher = fetcher
        self._pool = pool

    async def run_task(self, url: str) -> TaskResult:
        start_ns = time.perf_counter_ns()
        if not await self._gate.can_proceed(url):
            return TaskResult(
                url=url,
                success=False,
                status_code=None,
                duration_ms=0.0,
                error=SAFETY_DENIED_MESSAGE,
                timestamp=time.time(),
            )

        self._gate.begin()
        try:
            success, status_code, error = await self._fetch_with_context(url)
        finally:
            self._gate.end()

        return TaskResult(
            url=url,
            success=success,
            status_code=status_code,
            duration_ms=(time.perf_counter_ns() - start_ns) / NS_TO_MS,
            error=error,
            timestamp=time.time(),
        )

    async def _fetch_with_context(self, url: str) -> tuple[bool, int | None, str | None]:
        entry: PoolEntry | None = None
        try:
            if self._pool is not None:
                entry = await self._pool.acquire()
            page = await self._fetcher.fetch(url, entry)
            return page.success, page.status_code, page.error
        except Exception as e:  # noqa: BLE001
            logger.debug("Task failed for %s: %s", url, e)
            return False, None, _error_message(e)
        finally:
            if entry is not None:
                await self._pool.release(entry)

    async def run_level(self, urls: list[str], concurrency_level: int) -> list[TaskResult]:
        """Launch ``concurrency_level`` workers and wait for all of them."""
        if not urls:
            return []
        n = len(urls)
        workers = [
            asyncio.create_task(self.run_task(urls[i % n]))
            for i in range(concurrency_level)
        ]
        return list(await asyncio.gather(*workers))
