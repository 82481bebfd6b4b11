"""Ramp orchestration: run each concurrency level, sample, check degradation, cool down.

State machine per run:
    NOT_STARTED -> RUNNING_LEVEL -> (COOLDOWN -> RUNNING_LEVEL)* ->
    STOPPED_DEGRADATION | STOPPED_TIME_LIMIT | (plan exhausted) -> COMPLETED

The runtime deadline is only checked between levels; a level in progress
always finishes. The detector runs synchronously after each batch, before
the next batch's workers exist.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable

from .degradation import DegradationDetector
from .engine import TaskRunner
from .exceptions import MscRunnerError
from .fetch import Fetcher, HttpFetcher
from .host import HostSampler, SampleHost
from .logging_config import get_logger
from .memory_leak import MemoryLeakDetector
from .metrics import MetricsAggregator
from .models import (
    BenchmarkConfig,
    BenchmarkResult,
    OutputConfig,
    RampState,
    Sample,
    WorkloadMode,
)
from .pool import ResourcePool
from .safety import RobotsPolicy, SafetyGate, robots_fetcher

logger = get_logger("ramp_runner")

DATETIME_FMT = "%Y-%m-%d %H:%M:%S UTC"
# Within this many cooldowns of the deadline, the wait is cut to half the remaining time.
NEAR_DEADLINE_FACTOR = 2.0


def adaptive_wait(level_duration: float, remaining: float, output: OutputConfig) -> float:
    """Seconds to cool down after a level that took ``level_duration`` seconds.

    Short levels are padded up to ``min_level_seconds``; long levels rest for
    a fraction of their own duration. Never below the floor, except close to
    the deadline where at most half of the remaining time is spent waiting.
    """
    floor = output.cooldown_floor_seconds
    if level_duration < output.min_level_seconds:
        wait = max(output.min_level_seconds - level_duration, floor)
    else:
        wait = max(level_duration * output.cooldown_fraction, floor)
    if remaining < wait * NEAR_DEADLINE_FACTOR:
        wait = max(remaining / 2.0, 0.0)
    return wait


class RampController:
    """Top-level loop over the ramp plan.

    Args:
        config: Validated benchmark configuration
        runner: Executes one batch of tasks
        sample_host: Returns a HostSnapshot after each batch
        pool: Context pool, resized per level when ``pool.auto_resize`` is set
        on_sample: Called with every Sample as soon as it is recorded
        clock: Monotonic seconds, for the deadline and level durations
        sleep: Cooldown coroutine
    """

    def __init__(
        self,
        config: BenchmarkConfig,
        runner: TaskRunner,
        sample_host: SampleHost,
        pool: ResourcePool | None = None,
        on_sample: Callable[[Sample], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._runner = runner
        self._sample_host = sample_host
        self._pool = pool
        self._on_sample = on_sample
        self._clock = clock
        self._sleep = sleep
        self._state = RampState.NOT_STARTED
        self.aggregator = MetricsAggregator(baseline_level=config.ramp.first_level)
        self.detector = DegradationDetector(config.thresholds)
        self.leak_detector = MemoryLeakDetector(config.memory_leak)

    @property
    def state(self) -> RampState:
        return self._state

    def _transition(self, state: RampState) -> None:
        logger.debug("Ramp state %s -> %s", self._state.value, state.value)
        self._state = state

    async def _run_level(self, level: int) -> None:
        urls = self._config.workload.urls
        for rep in range(self._config.workload.repetitions):
            results = await self._runner.run_level(urls, level)
            sample = self.aggregator.add_sample(level, results, self._sample_host())
            self.leak_detector.record(sample.host.process_memory_mb, sample.tasks.attempted)
            if self.detector.baseline is None:
                baseline = self.aggregator.get_baseline()
                if baseline is not None:
                    self.detector.set_baseline(baseline)
            if self._on_sample is not None:
                self._on_sample(sample)
            logger.debug(
                "Level %d batch %d: attempted=%d error_rate=%.3f p95=%.1fms",
                level, rep + 1, sample.tasks.attempted, sample.tasks.error_rate, sample.latency_ms.p95,
            )
            if self.detector.check(sample):
                break

    async def run(self) -> BenchmarkResult:
        if not self._config.workload.urls:
            raise MscRunnerError("No URLs to benchmark")
        if self._state != RampState.NOT_STARTED:
            raise MscRunnerError("RampController instances run once")

        plan = self._config.ramp
        output = self._config.output
        started_at = datetime.now(timezone.utc)
        deadline = self._clock() + output.max_runtime_minutes * 60.0
        levels_executed: list[int] = []
        stop_state = RampState.COMPLETED
        logger.info(
            "Starting ramp: strategy=%s levels=%s urls=%d repetitions=%d",
            plan.strategy.value, list(plan.levels), len(self._config.workload.urls), self._config.workload.repetitions,
        )

        for i, level in enumerate(plan.levels):
            if self._clock() >= deadline:
                stop_state = RampState.STOPPED_TIME_LIMIT
                self._transition(stop_state)
                logger.info("Maximum runtime reached before level %d, stopping", level)
                break

            self._transition(RampState.RUNNING_LEVEL)
            if self._pool is not None and self._config.pool.auto_resize and level > self._pool.capacity:
                await self._pool.resize(level)
            level_start = self._clock()
            await self._run_level(level)
            levels_executed.append(level)

            if self.detector.detected:
                stop_state = RampState.STOPPED_DEGRADATION
                self._transition(stop_state)
                break
            if i == len(plan.levels) - 1:
                break

            now = self._clock()
            wait = adaptive_wait(now - level_start, deadline - now, output)
            self._transition(RampState.COOLDOWN)
            logger.debug("Cooling down %.2fs after level %d", wait, level)
            await self._sleep(wait)

        self._transition(RampState.COMPLETED)
        samples = self.aggregator.samples
        msc = self.detector.compute_msc(samples)
        result = BenchmarkResult(
            samples=samples,
            verdict=self.detector.sticky_verdict(),
            msc=msc,
            baseline=self.aggregator.get_baseline(),
            final_state=stop_state,
            levels_executed=levels_executed,
            started_at=started_at.strftime(DATETIME_FMT),
            finished_at=datetime.now(timezone.utc).strftime(DATETIME_FMT),
            overall=self.aggregator.overall(),
            memory=self.leak_detector.stats(),
        )
        logger.info(
            "Ramp finished: msc=%d, stop_reason=%s", msc, result.stop_reason,
            extra={"msc": msc, "levels_executed": levels_executed},
        )
        return result


async def run_benchmark(
    config: BenchmarkConfig,
    fetcher: Fetcher | None = None,
    sample_host: SampleHost | None = None,
    live: bool = True,
    report_dir: str | Path | None = None,
) -> BenchmarkResult:
    """Wire gate, pool, fetcher and controller; run the ramp; optionally write reports."""
    from rich.console import Console

    from .dashboard import build_summary_table, format_sample_line
    from .report import write_reports

    console = Console()
    own_fetcher = fetcher is None
    http_fetcher = HttpFetcher(timeout=config.safety.timeout_seconds) if own_fetcher else None
    active_fetcher: Fetcher = http_fetcher if http_fetcher is not None else fetcher

    pool: ResourcePool | None = None
    if config.workload.mode == WorkloadMode.CONTEXT:
        pool = ResourcePool(
            capacity=config.pool.capacity,
            factory=http_fetcher.new_context_client if http_fetcher is not None else None,
            closer=HttpFetcher.close_context_client if http_fetcher is not None else None,
            enable_pooling=config.pool.enable_pooling,
            memory_limit=config.pool.memory_limit_mb,
            timeout=config.pool.context_timeout_seconds,
            acquire_timeout=config.pool.acquire_timeout_seconds,
        )

    def on_sample(sample: Sample) -> None:
        if live:
            console.print(format_sample_line(sample))

    transport = active_fetcher.transport if isinstance(active_fetcher, HttpFetcher) else None
    robots = RobotsPolicy(robots_fetcher(config.safety.timeout_seconds, transport))
    gate = SafetyGate(config.safety, robots=robots)
    runner = TaskRunner(gate, active_fetcher, pool)
    controller = RampController(
        config,
        runner,
        sample_host or HostSampler(),
        pool=pool,
        on_sample=on_sample,
    )
    try:
        result = await controller.run()
    finally:
        if pool is not None:
            await pool.cleanup()
        if http_fetcher is not None:
            await http_fetcher.aclose()

    if live:
        console.print(build_summary_table(result))
    if report_dir is not None:
        paths = write_reports(report_dir, result, config)
        if live:
            for p in paths:
                console.print(f"[green]Report written to[/green] {p}")
    return result
