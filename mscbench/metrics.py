"""Per-batch metrics aggregation and the run's sample log.

Per-batch percentiles are exact (sorted list, nearest-rank with a median
special case) because batches are small and the degradation decision hinges
on them. The run-wide summary streams every successful duration through a
T-Digest so it stays bounded however long the ramp runs.
"""

from __future__ import annotations

import math
import time
from typing import Callable, Iterable, Sequence

from tdigest import TDigest

from .logging_config import get_logger
from .models import (
    Baseline,
    HostSnapshot,
    LatencyPercentiles,
    OverallLatency,
    Sample,
    TaskCounts,
    TaskResult,
)

logger = get_logger("metrics")


def _valid_durations(values: Iterable[float | None]) -> list[float]:
    """Drop missing, NaN and zero durations."""
    return [v for v in values if v is not None and not math.isnan(v) and v != 0]


def _percentile_sorted(sorted_values: Sequence[float], p: float) -> float:
    n = len(sorted_values)
    if n == 0:
        return 0.0
    if p == 0.5 and n % 2 == 0:
        return (sorted_values[n // 2 - 1] + sorted_values[n // 2]) / 2.0
    idx = min(max(math.floor(n * p), 0), n - 1)
    return sorted_values[idx]


def percentile(values: Iterable[float | None], p: float) -> float:
    """Nearest-rank percentile, ``p`` in [0, 1]. The median of an even list averages the middle pair."""
    return _percentile_sorted(sorted(_valid_durations(values)), p)


def latency_percentiles(durations: Iterable[float | None]) -> LatencyPercentiles:
    ordered = sorted(_valid_durations(durations))
    return LatencyPercentiles(
        p50=_percentile_sorted(ordered, 0.5),
        p90=_percentile_sorted(ordered, 0.9),
        p95=_percentile_sorted(ordered, 0.95),
        p99=_percentile_sorted(ordered, 0.99),
    )


def _percentile_from_digest(digest: TDigest, p: float) -> float:
    """Get percentile (0-100) from T-Digest. Returns 0.0 if empty."""
    try:
        return digest.percentile(p) or 0.0
    except (ValueError, IndexError, ZeroDivisionError):
        return 0.0


class MetricsAggregator:
    """Turns task batches into Samples; owns the append-only sample log and the baseline.

    Args:
        baseline_level: Level whose first Sample becomes the Baseline
            (the ramp's first level). None means the very first Sample.
        clock: Wall-clock source for Sample timestamps
    """

    __slots__ = ("_samples", "_baseline", "_baseline_level", "_clock", "_digest", "_attempted", "_failed")

    def __init__(self, baseline_level: int | None = None, clock: Callable[[], float] = time.time) -> None:
        self._samples: list[Sample] = []
        self._baseline: Baseline | None = None
        self._baseline_level = baseline_level
        self._clock = clock
        self._digest = TDigest()
        self._attempted = 0
        self._failed = 0

    @property
    def samples(self) -> list[Sample]:
        """Copy of the sample log, in chronological order."""
        return list(self._samples)

    def get_baseline(self) -> Baseline | None:
        return self._baseline

    def add_sample(self, level: int, results: Sequence[TaskResult], host: HostSnapshot) -> Sample:
        attempted = len(results)
        successful = sum(1 for r in results if r.success)
        failed = attempted - successful
        durations = _valid_durations(r.duration_ms for r in results if r.success)

        sample = Sample(
            level=level,
            timestamp=self._clock(),
            tasks=TaskCounts(
                attempted=attempted,
                successful=successful,
                failed=failed,
                error_rate=failed / attempted if attempted else 0.0,
            ),
            latency_ms=latency_percentiles(durations),
            host=host,
        )
        self._samples.append(sample)

        self._attempted += attempted
        self._failed += failed
        if durations:
            self._digest.batch_update(durations)

        if self._baseline is None and (self._baseline_level is None or level == self._baseline_level):
            self._baseline = Baseline(p50=sample.latency_ms.p50, p95=sample.latency_ms.p95, p99=sample.latency_ms.p99)
            logger.info(
                "Baseline captured at level %d: p50=%.1fms p95=%.1fms p99=%.1fms",
                level, self._baseline.p50, self._baseline.p95, self._baseline.p99,
            )
            if self._baseline.p95 == 0:
                logger.warning(
                    "Baseline at level %d has no successful task latencies (%d/%d failed); "
                    "any later successful batch will exceed the latency threshold",
                    level, failed, attempted,
                )
        return sample

    def overall(self) -> OverallLatency:
        """Run-wide totals and streaming percentiles across all batches."""
        return OverallLatency(
            attempted=self._attempted,
            failed=self._failed,
            p50=_percentile_from_digest(self._digest, 50),
            p95=_percentile_from_digest(self._digest, 95),
            p99=_percentile_from_digest(self._digest, 99),
        )
