"""Unit tests for percentile math and MetricsAggregator."""

from __future__ import annotations

import asyncio
import logging
import math

from mscbench.engine import TaskRunner
from mscbench.metrics import MetricsAggregator, latency_percentiles, percentile
from mscbench.models import HostSnapshot, SafetyConfig, TaskResult
from mscbench.safety import SafetyGate

HOST = HostSnapshot(cpu_usage=0.2, memory_usage=0.3)


def _ok(ms: float) -> TaskResult:
    return TaskResult(url="https://a.com/", success=True, status_code=200, duration_ms=ms)


def _fail(ms: float = 0.0) -> TaskResult:
    return TaskResult(url="https://a.com/", success=False, status_code=None, duration_ms=ms, error="boom")


def test_percentile_empty_is_zero() -> None:
    assert percentile([], 0.95) == 0.0


def test_median_even_count_averages_middle_pair() -> None:
    assert percentile([4.0, 1.0, 3.0, 2.0], 0.5) == 2.5


def test_median_odd_count_picks_middle() -> None:
    assert percentile([5.0, 1.0, 3.0], 0.5) == 3.0


def test_nearest_rank_index_is_floor_and_clamped() -> None:
    values = [float(v) for v in range(1, 11)]  # 1..10
    assert percentile(values, 0.9) == 10.0  # floor(10 * 0.9) = 9
    assert percentile(values, 0.95) == 10.0  # clamped to last index
    assert percentile(values, 0.0) == 1.0


def test_zero_nan_none_excluded() -> None:
    assert percentile([0.0, None, math.nan, 7.0], 0.5) == 7.0


def test_latency_percentiles_ordering() -> None:
    lp = latency_percentiles([float(v) for v in range(1, 101)])
    assert lp.p50 == 50.5
    assert lp.p50 <= lp.p90 <= lp.p95 <= lp.p99


def test_sample_counts_and_error_rate() -> None:
    agg = MetricsAggregator(clock=lambda: 123.0)
    sample = agg.add_sample(4, [_ok(10), _ok(20), _ok(30), _fail()], HOST)
    assert sample.level == 4
    assert sample.timestamp == 123.0
    assert sample.tasks.attempted == 4
    assert sample.tasks.successful == 3
    assert sample.tasks.failed == 1
    assert sample.tasks.error_rate == 0.25
    assert sample.latency_ms.p50 == 20.0
    assert sample.host is HOST


def test_failed_durations_excluded_from_latency() -> None:
    agg = MetricsAggregator()
    sample = agg.add_sample(1, [_ok(10), _fail(9999)], HOST)
    assert sample.latency_ms.p99 == 10.0


def test_empty_batch_sample() -> None:
    """An empty URL list yields no results and a zeroed Sample."""

    async def _run():
        gate = SafetyGate(SafetyConfig())
        runner = TaskRunner(gate, fetcher=None)
        return await runner.run_level([], 10)

    results = asyncio.run(_run())
    assert results == []
    sample = MetricsAggregator().add_sample(10, results, HOST)
    assert sample.tasks.attempted == 0
    assert sample.tasks.error_rate == 0.0
    assert sample.latency_ms.p95 == 0.0


def test_baseline_is_first_sample_at_first_level() -> None:
    agg = MetricsAggregator(baseline_level=2)
    agg.add_sample(1, [_ok(5)], HOST)
    assert agg.get_baseline() is None
    agg.add_sample(2, [_ok(100)], HOST)
    agg.add_sample(2, [_ok(300)], HOST)
    baseline = agg.get_baseline()
    assert baseline is not None
    assert baseline.p95 == 100.0


def test_baseline_defaults_to_first_sample() -> None:
    agg = MetricsAggregator()
    assert agg.get_baseline() is None
    agg.add_sample(8, [_ok(40)], HOST)
    assert agg.get_baseline().p50 == 40.0


def test_samples_log_is_append_only_copy() -> None:
    agg = MetricsAggregator()
    agg.add_sample(1, [_ok(1)], HOST)
    agg.add_sample(2, [_ok(2)], HOST)
    log = agg.samples
    log.clear()
    assert [s.level for s in agg.samples] == [1, 2]


def test_overall_streams_all_batches() -> None:
    agg = MetricsAggregator()
    agg.add_sample(1, [_ok(10)] * 50, HOST)
    agg.add_sample(2, [_ok(10)] * 50 + [_fail()] * 10, HOST)
    overall = agg.overall()
    assert overall.attempted == 110
    assert overall.failed == 10
    assert abs(overall.p50 - 10.0) < 1e-6


def test_overall_empty_is_zero() -> None:
    overall = MetricsAggregator().overall()
    assert overall.attempted == 0
    assert overall.p95 == 0.0


def test_sample_to_dict_shape() -> None:
    sample = MetricsAggregator(clock=lambda: 1.0).add_sample(3, [_ok(12)], HOST)
    d = sample.to_dict()
    assert d["level"] == 3
    assert set(d) == {"level", "timestamp", "tasks", "latency_ms", "host"}
    assert set(d["latency_ms"]) == {"p50", "p90", "p95", "p99"}
    assert d["host"]["load_average"] == [0.0, 0.0, 0.0]


def test_all_failed_baseline_logs_warning(caplog) -> None:
    agg = MetricsAggregator()
    with caplog.at_level(logging.WARNING, logger="mscbench"):
        agg.add_sample(1, [_fail(), _fail()], HOST)
    assert agg.get_baseline().p95 == 0.0
    assert "no successful task latencies (2/2 failed)" in caplog.text


def test_healthy_baseline_does_not_warn(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="mscbench"):
        MetricsAggregator().add_sample(1, [_ok(10)], HOST)
    assert "no successful task latencies" not in caplog.text
