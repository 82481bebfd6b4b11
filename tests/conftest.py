"""Pytest fixtures for mscbench tests."""

from __future__ import annotations

import tempfile
from pathlib import Path

import pytest

from mscbench.models import (
    BenchmarkConfig,
    BenchmarkResult,
    DegradationVerdict,
    HostSnapshot,
    LatencyPercentiles,
    RampPlan,
    RampState,
    RampStrategy,
    Sample,
    TaskCounts,
    WorkloadConfig,
)


@pytest.fixture
def tmp_path_config() -> Path:
    """Write a minimal valid run config to a temp file."""
    content = """
workload:
  mode: http
  urls:
    - https://a.example/
    - https://b.example/page
  repetitions: 2
ramp: "exp:1,2,4"
thresholds:
  latency_multiplier: 3.0
safety:
  rps: 20
output:
  min_level_seconds: 5
"""
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        f.write(content)
        path = Path(f.name)
    yield path
    path.unlink(missing_ok=True)


@pytest.fixture
def sample_config() -> BenchmarkConfig:
    return BenchmarkConfig(
        workload=WorkloadConfig(urls=["https://a.example/"]),
        ramp=RampPlan(RampStrategy.EXPONENTIAL, (1, 2, 4)),
    )


def _sample(level: int, p95: float, error_rate: float = 0.0) -> Sample:
    failed = round(level * error_rate)
    return Sample(
        level=level,
        timestamp=1700000000.0 + level,
        tasks=TaskCounts(attempted=level, successful=level - failed, failed=failed, error_rate=error_rate),
        latency_ms=LatencyPercentiles(p50=p95 / 2, p90=p95 * 0.9, p95=p95, p99=p95 * 1.1),
        host=HostSnapshot(cpu_usage=0.25, memory_usage=0.5, load_average=(0.5, 0.4, 0.3)),
    )


@pytest.fixture
def degraded_result() -> BenchmarkResult:
    """Three levels, the last one over the latency threshold."""
    from mscbench.models import Baseline

    samples = [_sample(1, 200.0), _sample(2, 250.0), _sample(4, 500.0, error_rate=0.25)]
    return BenchmarkResult(
        samples=samples,
        verdict=DegradationVerdict(
            detected=True,
            reason="p95 latency 500.0ms > 2.0x baseline p95 200.0ms",
            triggering_level=4,
        ),
        msc=2,
        baseline=Baseline(p50=100.0, p95=200.0, p99=220.0),
        final_state=RampState.STOPPED_DEGRADATION,
        levels_executed=[1, 2, 4],
        started_at="2024-01-01 00:00:00 UTC",
        finished_at="2024-01-01 00:03:00 UTC",
    )
