"""Unit tests for the JSONL sample log and JSON summary."""

from __future__ import annotations

from pathlib import Path

import orjson

from mscbench.models import BenchmarkConfig, BenchmarkResult, MemoryStats
from mscbench.report import build_summary, generate_json_report, write_reports, write_sample_log


def test_write_sample_log_one_line_per_sample(tmp_path: Path, degraded_result: BenchmarkResult) -> None:
    out = tmp_path / "nested" / "samples.jsonl"
    write_sample_log(out, degraded_result.samples)
    lines = out.read_bytes().splitlines()
    assert len(lines) == 3
    first = orjson.loads(lines[0])
    assert first["level"] == 1
    assert first["latency_ms"]["p95"] == 200.0
    assert [orjson.loads(line)["level"] for line in lines] == [1, 2, 4]


def test_build_summary_fields(degraded_result: BenchmarkResult, sample_config: BenchmarkConfig) -> None:
    summary = build_summary(degraded_result, sample_config)
    assert summary["msc"] == 2
    assert summary["degradation"]["detected"] is True
    assert summary["degradation"]["triggering_level"] == 4
    assert summary["stop_reason"].startswith("p95 latency")
    assert summary["final_state"] == "stopped_degradation"
    assert summary["levels_executed"] == [1, 2, 4]
    assert summary["baseline"]["p95"] == 200.0
    assert summary["config"]["ramp"] == {"strategy": "exponential", "levels": [1, 2, 4]}
    assert summary["samples"] == 3


def test_build_summary_without_baseline(degraded_result: BenchmarkResult, sample_config: BenchmarkConfig) -> None:
    degraded_result.baseline = None
    assert build_summary(degraded_result, sample_config)["baseline"] is None


def test_generate_json_report(tmp_path: Path, degraded_result: BenchmarkResult, sample_config: BenchmarkConfig) -> None:
    out = tmp_path / "summary.json"
    generate_json_report(out, degraded_result, sample_config)
    data = orjson.loads(out.read_bytes())
    assert data["msc"] == 2
    assert data["config"]["urls"] == ["https://a.example/"]


def test_write_reports_names(tmp_path: Path, degraded_result: BenchmarkResult, sample_config: BenchmarkConfig) -> None:
    log_path, summary_path = write_reports(tmp_path / "out", degraded_result, sample_config)
    assert log_path.name.startswith("samples_") and log_path.suffix == ".jsonl"
    assert summary_path.name.startswith("summary_") and summary_path.suffix == ".json"
    assert log_path.exists() and summary_path.exists()


def test_build_summary_carries_browser_settings(degraded_result: BenchmarkResult, sample_config: BenchmarkConfig) -> None:
    summary = build_summary(degraded_result, sample_config)
    assert summary["config"]["engine"] == "chromium"
    assert summary["config"]["headless"] is True


def test_build_summary_memory_tracking(degraded_result: BenchmarkResult, sample_config: BenchmarkConfig) -> None:
    assert build_summary(degraded_result, sample_config)["memory_leak"] is None

    degraded_result.memory = MemoryStats(
        current_mb=180.456,
        peak_mb=181.0,
        baseline_mb=120.0,
        growth_percent=50.38,
        leak_detected=True,
        history_length=3,
        request_count=7,
        recommendations=("Memory usage 180.5MB exceeds the 150.0MB threshold",),
    )
    memory = build_summary(degraded_result, sample_config)["memory_leak"]
    assert memory["current_mb"] == 180.46
    assert memory["leak_detected"] is True
    assert memory["request_count"] == 7
    assert memory["recommendations"] == ["Memory usage 180.5MB exceeds the 150.0MB threshold"]
