"""Machine-readable run output: JSONL sample log and JSON summary (orjson)."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Sequence

import orjson

from .models import BenchmarkConfig, BenchmarkResult, MemoryStats, Sample

REPORT_TIMESTAMP_FMT = "%Y%m%d_%H%M%S"
SAMPLE_LOG_STEM = "samples"
SUMMARY_STEM = "summary"


def write_sample_log(output_path: str | Path, samples: Sequence[Sample]) -> None:
    """One Sample per line, in log order."""
    out = Path(output_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    with out.open("wb") as f:
        for s in samples:
            f.write(orjson.dumps(s.to_dict()))
            f.write(b"\n")


def _memory_summary(memory: MemoryStats | None) -> dict[str, Any] | None:
    if memory is None:
        return None
    return {
        "current_mb": round(memory.current_mb, 2),
        "peak_mb": round(memory.peak_mb, 2),
        "baseline_mb": round(memory.baseline_mb, 2),
        "growth_percent": round(memory.growth_percent, 2),
        "leak_detected": memory.leak_detected,
        "history_length": memory.history_length,
        "request_count": memory.request_count,
        "recommendations": list(memory.recommendations),
    }


def build_summary(result: BenchmarkResult, config: BenchmarkConfig) -> dict[str, Any]:
    baseline = result.baseline
    return {
        "msc": result.msc,
        "degradation": {
            "detected": result.verdict.detected,
            "reason": result.verdict.reason,
            "triggering_level": result.verdict.triggering_level,
        },
        "stop_reason": result.stop_reason,
        "final_state": result.final_state.value,
        "start_datetime": result.started_at,
        "end_datetime": result.finished_at,
        "levels_executed": result.levels_executed,
        "baseline": (
            {"p50": baseline.p50, "p95": baseline.p95, "p99": baseline.p99} if baseline is not None else None
        ),
        "overall": {
            "attempted": result.overall.attempted,
            "failed": result.overall.failed,
            "p50_ms": round(result.overall.p50, 4),
            "p95_ms": round(result.overall.p95, 4),
            "p99_ms": round(result.overall.p99, 4),
        },
        "config": {
            "mode": config.workload.mode.value,
            "engine": config.workload.engine,
            "headless": config.workload.headless,
            "urls": config.workload.urls,
            "repetitions": config.workload.repetitions,
            "ramp": {"strategy": config.ramp.strategy.value, "levels": list(config.ramp.levels)},
            "thresholds": {
                "latency_multiplier": config.thresholds.latency_multiplier,
                "cpu_utilization": config.thresholds.cpu_utilization,
                "memory_utilization": config.thresholds.memory_utilization,
                "error_rate": config.thresholds.error_rate,
            },
        },
        "memory_leak": _memory_summary(result.memory),
        "samples": len(result.samples),
    }


def generate_json_report(output_path: str | Path, result: BenchmarkResult, config: BenchmarkConfig) -> None:
    out = Path(output_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(orjson.dumps(build_summary(result, config), option=orjson.OPT_INDENT_2))


def write_reports(report_dir: str | Path, result: BenchmarkResult, config: BenchmarkConfig) -> list[Path]:
    """Write both files into ``report_dir`` with a UTC timestamp suffix so runs do not overwrite."""
    base = Path(report_dir)
    stamp = datetime.now(timezone.utc).strftime(REPORT_TIMESTAMP_FMT)
    log_path = base / f"{SAMPLE_LOG_STEM}_{stamp}.jsonl"
    summary_path = base / f"{SUMMARY_STEM}_{stamp}.json"
    write_sample_log(log_path, result.samples)
    generate_json_report(summary_path, result, config)
    return [log_path, summary_path]
