"""YAML configuration loader for mscbench runs."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from .exceptions import MscConfigError
from .logging_config import get_logger
from .models import (
    BenchmarkConfig,
    MemoryLeakConfig,
    OutputConfig,
    PoolConfig,
    RampPlan,
    RampStrategy,
    SafetyConfig,
    ThresholdConfig,
    WorkloadConfig,
    WorkloadMode,
)

logger = get_logger("config")

DEFAULT_URLS = ["https://example.org/"]
DEFAULT_RAMP = "exp:1,2,4,8,16,32"

_STRATEGY_ALIASES = {
    "exp": RampStrategy.EXPONENTIAL,
    "exponential": RampStrategy.EXPONENTIAL,
    "linear": RampStrategy.LINEAR,
    "custom": RampStrategy.CUSTOM,
}


def _parse_levels(raw: Any) -> tuple[int, ...]:
    if isinstance(raw, str):
        raw = [p for p in (s.strip() for s in raw.split(",")) if p]
    if not isinstance(raw, (list, tuple)):
        raise MscConfigError("ramp levels must be a list of integers", context={"levels": raw})
    levels: list[int] = []
    for v in raw:
        if isinstance(v, bool):
            raise MscConfigError("ramp levels must be integers", context={"level": v})
        try:
            levels.append(int(v))
        except (TypeError, ValueError) as e:
            raise MscConfigError("ramp levels must be integers", context={"level": v}, original_error=e) from e
    return tuple(levels)


def _strategy(name: str) -> RampStrategy:
    try:
        return _STRATEGY_ALIASES[name.strip().lower()]
    except KeyError:
        raise MscConfigError(f"Unknown ramp strategy: {name}") from None


def _linear_levels(maximum: Any) -> tuple[int, ...]:
    try:
        top = int(maximum)
    except (TypeError, ValueError) as e:
        raise MscConfigError("linear ramp needs an integer maximum", context={"max": maximum}, original_error=e) from e
    if top < 1:
        raise MscConfigError("linear ramp maximum must be >= 1", context={"max": top})
    return tuple(range(1, top + 1))


def parse_ramp(value: Any) -> RampPlan:
    """Build a RampPlan from ``exp:1,2,4`` / ``linear:8`` / ``custom:1,3,5``, a mapping, or a bare list."""
    if isinstance(value, RampPlan):
        return value
    if isinstance(value, str):
        head, sep, tail = value.partition(":")
        if not sep:
            raise MscConfigError(f"Invalid ramp specification: {value}")
        strategy = _strategy(head)
        if strategy == RampStrategy.LINEAR:
            return RampPlan(strategy, _linear_levels(tail))
        return RampPlan(strategy, _parse_levels(tail))
    if isinstance(value, dict):
        strategy = _strategy(str(value.get("strategy") or "custom"))
        if strategy == RampStrategy.LINEAR and "levels" not in value:
            return RampPlan(strategy, _linear_levels(value.get("max")))
        return RampPlan(strategy, _parse_levels(value.get("levels") or []))
    if isinstance(value, (list, tuple)):
        return RampPlan(RampStrategy.CUSTOM, _parse_levels(value))
    raise MscConfigError("ramp must be a string, mapping or list", context={"ramp": value})


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    section = raw.get(name) or {}
    if not isinstance(section, dict):
        raise MscConfigError(f"'{name}' must be a mapping", context={"actual_type": type(section).__name__})
    return section


def _mode(value: Any) -> WorkloadMode:
    try:
        return WorkloadMode(str(value).strip().lower())
    except ValueError:
        raise MscConfigError(f"Unknown workload mode: {value}") from None


def config_from_dict(raw: dict[str, Any]) -> BenchmarkConfig:
    """Build and validate a BenchmarkConfig from a parsed YAML mapping."""
    workload = _section(raw, "workload")
    thresholds = _section(raw, "thresholds")
    safety = _section(raw, "safety")
    pool = _section(raw, "pool")
    output = _section(raw, "output")
    memory_leak = _section(raw, "memory_leak")
    urls = workload.get("urls", DEFAULT_URLS)
    if isinstance(urls, str):
        urls = [urls]

    try:
        config = BenchmarkConfig(
            workload=WorkloadConfig(
                urls=[str(u) for u in urls],
                mode=_mode(workload.get("mode", "http")),
                engine=str(workload.get("engine", "chromium")),
                headless=bool(workload.get("headless", True)),
                repetitions=int(workload.get("repetitions", workload.get("per_browser_repetitions", 1))),
            ),
            ramp=parse_ramp(raw.get("ramp", DEFAULT_RAMP)),
            thresholds=ThresholdConfig(
                latency_multiplier=float(thresholds.get("latency_multiplier", 2.0)),
                cpu_utilization=float(thresholds.get("cpu_utilization", 0.90)),
                memory_utilization=float(thresholds.get("memory_utilization", 0.80)),
                error_rate=float(thresholds.get("error_rate", 0.01)),
            ),
            safety=SafetyConfig(
                rps=int(safety.get("rps", 50)),
                max_concurrent=int(safety.get("max_concurrent", 100)),
                max_total=int(safety.get("max_total", 10_000)),
                timeout_seconds=float(safety.get("timeout_seconds", 30)),
                robots_respect=bool(safety.get("robots_respect", True)),
            ),
            pool=PoolConfig(
                capacity=int(pool.get("capacity", 5)),
                enable_pooling=bool(pool.get("enable_pooling", True)),
                memory_limit_mb=int(pool.get("memory_limit_mb", 100)),
                context_timeout_seconds=float(pool.get("context_timeout_seconds", 30)),
                acquire_timeout_seconds=float(pool.get("acquire_timeout_seconds", 30)),
                auto_resize=bool(pool.get("auto_resize", False)),
            ),
            output=OutputConfig(
                dir=str(output.get("dir", "./artifacts")),
                max_runtime_minutes=float(output.get("max_runtime_minutes", 30)),
                min_level_seconds=float(output.get("min_level_seconds", 45)),
                cooldown_floor_seconds=float(output.get("cooldown_floor_seconds", 1.0)),
                cooldown_fraction=float(output.get("cooldown_fraction", 0.1)),
            ),
            memory_leak=MemoryLeakConfig(
                enabled=bool(memory_leak.get("enabled", False)),
                threshold_mb=float(memory_leak.get("threshold_mb", 512)),
                max_memory_growth_percent=float(memory_leak.get("max_memory_growth_percent", 20)),
            ),
        )
    except (TypeError, ValueError) as e:
        raise MscConfigError(f"Invalid config value: {e}", original_error=e) from e

    validate_config(config)
    return config


def validate_config(c: BenchmarkConfig) -> None:
    """Validate bounds. Raises MscConfigError if invalid."""
    if c.workload.repetitions < 1:
        raise MscConfigError("workload.repetitions must be >= 1")
    t = c.thresholds
    if t.latency_multiplier <= 0:
        raise MscConfigError("thresholds.latency_multiplier must be > 0")
    for name in ("cpu_utilization", "memory_utilization", "error_rate"):
        value = getattr(t, name)
        if not 0 <= value <= 1:
            raise MscConfigError(f"thresholds.{name} must be between 0 and 1", context={name: value})
    s = c.safety
    if s.rps < 1:
        raise MscConfigError("safety.rps must be >= 1")
    if s.max_concurrent < 1:
        raise MscConfigError("safety.max_concurrent must be >= 1")
    if s.max_total < 0:
        raise MscConfigError("safety.max_total must be >= 0")
    if s.timeout_seconds <= 0:
        raise MscConfigError("safety.timeout_seconds must be > 0")
    p = c.pool
    if p.capacity < 1:
        raise MscConfigError("pool.capacity must be >= 1")
    if p.acquire_timeout_seconds < 0:
        raise MscConfigError("pool.acquire_timeout_seconds must be >= 0")
    o = c.output
    if o.max_runtime_minutes <= 0:
        raise MscConfigError("output.max_runtime_minutes must be > 0")
    if o.min_level_seconds < 0 or o.cooldown_floor_seconds < 0:
        raise MscConfigError("output.min_level_seconds and output.cooldown_floor_seconds must be >= 0")
    if not 0 <= o.cooldown_fraction <= 1:
        raise MscConfigError("output.cooldown_fraction must be between 0 and 1")
    m = c.memory_leak
    if m.threshold_mb <= 0:
        raise MscConfigError("memory_leak.threshold_mb must be > 0")
    if m.max_memory_growth_percent < 0:
        raise MscConfigError("memory_leak.max_memory_growth_percent must be >= 0")


def load_config(path: str | Path) -> BenchmarkConfig:
    """Load run configuration from YAML file.

    Raises:
        MscConfigError: If file not found, invalid YAML, or validation fails
    """
    p = Path(path)
    if not p.exists():
        raise MscConfigError(f"Config file not found: {path}", context={"path": str(path)})

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        logger.exception("Failed to parse YAML config file")
        raise MscConfigError(
            f"Invalid YAML syntax in config file: {e}", context={"path": str(path)}, original_error=e
        ) from e
    except OSError as e:
        logger.exception("Failed to read config file")
        raise MscConfigError(f"Cannot read config file: {e}", context={"path": str(path)}, original_error=e) from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise MscConfigError(
            "Config must be a YAML object/dictionary",
            context={"path": str(path), "actual_type": type(raw).__name__},
        )

    try:
        config = config_from_dict(raw)
    except MscConfigError as e:
        raise e.with_context(path=str(path))
    logger.debug("Loaded config: levels=%s, urls=%d", list(config.ramp.levels), len(config.workload.urls))
    return config


def default_config_dict() -> dict[str, Any]:
    return {
        "workload": {"mode": "http", "engine": "chromium", "headless": True, "urls": list(DEFAULT_URLS), "repetitions": 5},
        "ramp": {"strategy": "exponential", "levels": [1, 2, 4, 8, 16, 32]},
        "thresholds": {"latency_multiplier": 2.0, "cpu_utilization": 0.9, "memory_utilization": 0.8, "error_rate": 0.01},
        "safety": {"rps": 50, "max_concurrent": 100, "max_total": 10000, "timeout_seconds": 30, "robots_respect": True},
        "pool": {"capacity": 5, "enable_pooling": True, "memory_limit_mb": 100, "context_timeout_seconds": 30,
                 "acquire_timeout_seconds": 30, "auto_resize": False},
        "output": {"dir": "./artifacts", "max_runtime_minutes": 30, "min_level_seconds": 45,
                   "cooldown_floor_seconds": 1.0, "cooldown_fraction": 0.1},
        "memory_leak": {"enabled": False, "threshold_mb": 512, "max_memory_growth_percent": 20},
    }


def write_default_config(path: str | Path) -> Path:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(yaml.safe_dump(default_config_dict(), sort_keys=False), encoding="utf-8")
    return p
