"""Data models for mscbench.

Value objects produced during a run (TaskResult, Sample, Baseline, verdicts)
are frozen; configuration objects are plain slotted dataclasses like the
rest of the hot path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .exceptions import MscConfigError


class RampStrategy(str, Enum):
    """How the concurrency levels of a ramp were produced."""

    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    CUSTOM = "custom"


class WorkloadMode(str, Enum):
    """How a task reaches the target."""

    HTTP = "http"  # Shared client, no pool
    CONTEXT = "context"  # Isolated client per pool entry


class RampState(str, Enum):
    """Lifecycle of one RampController run."""

    NOT_STARTED = "not_started"
    RUNNING_LEVEL = "running_level"
    COOLDOWN = "cooldown"
    STOPPED_DEGRADATION = "stopped_degradation"
    STOPPED_TIME_LIMIT = "stopped_time_limit"
    COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class RampPlan:
    """Ordered concurrency levels. Visited in sequence order, not sorted."""

    strategy: RampStrategy
    levels: tuple[int, ...]

    def __post_init__(self) -> None:
        if not self.levels:
            raise MscConfigError("ramp plan must contain at least one level")
        for level in self.levels:
            if not isinstance(level, int) or isinstance(level, bool) or level < 1:
                raise MscConfigError(
                    "ramp levels must be positive integers",
                    context={"level": level},
                )

    @property
    def first_level(self) -> int:
        return self.levels[0]


@dataclass(frozen=True, slots=True)
class TaskResult:
    """Outcome of a single task attempt. One per attempt, never retried."""

    url: str
    success: bool
    status_code: int | None
    duration_ms: float
    error: str | None = None
    timestamp: float = 0.0


@dataclass(frozen=True, slots=True)
class TaskCounts:
    attempted: int
    successful: int
    failed: int
    error_rate: float


@dataclass(frozen=True, slots=True)
class LatencyPercentiles:
    p50: float = 0.0
    p90: float = 0.0
    p95: float = 0.0
    p99: float = 0.0


@dataclass(frozen=True, slots=True)
class HostSnapshot:
    """Host utilisation. cpu/memory are fractions in [0, 1]; process memory is the harness RSS in MB."""

    cpu_usage: float
    memory_usage: float
    load_average: tuple[float, float, float] = (0.0, 0.0, 0.0)
    process_memory_mb: float = 0.0


@dataclass(frozen=True, slots=True)
class Sample:
    """Metrics for one batch of tasks at one concurrency level."""

    level: int
    timestamp: float
    tasks: TaskCounts
    latency_ms: LatencyPercentiles
    host: HostSnapshot

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "timestamp": self.timestamp,
            "tasks": {
                "attempted": self.tasks.attempted,
                "successful": self.tasks.successful,
                "failed": self.tasks.failed,
                "error_rate": self.tasks.error_rate,
            },
            "latency_ms": {
                "p50": self.latency_ms.p50,
                "p90": self.latency_ms.p90,
                "p95": self.latency_ms.p95,
                "p99": self.latency_ms.p99,
            },
            "host": {
                "cpu_usage": self.host.cpu_usage,
                "memory_usage": self.host.memory_usage,
                "load_average": list(self.host.load_average),
                "process_memory_mb": self.host.process_memory_mb,
            },
        }


@dataclass(frozen=True, slots=True)
class Baseline:
    p50: float
    p95: float
    p99: float


@dataclass(slots=True)
class PoolEntry:
    """A reusable execution context owned by ResourcePool.

    ``slot`` is the arena index for tracked entries and None for temporary
    ones. ``resource`` is whatever the pool factory produced (e.g. an
    isolated HTTP client).
    """

    id: str
    created_at: float
    memory_limit: int
    timeout: float
    busy: bool = False
    slot: int | None = None
    resource: Any = None

    @property
    def temporary(self) -> bool:
        return self.slot is None


@dataclass(frozen=True, slots=True)
class PoolStatus:
    capacity: int
    total: int
    available: int
    in_use: int


@dataclass(frozen=True, slots=True)
class DegradationVerdict:
    detected: bool = False
    reason: str = ""
    triggering_level: int | None = None


# --- Configuration ---


@dataclass(slots=True)
class WorkloadConfig:
    """What each task loads.

    ``engine`` and ``headless`` describe the browser an external fetch
    capability should drive. The built-in HttpFetcher does not use them; they
    are carried through to the run summary so results stay attributable.
    """

    urls: list[str]
    mode: WorkloadMode = WorkloadMode.HTTP
    engine: str = "chromium"
    headless: bool = True
    repetitions: int = 1


@dataclass(slots=True)
class ThresholdConfig:
    latency_multiplier: float = 2.0
    cpu_utilization: float = 0.90
    memory_utilization: float = 0.80
    error_rate: float = 0.01


@dataclass(slots=True)
class SafetyConfig:
    rps: int = 50
    max_concurrent: int = 100
    max_total: int = 10_000
    timeout_seconds: float = 30.0
    robots_respect: bool = True


@dataclass(slots=True)
class PoolConfig:
    capacity: int = 5
    enable_pooling: bool = True
    memory_limit_mb: int = 100
    context_timeout_seconds: float = 30.0
    acquire_timeout_seconds: float = 30.0
    auto_resize: bool = False


@dataclass(slots=True)
class OutputConfig:
    dir: str = "./artifacts"
    max_runtime_minutes: float = 30.0
    min_level_seconds: float = 45.0
    cooldown_floor_seconds: float = 1.0
    cooldown_fraction: float = 0.1


@dataclass(slots=True)
class MemoryLeakConfig:
    """Harness memory tracking. Advisory only: a leak never stops the ramp."""

    enabled: bool = False
    threshold_mb: float = 512.0
    max_memory_growth_percent: float = 20.0


@dataclass(slots=True)
class BenchmarkConfig:
    """Full run configuration, as loaded from YAML plus CLI overrides."""

    workload: WorkloadConfig
    ramp: RampPlan
    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)
    safety: SafetyConfig = field(default_factory=SafetyConfig)
    pool: PoolConfig = field(default_factory=PoolConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    memory_leak: MemoryLeakConfig = field(default_factory=MemoryLeakConfig)


# --- Run output ---


@dataclass(frozen=True, slots=True)
class OverallLatency:
    """Run-wide summary across every batch."""

    attempted: int = 0
    failed: int = 0
    p50: float = 0.0
    p95: float = 0.0
    p99: float = 0.0


@dataclass(frozen=True, slots=True)
class MemoryStats:
    """Harness memory over the run, in MB. ``growth_percent`` is relative to the baseline."""

    current_mb: float
    peak_mb: float
    baseline_mb: float
    growth_percent: float
    leak_detected: bool
    history_length: int
    request_count: int
    recommendations: tuple[str, ...] = ()


@dataclass(slots=True)
class BenchmarkResult:
    samples: list[Sample]
    verdict: DegradationVerdict
    msc: int
    baseline: Baseline | None
    final_state: RampState
    levels_executed: list[int]
    started_at: str
    finished_at: str
    overall: OverallLatency = field(default_factory=OverallLatency)
    memory: MemoryStats | None = None

    @property
    def stop_reason(self) -> str:
        if self.verdict.detected:
            return self.verdict.reason
        if self.final_state == RampState.STOPPED_TIME_LIMIT:
            return "Maximum runtime reached"
        return "No degradation detected"
