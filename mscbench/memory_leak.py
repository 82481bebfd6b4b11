"""Harness memory leak tracking.

Fed once per Sample with the harness process RSS (``HostSnapshot.process_memory_mb``).
The first reading becomes the baseline. A leak is flagged once at least two
readings exist and the latest one either exceeds ``threshold_mb`` or has
grown more than ``max_memory_growth_percent`` over the baseline. The result
is advisory: it is reported with the run, never used to stop the ramp.
"""

from __future__ import annotations

import time
from dataclasses import dataclass

from .logging_config import get_logger
from .models import MemoryLeakConfig, MemoryStats

logger = get_logger("memory_leak")


@dataclass(frozen=True, slots=True)
class MemoryReading:
    timestamp: float
    memory_mb: float
    request_count: int


class MemoryLeakDetector:
    def __init__(self, config: MemoryLeakConfig) -> None:
        self._config = config
        self._history: list[MemoryReading] = []
        self._baseline: float | None = None
        self._request_count = 0
        self._reported = False

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    @property
    def history(self) -> list[MemoryReading]:
        return list(self._history)

    def record(self, memory_mb: float, requests: int = 0) -> bool:
        """Add a reading after ``requests`` more tasks. Returns the current leak state."""
        if not self.enabled:
            return False
        self._request_count += requests
        if self._baseline is None:
            self._baseline = memory_mb
        self._history.append(MemoryReading(time.time(), memory_mb, self._request_count))
        leaking = self.check_for_leaks()
        if leaking and not self._reported:
            self._reported = True
            logger.warning(
                "Possible memory leak: %.1fMB (baseline %.1fMB, growth %.1f%%)",
                memory_mb, self._baseline, self.growth_percent(),
            )
        return leaking

    def growth_percent(self) -> float:
        if not self._baseline:
            return 0.0
        current = self._history[-1].memory_mb if self._history else self._baseline
        return (current - self._baseline) / self._baseline * 100.0

    def check_for_leaks(self) -> bool:
        if not self.enabled or len(self._history) < 2:
            return False
        if self._history[-1].memory_mb > self._config.threshold_mb:
            return True
        return self.growth_percent() > self._config.max_memory_growth_percent

    def reset_baseline(self) -> None:
        """Restart tracking from the latest reading."""
        if not self._history:
            return
        last = self._history[-1]
        self._baseline = last.memory_mb
        self._history = [MemoryReading(time.time(), last.memory_mb, self._request_count)]
        self._reported = False

    def recommendations(self) -> list[str]:
        if not self.enabled:
            return []
        current = self._history[-1].memory_mb if self._history else 0.0
        if self.check_for_leaks():
            return [
                f"Memory usage {current:.1f}MB against threshold {self._config.threshold_mb:.0f}MB",
                f"Memory growth is {self.growth_percent():.1f}% (limit: {self._config.max_memory_growth_percent:.0f}%)",
                "Consider reducing the context pool size",
                "Check for unclosed HTTP clients or contexts",
            ]
        return [
            "Memory usage is within normal limits",
            f"Current memory: {current:.1f}MB",
            f"Baseline memory: {self._baseline or 0.0:.1f}MB",
        ]

    def stats(self) -> MemoryStats | None:
        """Snapshot for the run result; None when tracking is disabled."""
        if not self.enabled:
            return None
        values = [r.memory_mb for r in self._history]
        current = values[-1] if values else 0.0
        return MemoryStats(
            current_mb=current,
            peak_mb=max(values, default=0.0),
            baseline_mb=self._baseline if self._baseline is not None else current,
            growth_percent=self.growth_percent(),
            leak_detected=self.check_for_leaks(),
            history_length=len(values),
            request_count=self._request_count,
            recommendations=tuple(self.recommendations()),
        )

    def clear(self) -> None:
        self._history.clear()
        self._baseline = None
        self._request_count = 0
        self._reported = False
