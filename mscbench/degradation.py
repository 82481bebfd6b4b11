"""Degradation detection and Maximum Sustainable Concurrency.

Each Sample is compared with the fixed Baseline and the absolute thresholds,
never with a rolling window. The verdict is sticky: once detected it holds
for the rest of the run.
"""

from __future__ import annotations

from typing import Sequence

from .logging_config import get_logger
from .models import Baseline, DegradationVerdict, Sample, ThresholdConfig

logger = get_logger("degradation")

# MSC reported when the very first sample already degrades.
FIRST_SAMPLE_DEGRADED_MSC = 1


class DegradationDetector:
    def __init__(self, thresholds: ThresholdConfig, baseline: Baseline | None = None) -> None:
        self._thresholds = thresholds
        self._baseline = baseline
        self._verdict = DegradationVerdict()
        self._trigger: Sample | None = None

    @property
    def baseline(self) -> Baseline | None:
        return self._baseline

    def set_baseline(self, baseline: Baseline) -> None:
        self._baseline = baseline

    @property
    def detected(self) -> bool:
        return self._verdict.detected

    def sticky_verdict(self) -> DegradationVerdict:
        return self._verdict

    def _reason(self, sample: Sample) -> str | None:
        """First failing check, in fixed order: latency, CPU, memory, error rate."""
        t = self._thresholds
        if self._baseline is not None:
            limit = self._baseline.p95 * t.latency_multiplier
            if sample.latency_ms.p95 > limit:
                return (
                    f"p95 latency {sample.latency_ms.p95:.1f}ms > {t.latency_multiplier}x "
                    f"baseline p95 {self._baseline.p95:.1f}ms"
                )
        if sample.host.cpu_usage > t.cpu_utilization:
            return f"CPU utilization {sample.host.cpu_usage * 100:.1f}% > {t.cpu_utilization * 100:.1f}%"
        if sample.host.memory_usage > t.memory_utilization:
            return f"Memory utilization {sample.host.memory_usage * 100:.1f}% > {t.memory_utilization * 100:.1f}%"
        if sample.tasks.error_rate > t.error_rate:
            return f"Error rate {sample.tasks.error_rate * 100:.2f}% > {t.error_rate * 100:.2f}%"
        return None

    def check(self, sample: Sample) -> bool:
        """True only on the call that first detects degradation."""
        if self._verdict.detected:
            return False
        reason = self._reason(sample)
        if reason is None:
            return False
        self._verdict = DegradationVerdict(detected=True, reason=reason, triggering_level=sample.level)
        self._trigger = sample
        logger.info(
            "Degradation detected at level %d: %s", sample.level, reason,
            extra={"concurrency_level": sample.level},
        )
        return True

    def compute_msc(self, samples: Sequence[Sample]) -> int:
        """Highest level judged free of degradation.

        Not detected: the maximum executed level. Detected: the level executed
        immediately before the degraded level, or 1 when the degraded sample
        belongs to the first level run.
        """
        if not samples:
            return 0
        if not self._verdict.detected:
            return max(s.level for s in samples)

        idx = self._trigger_index(samples)
        degraded_level = samples[idx].level
        # Repetitions of the degraded level itself do not count as "before".
        for prev in reversed(samples[:idx]):
            if prev.level != degraded_level:
                return prev.level
        return FIRST_SAMPLE_DEGRADED_MSC

    def _trigger_index(self, samples: Sequence[Sample]) -> int:
        for i, s in enumerate(samples):
            if s is self._trigger:
                return i
        # Log built elsewhere: fall back to the first sample at the triggering level.
        for i, s in enumerate(samples):
            if s.level == self._verdict.triggering_level:
                return i
        return len(samples) - 1
