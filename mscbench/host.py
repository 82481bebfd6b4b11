"""Host utilisation sampling (psutil)."""

from __future__ import annotations

from typing import Callable

import psutil

from .models import HostSnapshot

SampleHost = Callable[[], HostSnapshot]

BYTES_PER_MB = 1024 * 1024


class HostSampler:
    """Callable returning a HostSnapshot with cpu/memory as fractions.

    ``cpu_percent(interval=None)`` measures since the previous call, so the
    first reading is taken at construction and discarded. Process memory is
    the RSS of the harness itself, which feeds leak tracking.
    """

    def __init__(self) -> None:
        self._process = psutil.Process()
        psutil.cpu_percent(interval=None)

    def __call__(self) -> HostSnapshot:
        cpu = psutil.cpu_percent(interval=None) / 100.0
        mem = psutil.virtual_memory().percent / 100.0
        load1, load5, load15 = psutil.getloadavg()
        return HostSnapshot(
            cpu_usage=cpu,
            memory_usage=mem,
            load_average=(load1, load5, load15),
            process_memory_mb=self._process.memory_info().rss / BYTES_PER_MB,
        )
