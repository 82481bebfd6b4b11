"""
mscbench - Maximum Sustainable Concurrency benchmark harness.

Ramps parallel load against a set of URLs level by level, gates every task
through rate/concurrency/robots admission control, and stops at the first
latency, resource or error-rate degradation.
"""

from .exceptions import (
    AdmissionDeniedError,
    FetchError,
    MscConfigError,
    MscError,
    MscRunnerError,
    PoolExhaustedError,
)

__all__ = [
    "__version__",
    "AdmissionDeniedError",
    "FetchError",
    "MscConfigError",
    "MscError",
    "MscRunnerError",
    "PoolExhaustedError",
]

__version__ = "1.0.0"
