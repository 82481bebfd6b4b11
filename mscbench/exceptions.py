"""Custom exceptions for mscbench.

All mscbench-specific exceptions inherit from MscError for unified error handling.
Each exception preserves the original cause chain for debugging.
"""

from __future__ import annotations

from typing import Any


class MscError(Exception):
    """Base exception for all mscbench errors.

    Attributes:
        message: Human-readable error description
        context: Optional dictionary with additional debugging context
        original_error: Original exception that caused this error (if any)
    """

    def __init__(
        self,
        message: str,
        *args: object,
        context: dict[str, Any] | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message, *args)
        self.message = message
        self.context = context or {}
        self.original_error = original_error

    def __str__(self) -> str:
        """Return formatted error message with context if available."""
        base = self.message
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            base = f"{base} [{ctx_str}]"
        if self.original_error:
            base = f"{base} (caused by: {type(self.original_error).__name__}: {self.original_error})"
        return base

    def with_context(self, **kwargs: Any) -> "MscError":
        """Add context to this error and return self for chaining."""
        self.context.update(kwargs)
        return self


class MscConfigError(MscError):
    """Raised when configuration is invalid or file cannot be loaded.

    Always raised before the first level runs. Common causes:
    - Config file not found or invalid YAML
    - Empty ramp plan or a level < 1
    - Thresholds outside their allowed range
    """


class MscRunnerError(MscError):
    """Raised when a benchmark run cannot start (e.g. no URLs)."""


class AdmissionDeniedError(MscError):
    """Raised when a task is refused by the safety gate.

    ``reason`` is one of ``rate``, ``concurrency``, ``total`` or ``robots``.
    """

    def __init__(self, reason: str, url: str = "") -> None:
        super().__init__("Safety limit exceeded", context={"reason": reason, "url": url})
        self.reason = reason
        self.url = url


class PoolExhaustedError(MscError):
    """Raised when no pool entry frees up before the acquire timeout."""


class FetchError(MscError):
    """Raised by fetch capabilities for network, timeout and URL failures."""
