"""Custom workload documents produced by external plugins.

A plugin runs out of process and hands back a plain document:

    urls: [https://a.example/, https://b.example/search]
    concurrency: [1, 2, 4]      # or a single integer
    parameters: {any: data}

The document is parsed and validated only; nothing in it is executed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml

from .exceptions import MscConfigError
from .models import RampPlan, RampStrategy


@dataclass(frozen=True, slots=True)
class WorkloadDocument:
    urls: tuple[str, ...]
    concurrency: tuple[int, ...] = ()
    parameters: dict[str, Any] = field(default_factory=dict)

    def ramp_plan(self) -> RampPlan | None:
        if not self.concurrency:
            return None
        return RampPlan(RampStrategy.CUSTOM, self.concurrency)


def _validate_url(url: Any) -> str:
    if not isinstance(url, str) or not url.strip():
        raise MscConfigError("workload URLs must be non-empty strings", context={"url": url})
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise MscConfigError(f"Invalid workload URL: {url}")
    return url.strip()


def _validate_concurrency(raw: Any) -> tuple[int, ...]:
    if raw is None:
        return ()
    values = raw if isinstance(raw, list) else [raw]
    out: list[int] = []
    for v in values:
        if isinstance(v, bool) or not isinstance(v, int) or v < 1:
            raise MscConfigError("workload concurrency must be positive integers", context={"concurrency": v})
        out.append(v)
    return tuple(out)


def parse_workload_document(raw: Any) -> WorkloadDocument:
    if not isinstance(raw, dict):
        raise MscConfigError("Workload document must be a mapping")
    urls = raw.get("urls")
    if not isinstance(urls, list) or not urls:
        raise MscConfigError("Workload document needs a non-empty 'urls' list")
    parameters = raw.get("parameters") or {}
    if not isinstance(parameters, dict):
        raise MscConfigError("Workload 'parameters' must be a mapping")
    return WorkloadDocument(
        urls=tuple(_validate_url(u) for u in urls),
        concurrency=_validate_concurrency(raw.get("concurrency")),
        parameters=dict(parameters),
    )


def load_workload_document(path: str | Path) -> WorkloadDocument:
    """Read a YAML or JSON workload document (JSON is valid YAML)."""
    p = Path(path)
    if not p.exists():
        raise MscConfigError(f"Workload document not found: {path}")
    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except (yaml.YAMLError, OSError) as e:
        raise MscConfigError(f"Failed to load workload document: {e}", original_error=e) from e
    return parse_workload_document(raw)
