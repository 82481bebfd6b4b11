"""Admission control: rate limit, concurrency/total caps and robots.txt policy.

SafetyGate composes the four checks into one decision, in the order rate,
concurrency, total, robots. The first three never suspend, so a task denied
by a cap costs no robots.txt traffic. Robots resolution may suspend on a
first fetch; the caps are re-checked right after it with no suspension
point before the caller's ``begin()``.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Awaitable, Callable
from urllib.parse import urlparse

import httpx

from .exceptions import AdmissionDeniedError
from .fetch import create_client
from .logging_config import get_logger
from .models import SafetyConfig
from .rate_limiter import RateLimiter

logger = get_logger("safety")

ROBOTS_TIMEOUT_SEC = 5.0
SAFETY_DENIED_MESSAGE = "Safety limit exceeded"
UNKNOWN_DOMAIN = "unknown"

RobotsFetcher = Callable[[str], Awaitable["str | None"]]


def domain_of(url: str) -> str:
    try:
        return urlparse(url).hostname or UNKNOWN_DOMAIN
    except ValueError:
        return UNKNOWN_DOMAIN


def parse_disallowed(robots_txt: str) -> list[str]:
    """Return every non-empty ``Disallow:`` prefix, regardless of user-agent group."""
    prefixes: list[str] = []
    for line in robots_txt.splitlines():
        line = line.strip()
        if not line.lower().startswith("disallow:"):
            continue
        value = line.split(":", 1)[1].split("#", 1)[0].strip()
        if value:
            prefixes.append(value)
    return prefixes


def robots_fetcher(
    timeout: float = ROBOTS_TIMEOUT_SEC,
    transport: httpx.AsyncBaseTransport | None = None,
) -> RobotsFetcher:
    """Build a robots.txt getter on the same client factory as page fetches.

    Non-200 answers yield None. ``timeout`` is capped at ROBOTS_TIMEOUT_SEC.
    """
    timeout = min(timeout, ROBOTS_TIMEOUT_SEC)

    async def fetch(robots_url: str) -> str | None:
        async with create_client(http2=False, timeout=timeout, transport=transport) as client:
            r = await client.get(robots_url)
        if r.status_code != 200:
            return None
        return r.text

    return fetch


fetch_robots_txt = robots_fetcher()


class RobotsPolicy:
    """Per-host robots.txt cache. Fail-open: unreachable robots.txt allows everything."""

    def __init__(self, fetcher: RobotsFetcher | None = None) -> None:
        self._fetcher = fetcher or fetch_robots_txt
        self._rules: dict[str, list[str]] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def _rules_for(self, scheme: str, host: str) -> list[str]:
        cached = self._rules.get(host)
        if cached is not None:
            return cached
        lock = self._locks.setdefault(host, asyncio.Lock())
        async with lock:
            cached = self._rules.get(host)
            if cached is not None:
                return cached
            robots_url = f"{scheme or 'https'}://{host}/robots.txt"
            try:
                text = await self._fetcher(robots_url)
            except Exception as e:  # noqa: BLE001
                logger.debug("robots.txt fetch failed for %s, allowing: %s", host, e)
                text = None
            rules = parse_disallowed(text) if text else []
            self._rules[host] = rules
            return rules

    async def is_allowed(self, url: str) -> bool:
        try:
            parsed = urlparse(url)
        except ValueError:
            return True
        if not parsed.netloc:
            return True
        rules = await self._rules_for(parsed.scheme, parsed.netloc)
        path = parsed.path or "/"
        return not any(path.startswith(prefix) for prefix in rules)

    def clear(self) -> None:
        self._rules.clear()
        self._locks.clear()


class AdmissionState:
    """In-flight and issued task counters behind a single lock."""

    __slots__ = ("_lock", "_current", "_total")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._current = 0
        self._total = 0

    @property
    def current_concurrent(self) -> int:
        return self._current

    @property
    def total_issued(self) -> int:
        return self._total

    def denial(self, max_concurrent: int, max_total: int) -> str | None:
        """Name of the cap that would be violated by one more task, if any."""
        with self._lock:
            if self._current >= max_concurrent:
                return "concurrency"
            if self._total >= max_total:
                return "total"
            return None

    def begin(self) -> None:
        with self._lock:
            self._current += 1
            self._total += 1

    def end(self) -> None:
        with self._lock:
            self._current = max(self._current - 1, 0)

    def reset(self) -> None:
        with self._lock:
            self._current = 0
            self._total = 0


class SafetyGate:
    """Single admission decision for a task, plus in-flight accounting."""

    def __init__(
        self,
        config: SafetyConfig,
        rate_limiter: RateLimiter | None = None,
        robots: RobotsPolicy | None = None,
    ) -> None:
        self._config = config
        self.rate_limiter = rate_limiter or RateLimiter(config.rps)
        self.robots = robots or RobotsPolicy()
        self.state = AdmissionState()

    async def admit(self, url: str) -> None:
        """Raise AdmissionDeniedError unless every check passes.

        A robots denial still spends the rate slot taken before it.
        """
        if not self.rate_limiter.allow(domain_of(url)):
            raise AdmissionDeniedError("rate", url)
        self._check_caps(url)
        if not self._config.robots_respect:
            return
        if not await self.robots.is_allowed(url):
            raise AdmissionDeniedError("robots", url)
        # Other workers may have begun while the robots lookup was suspended.
        self._check_caps(url)

    def _check_caps(self, url: str) -> None:
        reason = self.state.denial(self._config.max_concurrent, self._config.max_total)
        if reason is not None:
            raise AdmissionDeniedError(reason, url)

    async def can_proceed(self, url: str) -> bool:
        try:
            await self.admit(url)
        except AdmissionDeniedError as e:
            logger.debug("Admission denied (%s): %s", e.reason, url)
            return False
        return True

    def begin(self) -> None:
        self.state.begin()

    def end(self) -> None:
        self.state.end()

    def stats(self) -> dict[str, object]:
        return {
            "current_requests": self.state.current_concurrent,
            "total_requests": self.state.total_issued,
            "rate_limited_domains": self.rate_limiter.stats()["domains"],
        }

    def reset(self) -> None:
        """Clear counters, rate windows and robots cache between independent runs."""
        self.state.reset()
        self.rate_limiter.reset()
        self.robots.clear()
