"""Page fetch capability injected into the task runner.

The runner only needs ``await fetcher.fetch(url, context)`` returning a
PageFetch. HttpFetcher is the built-in implementation on httpx: in http mode
every task shares one client, in context mode the pool hands each task an
isolated client (own cookies and connections) built by ``new_context_client``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import httpx

from .exceptions import FetchError
from .models import PoolEntry

# Tuned for throughput: high connection limits on the shared client.
DEFAULT_MAX_CONNECTIONS = 1000
DEFAULT_MAX_KEEPALIVE = 200
DEFAULT_KEEPALIVE_EXPIRY = 30.0
DEFAULT_TIMEOUT_SEC = 30.0
# An isolated context only ever serves one task at a time.
CONTEXT_MAX_CONNECTIONS = 10


@dataclass(frozen=True, slots=True)
class PageFetch:
    success: bool
    status_code: int | None
    content_length: int = 0
    error: str | None = None


class Fetcher(Protocol):
    async def fetch(self, url: str, context: PoolEntry | None = None) -> PageFetch: ...


def create_client(
    http2: bool = True,
    timeout: float = DEFAULT_TIMEOUT_SEC,
    limits: httpx.Limits | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create an async HTTP client. High connection limits unless told otherwise."""
    limits = limits or httpx.Limits(
        max_connections=DEFAULT_MAX_CONNECTIONS,
        max_keepalive_connections=DEFAULT_MAX_KEEPALIVE,
        keepalive_expiry=DEFAULT_KEEPALIVE_EXPIRY,
    )
    return httpx.AsyncClient(
        http2=http2,
        timeout=timeout,
        limits=limits,
        follow_redirects=True,
        transport=transport,
    )


class HttpFetcher:
    """Plain HTTP GET fetcher. Status 200-399 counts as success."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_SEC,
        http2: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._http2 = http2
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _shared_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = create_client(self._http2, self._timeout, transport=self._transport)
        return self._client

    @property
    def transport(self) -> httpx.AsyncBaseTransport | None:
        return self._transport

    def new_context_client(self) -> httpx.AsyncClient:
        """Pool factory for context mode."""
        return create_client(
            self._http2,
            self._timeout,
            limits=httpx.Limits(max_connections=CONTEXT_MAX_CONNECTIONS),
            transport=self._transport,
        )

    @staticmethod
    async def close_context_client(client: httpx.AsyncClient) -> None:
        await client.aclose()

    async def fetch(self, url: str, context: PoolEntry | None = None) -> PageFetch:
        client = self._shared_client()
        if context is not None and isinstance(context.resource, httpx.AsyncClient):
            client = context.resource
        try:
            r = await client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise FetchError(str(e) or type(e).__name__, context={"url": url}, original_error=e) from e
        ok = 200 <= r.status_code < 400
        return PageFetch(
            success=ok,
            status_code=r.status_code,
            content_length=len(r.content),
            error=None if ok else f"HTTP {r.status_code}",
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
