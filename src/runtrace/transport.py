"""
HTTP transport used to talk to the remote run store.

The tracer only needs "send a request, get a response back"; retries,
backoff and concurrency limits live here so the tracer core never retries.
"""

from __future__ import annotations

import asyncio
import random
from typing import Any, Protocol

import httpx
import structlog

from .config import TracerConfig

logger = structlog.get_logger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


class Transport(Protocol):
    """Request callable consumed by the remote tracer."""

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        ...


def backoff_delay(attempt: int, base_s: float, jitter_s: float) -> float:
    """
    Exponential backoff with jitter.
    attempt=0 => base, attempt=1 => 2*base, etc.
    """
    exp = base_s * (2 ** attempt)
    jitter = random.uniform(0.0, jitter_s)
    return exp + jitter


class HttpxTransport:
    """
    `httpx.AsyncClient` transport with bounded concurrency and retries.

    Network errors and retryable statuses (429, 5xx gateway errors, 408) are
    retried up to `max_retries` times. Any other response is returned as-is
    so the caller can judge the status.
    """

    def __init__(
        self,
        *,
        timeout_s: float = 30.0,
        max_retries: int = 6,
        max_concurrency: int = 16,
        backoff_base_s: float = 0.5,
        backoff_jitter_s: float = 0.15,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.max_retries = max_retries
        self.backoff_base_s = backoff_base_s
        self.backoff_jitter_s = backoff_jitter_s
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_s)

    @classmethod
    def from_config(cls, config: TracerConfig) -> "HttpxTransport":
        return cls(
            timeout_s=config.timeout_s,
            max_retries=config.max_retries,
            max_concurrency=config.max_concurrency,
            backoff_base_s=config.backoff_base_s,
            backoff_jitter_s=config.backoff_jitter_s,
        )

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        async with self._semaphore:
            for attempt in range(self.max_retries + 1):
                last_attempt = attempt >= self.max_retries
                try:
                    response = await self._client.request(method, url, headers=headers, json=json)
                except httpx.TransportError as e:
                    if last_attempt:
                        raise
                    logger.warning(
                        "transport error, retrying",
                        method=method,
                        url=url,
                        attempt=attempt + 1,
                        error=str(e),
                    )
                else:
                    if response.status_code not in RETRYABLE_STATUS_CODES or last_attempt:
                        return response
                    logger.warning(
                        "retryable status, retrying",
                        method=method,
                        url=url,
                        attempt=attempt + 1,
                        status_code=response.status_code,
                    )
                await asyncio.sleep(backoff_delay(attempt, self.backoff_base_s, self.backoff_jitter_s))

        raise RuntimeError("unreachable: retry loop exited without a response")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpxTransport":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
