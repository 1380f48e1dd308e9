from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential


@dataclass
class CircuitBreaker:
    max_failures: int = 3
    reset_seconds: int = 30
    failures: int = 0
    last_failure_ts: float | None = None

    def allow(self) -> bool:
        if self.failures < self.max_failures:
            return True
        if self.last_failure_ts is None:
            return True
        if time.time() - self.last_failure_ts > self.reset_seconds:
            self.failures = 0
            self.last_failure_ts = None
            return True
        return False

    def record_failure(self) -> None:
        self.failures += 1
        self.last_failure_ts = time.time()

    def record_success(self) -> None:
        self.failures = 0
        self.last_failure_ts = None


@dataclass
class ProviderPolicy:
    """Retry, backoff and concurrency limits for one upstream API, owned by its provider."""

    attempts: int = 3
    backoff_min: float = 0.5
    backoff_max: float = 4.0
    request_timeout: float = 10.0
    max_concurrency: int = 4
    breaker: CircuitBreaker = field(default_factory=CircuitBreaker)
    _semaphore: asyncio.Semaphore | None = field(default=None, init=False, repr=False)

    @property
    def semaphore(self) -> asyncio.Semaphore:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrency)
        return self._semaphore

    def retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=self.backoff_min, min=self.backoff_min, max=self.backoff_max),
            retry=retry_if_exception_type(httpx.HTTPError),
            reraise=True,
        )


async def get_json(
    url: str,
    headers: dict[str, str] | None = None,
    params: dict[str, Any] | None = None,
    policy: ProviderPolicy | None = None,
) -> dict:
    policy = policy or ProviderPolicy()
    async with policy.semaphore, httpx.AsyncClient(timeout=policy.request_timeout) as client:
        async for attempt in policy.retrying():
            with attempt:
                response = await client.get(url, headers=headers, params=params)
                response.raise_for_status()
                return response.json()
    return {}


async def post_json(
    url: str,
    payload: dict[str, Any],
    headers: dict[str, str] | None = None,
    policy: ProviderPolicy | None = None,
) -> dict:
    policy = policy or ProviderPolicy()
    async with policy.semaphore, httpx.AsyncClient(timeout=policy.request_timeout) as client:
        async for attempt in policy.retrying():
            with attempt:
                response = await client.post(url, json=payload, headers=headers)
                response.raise_for_status()
                return response.json()
    return {}
