from __future__ import annotations

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.core.config import get_settings


class RedisClient:
    """Process-wide connection pool for the rate, FX and duty caches."""

    def __init__(self, url: str | None = None) -> None:
        self.url = url or get_settings().redis_url
        self._client: redis.Redis | None = None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(self.url, decode_responses=True)
        return self._client

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError:
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


redis_client = RedisClient()
