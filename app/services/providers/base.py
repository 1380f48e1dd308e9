from __future__ import annotations

import json
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any

from app.core.redis import redis_client
from app.models.enums import ServiceLevel
from app.services.providers.types import ProviderQuote


async def redis_get_json(key: str) -> Any | None:
    value = await redis_client.client.get(key)
    if not value:
        return None
    return json.loads(value)


async def redis_set_json(key: str, payload: Any, ttl_seconds: int) -> None:
    await redis_client.client.set(key, json.dumps(payload), ex=ttl_seconds)


async def redis_delete(key: str) -> None:
    await redis_client.client.delete(key)


class RateProvider(ABC):
    """Uniform contract for carrier and aggregator rate APIs.

    ``quote`` returns an empty list when the provider does not serve the route
    and raises ``ProviderUnavailable`` when it could not be asked at all.
    """

    name: str

    @abstractmethod
    async def quote(
        self,
        origin: str,
        destination: str,
        weight: Decimal,
        service: ServiceLevel | None = None,
    ) -> list[ProviderQuote]:
        ...
