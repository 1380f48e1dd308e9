from __future__ import annotations

import asyncio
import math
from datetime import datetime, timezone
from decimal import Decimal
from typing import Sequence

from app.core.config import Settings, get_settings
from app.core.logging import get_logger
from app.models.enums import ServiceLevel
from app.services.errors import NoRouteAvailable, ProviderUnavailable
from app.services.money import apply_rate
from app.services.providers.base import RateProvider, redis_delete, redis_get_json, redis_set_json
from app.services.providers.fx_ecb import FxProvider
from app.services.providers.types import ProviderQuote, RateOption

logger = get_logger()


class RateCache:
    """Short-lived cost-basis option lists in redis."""

    async def get(self, key: str) -> list[dict] | None:
        return await redis_get_json(key)

    async def set(self, key: str, payload: list[dict], ttl_seconds: int) -> None:
        await redis_set_json(key, payload, ttl_seconds)

    async def delete(self, key: str) -> None:
        await redis_delete(key)


def weight_bucket(weight: Decimal, bucket: Decimal) -> Decimal:
    """Rounds up to the next bucket boundary; carriers price in fixed weight steps."""
    steps = math.ceil(Decimal(weight) / bucket)
    return bucket * max(steps, 1)


def cache_key(
    origin: str,
    destination: str,
    bucket: Decimal,
    service_level: ServiceLevel | None,
    piece_count: int,
) -> str:
    service = service_level.value if service_level else "any"
    return f"rates:{origin}:{destination}:{bucket.normalize():f}:{service}:{piece_count}"


class RateShopper:
    def __init__(
        self,
        providers: Sequence[RateProvider],
        fx: FxProvider | None = None,
        cache: RateCache | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.providers = list(providers)
        self.settings = settings or get_settings()
        self.fx = fx or FxProvider()
        self.cache = cache if cache is not None else RateCache()

    async def shop(
        self,
        origin: str,
        destination: str,
        billable_weight: Decimal,
        piece_count: int = 1,
        service_level: ServiceLevel | None = None,
    ) -> list[RateOption]:
        bucket = weight_bucket(billable_weight, self.settings.weight_bucket_kg)
        key = cache_key(origin, destination, bucket, service_level, piece_count)

        cached = await self._cached_options(key)
        if cached is not None:
            logger.info("rate_cache_hit", key=key, options=len(cached))
            return cached

        if not self.providers:
            raise ProviderUnavailable("no rate providers are configured")

        results = await asyncio.gather(
            *(self._quote_one(provider, origin, destination, bucket, service_level) for provider in self.providers)
        )
        answered = [(provider, quotes) for provider, quotes in results if quotes is not None]
        if not answered:
            raise ProviderUnavailable("every rate provider failed or timed out")

        options: list[RateOption] = []
        stale = False
        for provider, quotes in answered:
            for quote in quotes:
                if quote.stale or _expired(quote.expires_at):
                    stale = True
                option = await self._normalize(provider, quote)
                if option is not None:
                    options.append(option)

        options = _sorted(_cheapest_per_service(options))
        if not options:
            raise NoRouteAvailable(f"no provider serves {destination}")

        if stale:
            # Never let a flagged price outlive this call.
            await self.cache.delete(key)
        else:
            ttl = self._ttl_for(options)
            if ttl > 0:
                await self.cache.set(key, [option.to_cache() for option in options], ttl)
        return options

    async def _cached_options(self, key: str) -> list[RateOption] | None:
        payload = await self.cache.get(key)
        if not payload:
            return None
        options = [RateOption.from_cache(item) for item in payload]
        if any(_expired(option.expires_at) for option in options):
            await self.cache.delete(key)
            return None
        return options

    async def _quote_one(
        self,
        provider: RateProvider,
        origin: str,
        destination: str,
        weight: Decimal,
        service_level: ServiceLevel | None,
    ) -> tuple[RateProvider, list[ProviderQuote] | None]:
        try:
            quotes = await asyncio.wait_for(
                provider.quote(origin, destination, weight, service_level),
                timeout=self.settings.provider_timeout_seconds,
            )
            return provider, quotes
        except asyncio.TimeoutError:
            logger.warning("rate_shop_provider_timeout", provider=provider.name, destination=destination)
        except ProviderUnavailable as exc:
            logger.warning("rate_shop_provider_failed", provider=provider.name, error=str(exc))
        except Exception as exc:
            # A malformed response from one provider must not sink the others.
            logger.warning(
                "rate_shop_provider_failed",
                provider=provider.name,
                error=str(exc),
                error_type=type(exc).__name__,
            )
        return provider, None

    async def _normalize(self, provider: RateProvider, quote: ProviderQuote) -> RateOption | None:
        rate = Decimal("1")
        base_currency = self.settings.base_currency
        if quote.currency != base_currency:
            fx = await self.fx.get_rate(quote.currency, base_currency)
            if fx.rate is None:
                logger.warning(
                    "rate_shop_currency_unconvertible",
                    provider=provider.name,
                    carrier_id=quote.carrier_id,
                    currency=quote.currency,
                )
                return None
            rate = fx.rate

        cargo = apply_rate(quote.cargo_price, rate)
        if cargo <= 0:
            return None
        return RateOption(
            provider=provider.name,
            carrier_id=quote.carrier_id,
            display_name=quote.display_name,
            service_class=quote.service_class,
            delivery_time_estimate=_delivery_estimate(quote.delivery_days_min, quote.delivery_days_max),
            delivery_days_max=quote.delivery_days_max,
            cargo_price_cost=cargo,
            fuel_cost_cost=apply_rate(quote.fuel_cost, rate),
            additional_fee_cost=apply_rate(quote.additional_fee, rate),
            expires_at=quote.expires_at,
        )

    def _ttl_for(self, options: list[RateOption]) -> int:
        ttl = self.settings.rate_cache_ttl_seconds
        now = datetime.now(timezone.utc)
        for option in options:
            if option.expires_at is not None:
                ttl = min(ttl, int((option.expires_at - now).total_seconds()))
        return ttl


def _expired(expires_at: datetime | None) -> bool:
    return expires_at is not None and expires_at <= datetime.now(timezone.utc)


def _delivery_estimate(days_min: int, days_max: int) -> str:
    if days_min == days_max:
        return f"{days_max} business days"
    return f"{days_min}-{days_max} business days"


def _cheapest_per_service(options: list[RateOption]) -> list[RateOption]:
    cheapest: dict[tuple[str, str], RateOption] = {}
    for option in options:
        key = (option.carrier_id, option.display_name)
        current = cheapest.get(key)
        if current is None or option.total_price_cost < current.total_price_cost:
            cheapest[key] = option
    return list(cheapest.values())


def _sorted(options: list[RateOption]) -> list[RateOption]:
    return sorted(options, key=lambda o: (o.total_price_cost, o.delivery_days_max, o.display_name))
