from __future__ import annotations

from datetime import date
from decimal import Decimal

from app.core.config import get_settings
from app.core.logging import get_logger
from app.services.money import round_half_up
from app.services.providers.base import redis_get_json, redis_set_json
from app.services.providers.http_client import CircuitBreaker, ProviderPolicy, get_json
from app.services.providers.types import FxRateResult

TTL_SECONDS = 86400
_policy = ProviderPolicy(breaker=CircuitBreaker())
logger = get_logger()


class FxProvider:
    """ECB reference rates; every ECB series is quoted as units of currency per 1 EUR."""

    def __init__(self, policy: ProviderPolicy | None = None) -> None:
        self.settings = get_settings()
        self.policy = policy or _policy

    async def get_rate(self, base: str, quote: str) -> FxRateResult:
        if base == quote:
            return FxRateResult(rate=Decimal("1"), source="identity", rate_date=str(date.today()))

        cache_key = f"fx:{base}:{quote}"
        cached = await redis_get_json(cache_key)
        if cached:
            return FxRateResult(rate=Decimal(str(cached["rate"])), source="redis", rate_date=cached.get("rate_date"))

        base_per_eur = await self._per_eur(base)
        quote_per_eur = await self._per_eur(quote)
        if base_per_eur.rate is None or quote_per_eur.rate is None:
            return FxRateResult(rate=None, source="ecb_missing", rate_date=None)

        rate = quote_per_eur.rate / base_per_eur.rate
        rate_date = quote_per_eur.rate_date or base_per_eur.rate_date
        await redis_set_json(cache_key, {"rate": str(rate), "rate_date": rate_date}, TTL_SECONDS)
        return FxRateResult(rate=rate, source="ecb", rate_date=rate_date)

    async def convert(self, amount: int, base: str, quote: str) -> int | None:
        result = await self.get_rate(base, quote)
        if result.rate is None:
            return None
        return round_half_up(Decimal(amount) * result.rate)

    async def _per_eur(self, currency: str) -> FxRateResult:
        if currency == "EUR":
            return FxRateResult(rate=Decimal("1"), source="identity", rate_date=None)

        if not self.policy.breaker.allow():
            return FxRateResult(rate=None, source="unavailable", rate_date=None)

        url = f"{self.settings.ecb_api_base}/D.{currency}.EUR.SP00.A"
        params = {"format": "jsondata", "lastNObservations": 1}
        try:
            payload = await get_json(url, params=params, policy=self.policy)
            rate, rate_date = self._extract_rate(payload)
            self.policy.breaker.record_success()
            return FxRateResult(rate=rate, source="ecb", rate_date=rate_date, raw_payload=payload)
        except Exception as exc:
            self.policy.breaker.record_failure()
            logger.warning("fx_rate_failed", currency=currency, error=str(exc))
            return FxRateResult(rate=None, source="ecb_error", rate_date=None)

    def _extract_rate(self, payload: dict) -> tuple[Decimal | None, str | None]:
        try:
            series = payload["dataSets"][0]["series"]
            observations = next(iter(series.values()))["observations"]
            last_key = sorted(observations.keys(), key=int)[-1]
            last_value = observations[last_key][0]
            dates = payload["structure"]["dimensions"]["observation"][0]["values"]
            rate_date = dates[int(last_key)]["id"]
            return Decimal(str(last_value)), rate_date
        except (KeyError, IndexError, StopIteration, TypeError, ValueError, ArithmeticError):
            return None, None
