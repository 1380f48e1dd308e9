from __future__ import annotations

import re
import time
from decimal import Decimal

from app.core.config import get_settings
from app.core.logging import get_logger
from app.models.enums import ServiceLevel
from app.services.errors import ProviderUnavailable
from app.services.money import to_minor_units
from app.services.providers.base import RateProvider
from app.services.providers.http_client import CircuitBreaker, ProviderPolicy, post_json
from app.services.providers.types import ProviderQuote

_policy = ProviderPolicy(breaker=CircuitBreaker())
_token_cache: dict[str, tuple[str, float]] = {}
logger = get_logger()

DEFAULT_DELIVERY_DAYS = {
    ServiceLevel.ECO: (7, 12),
    ServiceLevel.STANDARD: (5, 8),
    ServiceLevel.EXPRESS: (1, 3),
}
EXPRESS_HINTS = ("express", "ups", "fedex", "dhl")
DAYS_PATTERN = re.compile(r"(\d+)\s*-\s*(\d+)")


class ShipentegraProvider(RateProvider):
    """Multi-carrier aggregator; prices every carrier it resells in one call."""

    name = "shipentegra"

    def __init__(self, policy: ProviderPolicy | None = None) -> None:
        self.settings = get_settings()
        self.policy = policy or _policy

    @property
    def configured(self) -> bool:
        return bool(self.settings.shipentegra_client_id and self.settings.shipentegra_client_secret)

    async def quote(
        self,
        origin: str,
        destination: str,
        weight: Decimal,
        service: ServiceLevel | None = None,
    ) -> list[ProviderQuote]:
        if not self.configured:
            raise ProviderUnavailable("shipentegra credentials are not configured")
        if not self.policy.breaker.allow():
            raise ProviderUnavailable("shipentegra circuit open")

        try:
            token = await self._access_token()
            payload = await post_json(
                f"{self.settings.shipentegra_api_base}/tools/calculate/all",
                {"country": destination, "kgDesi": float(weight), "isAmazonShipment": 0},
                headers={"Authorization": f"Bearer {token}"},
                policy=self.policy,
            )
        except Exception as exc:
            self.policy.breaker.record_failure()
            raise ProviderUnavailable(f"shipentegra request failed: {exc}") from exc

        status = payload.get("status") if isinstance(payload, dict) else None
        if status != "success":
            self.policy.breaker.record_failure()
            raise ProviderUnavailable(f"shipentegra returned status {status!r}")
        self.policy.breaker.record_success()

        try:
            data = payload.get("data") or {}
            stale = bool(data.get("priceExpired"))
            quotes = [self._to_quote(price, stale) for price in data.get("prices") or []]
        except (AttributeError, KeyError, TypeError, ArithmeticError) as exc:
            raise ProviderUnavailable(f"shipentegra returned an unreadable price: {exc}") from exc
        if service is not None:
            quotes = [q for q in quotes if q.service_class == service]
        return quotes

    async def _access_token(self) -> str:
        key = self.settings.shipentegra_client_id or ""
        cached = _token_cache.get(key)
        if cached and cached[1] > time.time():
            return cached[0]

        payload = await post_json(
            f"{self.settings.shipentegra_api_base}/auth/token",
            {
                "clientId": self.settings.shipentegra_client_id,
                "clientSecret": self.settings.shipentegra_client_secret,
            },
            policy=self.policy,
        )
        data = payload.get("data") or {}
        token = data.get("accessToken")
        if payload.get("status") != "success" or not token:
            raise ProviderUnavailable("shipentegra token request rejected")
        logger.info("shipentegra_token_refreshed")
        # Refresh a minute early.
        _token_cache[key] = (token, time.time() + int(data.get("expiresIn") or 3600) - 60)
        return token

    def _to_quote(self, price: dict, stale: bool) -> ProviderQuote:
        service_name = price.get("serviceName") or ""
        service_class = self._classify(price.get("serviceType") or "", service_name)
        days_min, days_max = self._delivery_days(price.get("additionalDescription"), service_class)
        return ProviderQuote(
            carrier_id=f"{self.name}:{service_name}",
            display_name=price.get("clearServiceName") or service_name,
            service_class=service_class,
            delivery_days_min=days_min,
            delivery_days_max=days_max,
            cargo_price=to_minor_units(price.get("cargoPrice") or 0),
            fuel_cost=to_minor_units(price.get("fuelCost") or 0),
            additional_fee=to_minor_units(price.get("additionalFee") or 0),
            currency="USD",
            stale=stale or bool(price.get("isExpired")),
        )

    def _classify(self, service_type: str, service_name: str) -> ServiceLevel:
        if service_type.upper() == "ECO" or "eco" in service_name.lower() or "eko" in service_name.lower():
            return ServiceLevel.ECO
        if service_type.upper() == "EXPRESS" or any(hint in service_name.lower() for hint in EXPRESS_HINTS):
            return ServiceLevel.EXPRESS
        return ServiceLevel.STANDARD

    def _delivery_days(self, description: str | None, service_class: ServiceLevel) -> tuple[int, int]:
        match = DAYS_PATTERN.search(description or "")
        if match:
            return int(match.group(1)), int(match.group(2))
        return DEFAULT_DELIVERY_DAYS[service_class]
