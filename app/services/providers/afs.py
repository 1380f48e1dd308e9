from __future__ import annotations

from decimal import Decimal

from app.core.config import get_settings
from app.models.enums import ServiceLevel
from app.services.errors import ProviderUnavailable
from app.services.money import to_minor_units
from app.services.providers.base import RateProvider
from app.services.providers.http_client import CircuitBreaker, ProviderPolicy, post_json
from app.services.providers.types import ProviderQuote

_policy = ProviderPolicy(breaker=CircuitBreaker())


class AfsTransportProvider(RateProvider):
    """Direct road/air carrier for European destinations; one flat price per service, in EUR."""

    name = "afs"

    def __init__(self, policy: ProviderPolicy | None = None) -> None:
        self.settings = get_settings()
        self.policy = policy or _policy

    @property
    def configured(self) -> bool:
        return bool(self.settings.afs_api_key)

    async def quote(
        self,
        origin: str,
        destination: str,
        weight: Decimal,
        service: ServiceLevel | None = None,
    ) -> list[ProviderQuote]:
        if not self.configured:
            raise ProviderUnavailable("afs api key is not configured")
        if not self.policy.breaker.allow():
            raise ProviderUnavailable("afs circuit open")

        # The API prices by billable weight; dimensions are floored at 1 cm.
        request = {
            "islem": "fiyat_hesapla",
            "country_code": destination,
            "shipments": [{"weight": float(weight), "length": 1, "width": 1, "height": 1}],
        }
        try:
            payload = await post_json(
                self.settings.afs_api_url,
                request,
                headers={"x-api-key": self.settings.afs_api_key or ""},
                policy=self.policy,
            )
        except Exception as exc:
            self.policy.breaker.record_failure()
            raise ProviderUnavailable(f"afs request failed: {exc}") from exc
        self.policy.breaker.record_success()

        prices = payload.get("prices") if isinstance(payload, dict) else None
        if not isinstance(prices, list):
            return []

        try:
            quotes = [self._to_quote(price) for price in prices if price.get("price") is not None]
        except (AttributeError, KeyError, TypeError, ArithmeticError) as exc:
            raise ProviderUnavailable(f"afs returned an unreadable price: {exc}") from exc
        if service is not None:
            quotes = [q for q in quotes if q.service_class == service]
        return quotes

    def _to_quote(self, price: dict) -> ProviderQuote:
        service_name = str(price.get("service_name") or "")
        lowered = service_name.lower()
        if "eco" in lowered:
            service_class, days = ServiceLevel.ECO, (5, 8)
        elif "express" in lowered:
            service_class, days = ServiceLevel.EXPRESS, (2, 4)
        else:
            service_class, days = ServiceLevel.STANDARD, (3, 5)
        return ProviderQuote(
            carrier_id=f"{self.name}:{price.get('service_id')}",
            display_name=f"AFS {service_name}".strip(),
            service_class=service_class,
            delivery_days_min=days[0],
            delivery_days_max=days[1],
            cargo_price=to_minor_units(price["price"]),
            fuel_cost=0,
            additional_fee=0,
            currency=self.settings.afs_currency,
        )
