from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal

from app.models.enums import ServiceLevel


@dataclass(frozen=True)
class ProviderQuote:
    """One service as priced by a carrier API, in the provider's currency (minor units)."""

    carrier_id: str
    display_name: str
    service_class: ServiceLevel
    delivery_days_min: int
    delivery_days_max: int
    cargo_price: int
    fuel_cost: int
    additional_fee: int
    currency: str
    stale: bool = False
    expires_at: datetime | None = None


@dataclass(frozen=True)
class RateOption:
    provider: str
    carrier_id: str
    display_name: str
    service_class: ServiceLevel
    delivery_time_estimate: str
    delivery_days_max: int
    cargo_price_cost: int
    fuel_cost_cost: int
    additional_fee_cost: int
    insurance_cost: int = 0
    total_price_cost: int = field(init=False)
    cargo_price_customer: int | None = None
    fuel_cost_customer: int | None = None
    total_price_customer: int | None = None
    applied_multiplier: Decimal | None = None
    expires_at: datetime | None = None

    def __post_init__(self) -> None:
        total = self.cargo_price_cost + self.fuel_cost_cost + self.additional_fee_cost + self.insurance_cost
        object.__setattr__(self, "total_price_cost", total)

    @property
    def margin(self) -> int | None:
        if self.total_price_customer is None:
            return None
        return self.total_price_customer - self.total_price_cost

    def with_insurance(self, insurance_cost: int) -> RateOption:
        return replace(
            self,
            insurance_cost=insurance_cost,
            cargo_price_customer=None,
            fuel_cost_customer=None,
            total_price_customer=None,
            applied_multiplier=None,
        )

    def to_cache(self) -> dict:
        return {
            "provider": self.provider,
            "carrier_id": self.carrier_id,
            "display_name": self.display_name,
            "service_class": self.service_class.value,
            "delivery_time_estimate": self.delivery_time_estimate,
            "delivery_days_max": self.delivery_days_max,
            "cargo_price_cost": self.cargo_price_cost,
            "fuel_cost_cost": self.fuel_cost_cost,
            "additional_fee_cost": self.additional_fee_cost,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }

    @classmethod
    def from_cache(cls, payload: dict) -> RateOption:
        expires_at = payload.get("expires_at")
        return cls(
            provider=payload["provider"],
            carrier_id=payload["carrier_id"],
            display_name=payload["display_name"],
            service_class=ServiceLevel(payload["service_class"]),
            delivery_time_estimate=payload["delivery_time_estimate"],
            delivery_days_max=int(payload["delivery_days_max"]),
            cargo_price_cost=int(payload["cargo_price_cost"]),
            fuel_cost_cost=int(payload["fuel_cost_cost"]),
            additional_fee_cost=int(payload["additional_fee_cost"]),
            expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
        )


@dataclass
class DutyRateResult:
    rate: Decimal | None
    source: str
    is_estimated: bool
    missing: bool
    raw_payload: dict | None = None


@dataclass
class FxRateResult:
    rate: Decimal | None
    source: str
    rate_date: str | None
    raw_payload: dict | None = None
