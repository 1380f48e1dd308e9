from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from app.core.config import Settings, get_settings
from app.core.logging import get_logger
from app.models.enums import ServiceLevel, ShippingTerms
from app.repositories.duty_override_repo import DutyRateOverrideRepository
from app.services.money import apply_rate
from app.services.providers.types import DutyRateResult, RateOption
from app.services.providers.usitc import UsitcDutySource, normalize_hs_code

logger = get_logger()


@dataclass(frozen=True)
class DutyEstimate:
    """Import duty for one destination; amounts are None whenever ``available`` is False."""

    available: bool
    provider: str | None
    customs_value: int | None
    hs_code: str | None = None
    base_duty_rate: Decimal | None = None
    base_duty_amount: int | None = None
    surcharge_rate: Decimal | None = None
    surcharge_amount: int | None = None
    total_duty_amount: int | None = None
    is_estimated: bool = False
    message: str | None = None

    @classmethod
    def unavailable(cls, message: str, customs_value: int | None, hs_code: str | None, provider: str | None = None):
        return cls(
            available=False,
            provider=provider,
            customs_value=customs_value,
            hs_code=hs_code,
            message=message,
        )


@dataclass(frozen=True)
class LandedPrice:
    """What the customer pays for one option under the chosen shipping terms.

    ``total`` is None when DDP duty could not be estimated: the landed price is
    unknown, which is not the same as the shipping price alone.
    """

    shipping_terms: ShippingTerms
    shipping_price: int
    duty_amount: int | None
    processing_fee: int
    total: int | None
    duty_included: bool
    duty_paid_by_receiver: bool


def requires_customs(destination: str, settings: Settings | None = None) -> bool:
    settings = settings or get_settings()
    return destination.upper() != settings.home_country.upper()


def processing_fee_for(service_level: ServiceLevel, settings: Settings | None = None) -> int:
    settings = settings or get_settings()
    return int(settings.ddp_processing_fees.get(service_level.value, 0))


def apply_shipping_terms(
    option: RateOption,
    duty: DutyEstimate | None,
    terms: ShippingTerms,
    settings: Settings | None = None,
) -> LandedPrice:
    """The only place the DAP/DDP pricing policy lives.

    Both quoting and reconciliation call this with a marked-up option.
    ``duty`` is None for domestic shipments, where terms have no effect.
    """
    if option.total_price_customer is None:
        raise ValueError("shipping terms apply to marked-up options only")
    price = option.total_price_customer

    if duty is None:
        return LandedPrice(terms, price, None, 0, price, duty_included=False, duty_paid_by_receiver=False)

    duty_amount = duty.total_duty_amount if duty.available else None
    if terms == ShippingTerms.DAP:
        return LandedPrice(
            terms,
            price,
            duty_amount,
            0,
            price,
            duty_included=False,
            duty_paid_by_receiver=True,
        )

    fee = processing_fee_for(option.service_class, settings)
    total = price + duty_amount + fee if duty_amount is not None else None
    return LandedPrice(terms, price, duty_amount, fee, total, duty_included=True, duty_paid_by_receiver=False)


class DutyEstimator:
    """Resolves a duty rate per destination and turns it into amounts on the declared value.

    Destinations with a live tariff source (the US schedule) ask it first; every
    other destination uses the admin override table. With no HS code the
    per-destination generic rate is the last resort.
    """

    def __init__(self, session, settings: Settings | None = None, sources: dict | None = None) -> None:
        self.settings = settings or get_settings()
        self.override_repo = DutyRateOverrideRepository(session)
        self.sources = sources if sources is not None else {UsitcDutySource.country: UsitcDutySource(session)}

    async def estimate(
        self,
        destination: str,
        declared_value: int | None,
        hs_code: str | None,
        shipping_terms: ShippingTerms,
    ) -> DutyEstimate:
        destination = destination.upper()
        code = normalize_hs_code(hs_code) if hs_code else None

        if declared_value is None or declared_value < 0:
            return DutyEstimate.unavailable("A declared customs value is required to estimate duty", declared_value, code)

        result = await self._lookup(destination, code)
        if result.rate is None:
            logger.info("duty_rate_unavailable", destination=destination, hs_code=code, source=result.source)
            message = (
                f"No duty rate found for HS code {code} into {destination}"
                if code
                else f"No duty rate for {destination} without an HS code"
            )
            return DutyEstimate.unavailable(message, declared_value, code, provider=result.source)

        base_amount = apply_rate(declared_value, result.rate)
        surcharge_rate = self.settings.duty_surcharge_rates.get(destination)
        surcharge_amount = apply_rate(declared_value, surcharge_rate) if surcharge_rate else 0
        total = base_amount + surcharge_amount

        if shipping_terms == ShippingTerms.DAP:
            message = "Duty is paid by the receiver on delivery"
        else:
            message = "Duty and processing fee are included in the total"
        return DutyEstimate(
            available=True,
            provider=result.source,
            customs_value=declared_value,
            hs_code=code,
            base_duty_rate=result.rate,
            base_duty_amount=base_amount,
            surcharge_rate=Decimal(surcharge_rate) if surcharge_rate else None,
            surcharge_amount=surcharge_amount,
            total_duty_amount=total,
            is_estimated=result.is_estimated,
            message=message,
        )

    async def _lookup(self, destination: str, code: str | None) -> DutyRateResult:
        if code:
            source = self.sources.get(destination)
            if source is not None:
                result = await source.get_duty_rate(code)
                if result.rate is not None:
                    return result
            else:
                override = await self.override_repo.get_rate(destination, code)
                if override is not None:
                    return DutyRateResult(
                        rate=Decimal(override.duty_rate), source="override", is_estimated=True, missing=False
                    )

        generic = self.settings.generic_duty_rates.get(destination)
        if generic is not None:
            return DutyRateResult(rate=Decimal(generic), source="generic", is_estimated=True, missing=False)
        return DutyRateResult(rate=None, source="unavailable", is_estimated=True, missing=True)
