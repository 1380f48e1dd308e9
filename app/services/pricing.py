from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from app.core.config import Settings, get_settings
from app.core.logging import get_logger
from app.models.enums import PriceState, ServiceLevel, ShippingTerms
from app.repositories.insurance_repo import InsuranceRangeRepository
from app.services.duty import DutyEstimate, DutyEstimator, LandedPrice, apply_shipping_terms, requires_customs
from app.services.errors import NoRouteAvailable
from app.services.markup import MultiplierResolver, apply_markup
from app.services.providers.afs import AfsTransportProvider
from app.services.providers.shipentegra import ShipentegraProvider
from app.services.providers.types import RateOption
from app.services.rate_shopper import RateShopper
from app.services.weight import NormalizedWeight, PackageSpec, normalize_spec

logger = get_logger()


@dataclass(frozen=True)
class PricedOption:
    option: RateOption
    landed: LandedPrice


@dataclass(frozen=True)
class RatingResult:
    weight: NormalizedWeight
    multiplier: Decimal
    duty: DutyEstimate | None
    options: list[PricedOption]


@dataclass(frozen=True)
class ShipmentPrice:
    """Fields a reconciliation writes back onto a shipment."""

    base_price: int
    fuel_charge: int
    total_price: int
    original_base_price: int
    original_fuel_charge: int
    original_total_price: int
    applied_multiplier: Decimal
    insurance_cost: int
    carrier_id: str
    carrier_name: str
    ddp_duty_amount: int | None
    ddp_processing_fee: int | None

    def customer_prices(self) -> tuple[int, int, int]:
        return self.base_price, self.fuel_charge, self.total_price


def default_providers():
    providers = [ShipentegraProvider(), AfsTransportProvider()]
    return [provider for provider in providers if provider.configured]


def price_state(shipment, recalculating: bool = False) -> PriceState:
    if recalculating:
        return PriceState.RECALCULATING
    if shipment.total_price is None:
        return PriceState.NO_PRICE
    if shipment.price_dirty:
        return PriceState.FAILED
    return PriceState.CURRENT


def package_spec_for(shipment) -> PackageSpec:
    return PackageSpec(
        length_cm=shipment.package_length,
        width_cm=shipment.package_width,
        height_cm=shipment.package_height,
        weight_kg=shipment.package_weight,
        piece_count=shipment.piece_count or 1,
        item_count=shipment.item_count or 1,
    )


class PricingEngine:
    """Quoting pipeline: weight, rate shopping, insurance, markup, duty, shipping terms.

    Reads only; nothing here writes to the session.
    """

    def __init__(
        self,
        session,
        shopper: RateShopper | None = None,
        duty_estimator: DutyEstimator | None = None,
        multipliers: MultiplierResolver | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.shopper = shopper or RateShopper(default_providers(), settings=self.settings)
        self.duty_estimator = duty_estimator or DutyEstimator(session, self.settings)
        self.multipliers = multipliers or MultiplierResolver(session, self.settings)
        self.insurance_repo = InsuranceRangeRepository(session)

    async def rate(
        self,
        spec: PackageSpec,
        destination: str,
        customer_id,
        origin: str | None = None,
        service_level: ServiceLevel | None = None,
        shipping_terms: ShippingTerms = ShippingTerms.DAP,
        declared_value: int | None = None,
        hs_code: str | None = None,
        insured: bool = False,
        multiplier: Decimal | None = None,
    ) -> RatingResult:
        destination = destination.upper()
        weight = normalize_spec(spec, Decimal(self.settings.volumetric_divisor))
        options = await self.shopper.shop(
            (origin or self.settings.home_country).upper(),
            destination,
            weight.billable,
            spec.piece_count,
            service_level,
        )

        if insured:
            insurance_cost = await self.insurance_cost(declared_value)
            options = [option.with_insurance(insurance_cost) for option in options]

        if multiplier is None:
            multiplier = await self.multipliers.resolve(customer_id)
        marked_up = apply_markup(options, multiplier)

        duty = None
        if requires_customs(destination, self.settings):
            duty = await self.duty_estimator.estimate(destination, declared_value, hs_code, shipping_terms)

        priced = [
            PricedOption(option=option, landed=apply_shipping_terms(option, duty, shipping_terms, self.settings))
            for option in marked_up
        ]
        return RatingResult(weight=weight, multiplier=multiplier, duty=duty, options=priced)

    async def price_for_shipment(self, shipment, multiplier: Decimal | None = None) -> ShipmentPrice:
        """Re-rates a stored shipment with its own multiplier unless one is passed in.

        Keeps the shipment's carrier when it is still offered; otherwise the
        cheapest option for the shipment's service level wins.
        """
        if multiplier is None:
            multiplier = await self.multipliers.resolve(shipment.user_id, shipment)

        result = await self.rate(
            package_spec_for(shipment),
            shipment.receiver_country,
            shipment.user_id,
            origin=shipment.sender_country,
            service_level=shipment.service_level,
            shipping_terms=shipment.shipping_terms,
            declared_value=shipment.customs_value,
            hs_code=shipment.hs_code,
            insured=shipment.is_insured,
            multiplier=multiplier,
        )
        if not result.options:
            raise NoRouteAvailable(f"no {shipment.service_level.value} service to {shipment.receiver_country}")

        chosen = next((p for p in result.options if p.option.carrier_id == shipment.carrier_id), None)
        if chosen is None:
            chosen = result.options[0]
            if shipment.carrier_id:
                logger.info(
                    "shipment_carrier_replaced",
                    shipment_id=str(shipment.id),
                    previous=shipment.carrier_id,
                    current=chosen.option.carrier_id,
                )

        option, landed = chosen.option, chosen.landed
        ddp = shipment.shipping_terms == ShippingTerms.DDP and result.duty is not None
        return ShipmentPrice(
            base_price=option.cargo_price_customer,
            fuel_charge=option.fuel_cost_customer,
            total_price=option.total_price_customer,
            original_base_price=option.cargo_price_cost,
            original_fuel_charge=option.fuel_cost_cost,
            original_total_price=option.total_price_cost,
            applied_multiplier=result.multiplier,
            insurance_cost=option.insurance_cost,
            carrier_id=option.carrier_id,
            carrier_name=option.display_name,
            ddp_duty_amount=landed.duty_amount if ddp else None,
            ddp_processing_fee=landed.processing_fee if ddp else None,
        )

    async def insurance_cost(self, declared_value: int | None) -> int:
        if not declared_value:
            return 0
        band = await self.insurance_repo.find_for_value(declared_value)
        if band is None:
            logger.warning("insurance_band_missing", declared_value=declared_value)
            return 0
        return int(band.insurance_cost)
