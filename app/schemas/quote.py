from __future__ import annotations

import uuid
from decimal import Decimal
from pydantic import BaseModel, Field

from app.models.enums import ServiceLevel, ShippingTerms
from app.schemas.common import BaseSchema, Cents, CountryCode, HsCode


class QuoteRequest(BaseModel):
    length_cm: Decimal = Field(gt=0)
    width_cm: Decimal = Field(gt=0)
    height_cm: Decimal = Field(gt=0)
    weight_kg: Decimal = Field(gt=0)
    piece_count: int = Field(default=1, ge=1)
    item_count: int = Field(default=1, ge=1)
    origin_country: CountryCode | None = None
    destination_country: CountryCode
    service_level: ServiceLevel | None = None
    shipping_terms: ShippingTerms = ShippingTerms.DAP
    declared_value: Cents | None = None
    hs_code: HsCode = None
    insured: bool = False
    # Admins may quote on behalf of a customer.
    customer_id: uuid.UUID | None = None


class RateOptionRead(BaseSchema):
    provider: str
    carrier_id: str
    display_name: str
    service_class: ServiceLevel
    delivery_time_estimate: str
    cargo_price_cost: int
    fuel_cost_cost: int
    additional_fee_cost: int
    insurance_cost: int
    total_price_cost: int
    cargo_price_customer: int | None
    fuel_cost_customer: int | None
    total_price_customer: int | None
    applied_multiplier: Decimal | None
    margin: int | None


class LandedPriceRead(BaseSchema):
    shipping_terms: ShippingTerms
    shipping_price: int
    duty_amount: int | None
    processing_fee: int
    total: int | None
    duty_included: bool
    duty_paid_by_receiver: bool


class QuoteOption(BaseModel):
    option: RateOptionRead
    landed: LandedPriceRead


class DutyEstimateRead(BaseSchema):
    available: bool
    provider: str | None
    customs_value: int | None
    hs_code: str | None
    base_duty_rate: Decimal | None
    base_duty_amount: int | None
    surcharge_rate: Decimal | None
    surcharge_amount: int | None
    total_duty_amount: int | None
    is_estimated: bool
    message: str | None


class QuoteResponse(BaseModel):
    volumetric_weight_kg: Decimal
    billable_weight_kg: Decimal
    applied_multiplier: Decimal
    duty: DutyEstimateRead | None
    options: list[QuoteOption]
