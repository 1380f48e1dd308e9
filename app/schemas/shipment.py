from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field

from app.models.enums import PriceState, ServiceLevel, ShipmentStatus, ShippingTerms
from app.schemas.common import BaseSchema, Cents, CountryCode, HsCode


class ShipmentCreate(BaseModel):
    sender_name: str = Field(min_length=1)
    sender_country: CountryCode | None = None
    sender_city: str | None = None
    sender_postal_code: str | None = None

    receiver_name: str = Field(min_length=1)
    receiver_country: CountryCode
    receiver_city: str = Field(min_length=1)
    receiver_postal_code: str = Field(min_length=1)
    receiver_address: str | None = None

    package_length: Decimal = Field(gt=0)
    package_width: Decimal = Field(gt=0)
    package_height: Decimal = Field(gt=0)
    package_weight: Decimal = Field(gt=0)
    piece_count: int = Field(default=1, ge=1)
    item_count: int = Field(default=1, ge=1)
    package_contents: str | None = None

    service_level: ServiceLevel = ServiceLevel.STANDARD
    carrier_id: str | None = None
    shipping_terms: ShippingTerms = ShippingTerms.DAP
    customs_value: Cents | None = None
    hs_code: HsCode = None
    is_insured: bool = False


class ShipmentUpdate(BaseModel):
    """Only fields present in the request body are applied."""

    sender_name: str | None = None
    sender_city: str | None = None
    sender_postal_code: str | None = None

    receiver_name: str | None = None
    receiver_country: CountryCode | None = None
    receiver_city: str | None = None
    receiver_postal_code: str | None = None
    receiver_address: str | None = None

    package_length: Decimal | None = Field(default=None, gt=0)
    package_width: Decimal | None = Field(default=None, gt=0)
    package_height: Decimal | None = Field(default=None, gt=0)
    package_weight: Decimal | None = Field(default=None, gt=0)
    piece_count: int | None = Field(default=None, ge=1)
    item_count: int | None = Field(default=None, ge=1)
    package_contents: str | None = None

    service_level: ServiceLevel | None = None
    shipping_terms: ShippingTerms | None = None
    customs_value: Cents | None = None
    hs_code: HsCode = None
    is_insured: bool | None = None

    recalculate: bool = False


class ShipmentRead(BaseSchema):
    id: uuid.UUID
    user_id: uuid.UUID
    status: ShipmentStatus
    rejection_reason: str | None

    sender_name: str
    sender_country: str
    receiver_name: str
    receiver_country: str
    receiver_city: str
    receiver_postal_code: str

    package_length: Decimal
    package_width: Decimal
    package_height: Decimal
    package_weight: Decimal
    piece_count: int
    item_count: int

    service_level: ServiceLevel
    carrier_id: str | None
    carrier_name: str | None
    shipping_terms: ShippingTerms
    customs_value: int | None
    hs_code: str | None
    is_insured: bool

    base_price: int | None
    fuel_charge: int | None
    total_price: int | None
    applied_multiplier: Decimal | None
    insurance_cost: int | None
    ddp_duty_amount: int | None
    ddp_processing_fee: int | None
    price_state: PriceState = PriceState.NO_PRICE

    tracking_number: str | None
    approved_at: datetime | None


class ShipmentAdminRead(ShipmentRead):
    """Adds the cost basis, which customers never see."""

    original_base_price: int | None
    original_fuel_charge: int | None
    original_total_price: int | None
    approved_by: uuid.UUID | None


class ShipmentList(BaseModel):
    shipments: list[ShipmentRead]


class ReconcileResponse(BaseModel):
    updated: bool
    new_price: int | None
    price_state: PriceState
    history_entry_id: int | None
    changed_fields: list[str]
    shipment: ShipmentRead


class RecalculateRequest(BaseModel):
    refresh_multiplier: bool = False


class ManualPriceOverride(BaseModel):
    total_price: Cents
    base_price: Cents | None = None
    fuel_charge: Cents | None = None
    reason: str = Field(min_length=1)


class ApproveRequest(BaseModel):
    bypass_credit_check: bool = False


class RejectRequest(BaseModel):
    reason: str = Field(min_length=1)


class StatusUpdate(BaseModel):
    status: ShipmentStatus
