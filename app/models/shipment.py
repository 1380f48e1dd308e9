from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from sqlalchemy import BigInteger, Boolean, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.enums import ServiceLevel, ShipmentStatus, ShippingTerms


class Shipment(Base):
    __tablename__ = "shipments"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    status: Mapped[ShipmentStatus] = mapped_column(
        Enum(ShipmentStatus), nullable=False, default=ShipmentStatus.PENDING
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text)

    sender_name: Mapped[str] = mapped_column(String(255), nullable=False)
    sender_country: Mapped[str] = mapped_column(String(2), nullable=False)
    sender_city: Mapped[str | None] = mapped_column(String(128))
    sender_postal_code: Mapped[str | None] = mapped_column(String(32))

    receiver_name: Mapped[str] = mapped_column(String(255), nullable=False)
    receiver_country: Mapped[str] = mapped_column(String(2), nullable=False)
    receiver_city: Mapped[str] = mapped_column(String(128), nullable=False)
    receiver_postal_code: Mapped[str] = mapped_column(String(32), nullable=False)
    receiver_address: Mapped[str | None] = mapped_column(Text)

    package_length: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    package_width: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    package_height: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    package_weight: Mapped[Decimal] = mapped_column(Numeric(10, 3), nullable=False)
    piece_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    item_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    package_contents: Mapped[str | None] = mapped_column(Text)

    service_level: Mapped[ServiceLevel] = mapped_column(Enum(ServiceLevel), nullable=False)
    carrier_id: Mapped[str | None] = mapped_column(String(64))
    carrier_name: Mapped[str | None] = mapped_column(String(128))
    shipping_terms: Mapped[ShippingTerms] = mapped_column(
        Enum(ShippingTerms), nullable=False, default=ShippingTerms.DAP
    )
    customs_value: Mapped[int | None] = mapped_column(BigInteger)
    hs_code: Mapped[str | None] = mapped_column(String(16))
    is_insured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Customer-facing prices, minor units.
    base_price: Mapped[int | None] = mapped_column(BigInteger)
    fuel_charge: Mapped[int | None] = mapped_column(BigInteger)
    total_price: Mapped[int | None] = mapped_column(BigInteger)
    # Cost-basis prices, minor units.
    original_base_price: Mapped[int | None] = mapped_column(BigInteger)
    original_fuel_charge: Mapped[int | None] = mapped_column(BigInteger)
    original_total_price: Mapped[int | None] = mapped_column(BigInteger)
    applied_multiplier: Mapped[Decimal | None] = mapped_column(Numeric(8, 4))
    insurance_cost: Mapped[int | None] = mapped_column(BigInteger)

    ddp_duty_amount: Mapped[int | None] = mapped_column(BigInteger)
    ddp_processing_fee: Mapped[int | None] = mapped_column(BigInteger)

    # Set when a trigger field changed but no reconciliation has succeeded since.
    price_dirty: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    tracking_number: Mapped[str | None] = mapped_column(String(64))
    approved_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id"))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    user = relationship("User", back_populates="shipments", foreign_keys=[user_id])
    price_history = relationship("PriceHistoryEntry", back_populates="shipment", order_by="PriceHistoryEntry.id")
