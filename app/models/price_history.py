from __future__ import annotations

import uuid
from sqlalchemy import BigInteger, Boolean, DateTime, ForeignKey, Identity, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class PriceHistoryEntry(Base):
    """Append-only audit row; never updated or deleted."""

    __tablename__ = "price_history"

    id: Mapped[int] = mapped_column(BigInteger, Identity(), primary_key=True)
    shipment_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("shipments.id"), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)

    previous_base_price: Mapped[int | None] = mapped_column(BigInteger)
    previous_fuel_charge: Mapped[int | None] = mapped_column(BigInteger)
    previous_total_price: Mapped[int | None] = mapped_column(BigInteger)
    new_base_price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    new_fuel_charge: Mapped[int] = mapped_column(BigInteger, nullable=False)
    new_total_price: Mapped[int] = mapped_column(BigInteger, nullable=False)

    dimensions_changed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    weight_changed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    address_changed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    service_level_changed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    is_auto_recalculation: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    change_reason: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    shipment = relationship("Shipment", back_populates="price_history")
