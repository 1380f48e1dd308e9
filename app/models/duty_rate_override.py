from __future__ import annotations

import uuid
from decimal import Decimal
from sqlalchemy import DateTime, Numeric, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class DutyRateOverride(Base):
    """Admin-maintained duty rates used when the tariff API has no answer."""

    __tablename__ = "duty_rate_overrides"
    __table_args__ = (UniqueConstraint("destination_country", "hs_code", name="uq_duty_override_dest_hs"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    destination_country: Mapped[str] = mapped_column(String(2), nullable=False)
    hs_code: Mapped[str] = mapped_column(String(16), nullable=False)
    duty_rate: Mapped[Decimal] = mapped_column(Numeric(8, 4), nullable=False)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())
