from __future__ import annotations

import uuid
from sqlalchemy import BigInteger, Boolean, DateTime, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class InsuranceRange(Base):
    __tablename__ = "insurance_ranges"
    __table_args__ = (UniqueConstraint("min_value", "max_value", name="uq_insurance_range_value"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    min_value: Mapped[int] = mapped_column(BigInteger, nullable=False)
    max_value: Mapped[int] = mapped_column(BigInteger, nullable=False)
    insurance_cost: Mapped[int] = mapped_column(BigInteger, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())
