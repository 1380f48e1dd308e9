from __future__ import annotations

import uuid
from decimal import Decimal
from sqlalchemy import BigInteger, DateTime, Enum, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.enums import UserRole


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(Enum(UserRole), nullable=False, default=UserRole.USER)

    # Minor currency units.
    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    minimum_balance: Mapped[int | None] = mapped_column(BigInteger)
    price_multiplier: Mapped[Decimal | None] = mapped_column(Numeric(8, 4))

    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    shipments = relationship("Shipment", back_populates="user", foreign_keys="Shipment.user_id")
    transactions = relationship("BalanceTransaction", back_populates="user")
