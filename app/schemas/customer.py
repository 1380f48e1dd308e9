from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field

from app.models.enums import TransactionType, UserRole
from app.schemas.common import BaseSchema


class PriceMultiplierUpdate(BaseModel):
    # None clears the customer override and falls back to the system default.
    price_multiplier: Decimal | None = Field(default=None, gt=0, le=100)


class CustomerRead(BaseSchema):
    id: uuid.UUID
    email: str
    name: str
    role: UserRole
    balance: int
    minimum_balance: int | None
    price_multiplier: Decimal | None


class BalanceTransactionRead(BaseSchema):
    id: uuid.UUID
    user_id: uuid.UUID
    amount: int
    balance_after: int
    transaction_type: TransactionType
    description: str
    related_shipment_id: uuid.UUID | None
    created_at: datetime | None
