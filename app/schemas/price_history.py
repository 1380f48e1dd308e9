from __future__ import annotations

import uuid
from datetime import datetime

from app.schemas.common import BaseSchema


class PriceHistoryRead(BaseSchema):
    id: int
    shipment_id: uuid.UUID
    user_id: uuid.UUID
    previous_base_price: int | None
    previous_fuel_charge: int | None
    previous_total_price: int | None
    new_base_price: int
    new_fuel_charge: int
    new_total_price: int
    dimensions_changed: bool
    weight_changed: bool
    address_changed: bool
    service_level_changed: bool
    is_auto_recalculation: bool
    change_reason: str | None
    created_at: datetime | None
