from __future__ import annotations

import uuid
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.price_history import PriceHistoryEntry


class PriceHistoryRepository:
    """Insert and read only; history rows are never mutated."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def append(self, entry: PriceHistoryEntry) -> PriceHistoryEntry:
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def list_for_shipment(self, shipment_id: str | uuid.UUID) -> list[PriceHistoryEntry]:
        value = uuid.UUID(str(shipment_id))
        result = await self.session.execute(
            select(PriceHistoryEntry)
            .where(PriceHistoryEntry.shipment_id == value)
            .order_by(PriceHistoryEntry.created_at, PriceHistoryEntry.id)
        )
        return list(result.scalars().all())
