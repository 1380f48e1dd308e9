from __future__ import annotations

import uuid
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.transaction import BalanceTransaction


class BalanceTransactionRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, transaction: BalanceTransaction) -> BalanceTransaction:
        self.session.add(transaction)
        await self.session.flush()
        return transaction

    async def list_for_shipment(self, shipment_id: str | uuid.UUID) -> list[BalanceTransaction]:
        value = uuid.UUID(str(shipment_id))
        result = await self.session.execute(
            select(BalanceTransaction)
            .where(BalanceTransaction.related_shipment_id == value)
            .order_by(BalanceTransaction.created_at)
        )
        return list(result.scalars().all())
