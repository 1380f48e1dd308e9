from __future__ import annotations

import uuid
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.shipment import Shipment


def parse_id(value: str | uuid.UUID) -> uuid.UUID | None:
    """A malformed id names no row."""
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class ShipmentRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create(self, shipment: Shipment) -> Shipment:
        self.session.add(shipment)
        await self.session.commit()
        await self.session.refresh(shipment)
        return shipment

    async def get(self, shipment_id: str | uuid.UUID) -> Shipment | None:
        value = parse_id(shipment_id)
        if value is None:
            return None
        result = await self.session.execute(select(Shipment).where(Shipment.id == value))
        return result.scalar_one_or_none()

    async def get_for_update(self, shipment_id: str | uuid.UUID) -> Shipment | None:
        """Row-locks the shipment for the rest of the transaction; fails fast if already locked.

        The row is reloaded even when the session already holds it, so the caller sees the
        committed state it locked rather than a stale identity-map copy.
        """
        value = parse_id(shipment_id)
        if value is None:
            return None
        result = await self.session.execute(
            select(Shipment)
            .where(Shipment.id == value)
            .with_for_update(nowait=True)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list(self, user_id: uuid.UUID | None = None) -> list[Shipment]:
        query = select(Shipment).order_by(Shipment.created_at.desc())
        if user_id is not None:
            query = query.where(Shipment.user_id == user_id)
        result = await self.session.execute(query)
        return list(result.scalars().all())
