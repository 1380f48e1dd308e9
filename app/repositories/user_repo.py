from __future__ import annotations

import uuid
from decimal import Decimal
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User
from app.repositories.shipment_repo import parse_id


class UserRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_id(self, user_id: str | uuid.UUID) -> User | None:
        value = uuid.UUID(str(user_id))
        result = await self.session.execute(select(User).where(User.id == value))
        return result.scalar_one_or_none()

    async def get_for_update(self, user_id: str | uuid.UUID) -> User | None:
        value = parse_id(user_id)
        if value is None:
            return None
        result = await self.session.execute(
            select(User).where(User.id == value).with_for_update().execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_price_multiplier(self, user_id: str | uuid.UUID) -> Decimal | None:
        value = uuid.UUID(str(user_id))
        result = await self.session.execute(select(User.price_multiplier).where(User.id == value))
        return result.scalar_one_or_none()

    async def set_price_multiplier(self, user: User, multiplier: Decimal | None) -> User:
        user.price_multiplier = multiplier
        self.session.add(user)
        await self.session.commit()
        await self.session.refresh(user)
        return user
