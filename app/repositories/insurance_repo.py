from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.insurance_range import InsuranceRange


class InsuranceRangeRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def find_for_value(self, declared_value: int) -> InsuranceRange | None:
        result = await self.session.execute(
            select(InsuranceRange)
            .where(
                InsuranceRange.is_active.is_(True),
                InsuranceRange.min_value <= declared_value,
                InsuranceRange.max_value >= declared_value,
            )
            .order_by(InsuranceRange.min_value)
            .limit(1)
        )
        return result.scalar_one_or_none()
