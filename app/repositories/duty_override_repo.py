from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.duty_rate_override import DutyRateOverride


class DutyRateOverrideRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_rate(self, destination_country: str, hs_code: str) -> DutyRateOverride | None:
        result = await self.session.execute(
            select(DutyRateOverride).where(
                DutyRateOverride.destination_country == destination_country,
                DutyRateOverride.hs_code == hs_code,
            )
        )
        return result.scalar_one_or_none()
