from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.system_setting import SystemSetting

DEFAULT_PRICE_MULTIPLIER = "DEFAULT_PRICE_MULTIPLIER"
MIN_BALANCE = "MIN_BALANCE"


class SystemSettingRepository:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_value(self, key: str) -> str | None:
        result = await self.session.execute(select(SystemSetting.value).where(SystemSetting.key == key))
        return result.scalar_one_or_none()
