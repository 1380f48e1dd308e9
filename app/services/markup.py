from __future__ import annotations

from dataclasses import replace
from decimal import Decimal, InvalidOperation
from typing import Iterable

from app.core.config import Settings, get_settings
from app.core.logging import get_logger
from app.repositories.settings_repo import DEFAULT_PRICE_MULTIPLIER, SystemSettingRepository
from app.repositories.user_repo import UserRepository
from app.services.money import apply_rate
from app.services.providers.types import RateOption

logger = get_logger()


def apply_markup(options: Iterable[RateOption], multiplier: Decimal) -> list[RateOption]:
    """Customer prices for cost-basis options; cost fields travel through untouched."""
    multiplier = Decimal(multiplier)
    if multiplier <= 0:
        raise ValueError(f"price multiplier must be positive, got {multiplier}")
    return [
        replace(
            option,
            cargo_price_customer=apply_rate(option.cargo_price_cost, multiplier),
            fuel_cost_customer=apply_rate(option.fuel_cost_cost, multiplier),
            total_price_customer=apply_rate(option.total_price_cost, multiplier),
            applied_multiplier=multiplier,
        )
        for option in options
    ]


def parse_multiplier(value) -> Decimal | None:
    if value is None:
        return None
    try:
        multiplier = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    if not multiplier.is_finite() or multiplier <= 0:
        return None
    return multiplier


class MultiplierResolver:
    """Shipment's stored multiplier, then the customer's, then the system setting, then config."""

    def __init__(self, session, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.users = UserRepository(session)
        self.system_settings = SystemSettingRepository(session)

    async def resolve(self, customer_id, shipment=None) -> Decimal:
        if shipment is not None:
            stored = parse_multiplier(shipment.applied_multiplier)
            if stored is not None:
                return stored

        customer = parse_multiplier(await self.users.get_price_multiplier(customer_id))
        if customer is not None:
            return customer

        return await self.default_multiplier()

    async def default_multiplier(self) -> Decimal:
        raw = await self.system_settings.get_value(DEFAULT_PRICE_MULTIPLIER)
        system_default = parse_multiplier(raw)
        if system_default is not None:
            return system_default
        if raw is not None:
            logger.warning("invalid_default_multiplier_setting", value=raw)
        return self.settings.default_price_multiplier
