from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal


def round_half_up(value: Decimal) -> int:
    """The single rounding rule for every minor-unit amount the engine stores or compares."""
    return int(Decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_minor_units(amount) -> int:
    return round_half_up(Decimal(str(amount)) * 100)


def apply_rate(amount: int, rate: Decimal) -> int:
    return round_half_up(Decimal(amount) * Decimal(rate))
