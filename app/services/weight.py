from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from app.services.errors import InvalidPackageSpec

VOLUMETRIC_DIVISOR = Decimal("5000")


@dataclass(frozen=True)
class PackageSpec:
    length_cm: Decimal
    width_cm: Decimal
    height_cm: Decimal
    weight_kg: Decimal
    piece_count: int = 1
    item_count: int = 1


@dataclass(frozen=True)
class NormalizedWeight:
    volumetric: Decimal
    billable: Decimal


def normalize(length, width, height, weight, divisor: Decimal = VOLUMETRIC_DIVISOR) -> NormalizedWeight:
    """Billable weight is the greater of actual and volumetric (L*W*H / divisor, cm -> kg)."""
    values = {
        name: positive_decimal(name, raw)
        for name, raw in (("length", length), ("width", width), ("height", height), ("weight", weight))
    }

    volumetric = values["length"] * values["width"] * values["height"] / Decimal(divisor)
    return NormalizedWeight(volumetric=volumetric, billable=max(values["weight"], volumetric))


def normalize_spec(spec: PackageSpec, divisor: Decimal = VOLUMETRIC_DIVISOR) -> NormalizedWeight:
    if spec.piece_count < 1:
        raise InvalidPackageSpec("piece_count", spec.piece_count)
    if spec.item_count < 1:
        raise InvalidPackageSpec("item_count", spec.item_count)
    return normalize(spec.length_cm, spec.width_cm, spec.height_cm, spec.weight_kg, divisor)


def positive_decimal(name: str, raw) -> Decimal:
    if raw is None or isinstance(raw, bool):
        raise InvalidPackageSpec(name, raw)
    try:
        value = Decimal(str(raw))
    except ArithmeticError as exc:
        raise InvalidPackageSpec(name, raw) from exc
    if not value.is_finite() or value <= 0:
        raise InvalidPackageSpec(name, raw)
    return value
