from __future__ import annotations

import asyncio
import uuid
from collections import Counter
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from sqlalchemy.exc import OperationalError

from app.core.logging import get_logger
from app.models.enums import PriceState, ServiceLevel, ShipmentStatus, ShippingTerms, UserRole
from app.models.price_history import PriceHistoryEntry
from app.repositories.price_history_repo import PriceHistoryRepository
from app.repositories.shipment_repo import ShipmentRepository
from app.services.approval import FROZEN_STATUSES, check_edit_permission
from app.services.errors import (
    ConcurrencyConflict,
    EditNotPermitted,
    InvalidPackageSpec,
    MissingReason,
    NoRouteAvailable,
    ProviderUnavailable,
    RecalculationFailed,
    ShipmentNotFound,
)
from app.services.pricing import PricingEngine, ShipmentPrice, price_state
from app.services.weight import positive_decimal

logger = get_logger()

# Field -> price-history category it dirties.
TRIGGER_FIELDS = {
    "package_weight": "weight_changed",
    "package_length": "dimensions_changed",
    "package_width": "dimensions_changed",
    "package_height": "dimensions_changed",
    "receiver_city": "address_changed",
    "receiver_postal_code": "address_changed",
    "receiver_country": "address_changed",
    "service_level": "service_level_changed",
}
# Price-affecting, but outside the audited categories.
PRICING_FIELDS = {"piece_count", "customs_value", "hs_code", "shipping_terms", "is_insured"}
PLAIN_FIELDS = {
    "sender_name",
    "sender_city",
    "sender_postal_code",
    "receiver_name",
    "receiver_address",
    "item_count",
    "package_contents",
}
EDITABLE_FIELDS = set(TRIGGER_FIELDS) | PRICING_FIELDS | PLAIN_FIELDS
NULLABLE_FIELDS = {
    "customs_value",
    "hs_code",
    "sender_city",
    "sender_postal_code",
    "receiver_address",
    "package_contents",
}
CATEGORIES = ("dimensions_changed", "weight_changed", "address_changed", "service_level_changed")

_locks: dict[str, asyncio.Lock] = {}
_lock_holders: Counter[str] = Counter()


@asynccontextmanager
async def shipment_lock(shipment_id):
    """One reconciliation in flight per shipment within this process.

    The lock is dropped once nobody holds or waits on it.
    """
    key = str(shipment_id)
    lock = _locks.setdefault(key, asyncio.Lock())
    _lock_holders[key] += 1
    try:
        async with lock:
            yield
    finally:
        _lock_holders[key] -= 1
        if not _lock_holders[key]:
            del _lock_holders[key]
            del _locks[key]


@dataclass(frozen=True)
class ManualOverride:
    total_price: int
    reason: str
    base_price: int | None = None
    fuel_charge: int | None = None


@dataclass(frozen=True)
class ReconcileResult:
    updated: bool
    new_price: int | None
    price_state: PriceState
    history_entry_id: int | None = None
    changed_fields: list[str] = field(default_factory=list)


def coerce_field(name: str, value):
    if name not in EDITABLE_FIELDS:
        raise EditNotPermitted(f"Field {name!r} cannot be edited")
    if name in ("package_weight", "package_length", "package_width", "package_height"):
        return positive_decimal(name, value)
    if name in ("piece_count", "item_count"):
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise InvalidPackageSpec(name, value)
        return value
    if value is None and name not in NULLABLE_FIELDS:
        raise ValueError(f"{name} cannot be cleared")
    if name == "receiver_country":
        return str(value).strip().upper()
    if name == "service_level":
        return ServiceLevel(value)
    if name == "shipping_terms":
        return ShippingTerms(value)
    if name == "customs_value":
        if value is None:
            return None
        try:
            amount = int(value)
        except (TypeError, ValueError, InvalidOperation) as exc:
            raise InvalidPackageSpec(name, value) from exc
        if amount < 0:
            raise InvalidPackageSpec(name, value)
        return amount
    if name == "is_insured":
        return bool(value)
    if isinstance(value, str):
        return value.strip()
    return value


def _same(current, new) -> bool:
    if isinstance(current, Decimal) or isinstance(new, Decimal):
        if current is None or new is None:
            return current is new
        return Decimal(current) == Decimal(new)
    return current == new


class PriceReconciler:
    """Applies an edit to a shipment and brings its stored price in line with it.

    A price-history row is written only when base, fuel or total price actually
    differ from what was stored, so replaying the same edit is a no-op.
    """

    def __init__(self, session, engine: PricingEngine | None = None) -> None:
        self.session = session
        self.shipments = ShipmentRepository(session)
        self.history = PriceHistoryRepository(session)
        self.engine = engine or PricingEngine(session)

    async def reconcile(
        self,
        shipment_id: str | uuid.UUID,
        updated_fields: dict,
        actor,
        manual_override: ManualOverride | None = None,
        recalculate: bool = False,
        refresh_multiplier: bool = False,
    ) -> ReconcileResult:
        recalculate = recalculate or refresh_multiplier
        async with shipment_lock(shipment_id):
            try:
                shipment = await self.shipments.get_for_update(shipment_id)
            except OperationalError as exc:
                await self.session.rollback()
                raise ConcurrencyConflict("Shipment is locked by another request") from exc
            if shipment is None:
                await self.session.rollback()
                raise ShipmentNotFound(str(shipment_id))

            try:
                check_edit_permission(shipment, actor, recalculate=recalculate)
                if manual_override is not None:
                    self._check_override(manual_override, actor)
                changes = {
                    name: coerced
                    for name, coerced in ((n, coerce_field(n, v)) for n, v in updated_fields.items())
                    if not _same(getattr(shipment, name), coerced)
                }
            except (EditNotPermitted, InvalidPackageSpec, MissingReason, ValueError):
                await self.session.rollback()
                raise

            categories = {TRIGGER_FIELDS[name] for name in changes if name in TRIGGER_FIELDS}
            for name, value in changes.items():
                setattr(shipment, name, value)
            if changes and shipment.status == ShipmentStatus.REJECTED:
                # An edit is a re-submission.
                shipment.status = ShipmentStatus.PENDING
                shipment.rejection_reason = None

            frozen = shipment.status in FROZEN_STATUSES
            price_inputs_changed = bool(categories) or any(name in PRICING_FIELDS for name in changes)
            needs_price = (
                manual_override is not None
                or recalculate
                or (not frozen and (price_inputs_changed or shipment.price_dirty or shipment.total_price is None))
            )

            if not needs_price:
                await self.session.commit()
                return ReconcileResult(
                    updated=False,
                    new_price=shipment.total_price,
                    price_state=price_state(shipment),
                    changed_fields=sorted(changes),
                )

            if manual_override is not None:
                new_prices = (
                    manual_override.base_price if manual_override.base_price is not None else shipment.base_price,
                    manual_override.fuel_charge if manual_override.fuel_charge is not None else shipment.fuel_charge,
                    manual_override.total_price,
                )
                price = None
            else:
                try:
                    price = await self.engine.price_for_shipment(
                        shipment,
                        multiplier=None if refresh_multiplier else shipment.applied_multiplier,
                    )
                except InvalidPackageSpec:
                    await self.session.rollback()
                    raise
                except (ProviderUnavailable, NoRouteAvailable) as exc:
                    # Keep the last good price; the edit itself still stands.
                    shipment.price_dirty = True
                    await self.session.commit()
                    logger.warning("reconcile_failed", shipment_id=str(shipment.id), error=str(exc))
                    raise RecalculationFailed(str(exc)) from exc
                new_prices = price.customer_prices()

            previous = (shipment.base_price, shipment.fuel_charge, shipment.total_price)
            updated = previous != new_prices
            if price is not None:
                self.apply_price(shipment, price)
            else:
                shipment.base_price, shipment.fuel_charge, shipment.total_price = new_prices
            shipment.price_dirty = False

            entry = None
            if updated:
                entry = PriceHistoryEntry(
                    shipment_id=shipment.id,
                    user_id=actor.id,
                    previous_base_price=previous[0],
                    previous_fuel_charge=previous[1],
                    previous_total_price=previous[2],
                    new_base_price=new_prices[0],
                    new_fuel_charge=new_prices[1],
                    new_total_price=new_prices[2],
                    is_auto_recalculation=manual_override is None,
                    change_reason=self._reason(categories, manual_override, recalculate, refresh_multiplier),
                    **{category: category in categories for category in CATEGORIES},
                )
                await self.history.append(entry)
            await self.session.commit()

            logger.info(
                "shipment_reconciled",
                shipment_id=str(shipment.id),
                updated=updated,
                total_price=shipment.total_price,
                categories=sorted(categories),
            )
            return ReconcileResult(
                updated=updated,
                new_price=shipment.total_price,
                price_state=PriceState.CURRENT,
                history_entry_id=entry.id if entry is not None else None,
                changed_fields=sorted(changes),
            )

    def _check_override(self, override: ManualOverride, actor) -> None:
        if actor.role != UserRole.ADMIN:
            raise EditNotPermitted("Manual price overrides are an administrator action")
        if not (override.reason or "").strip():
            raise MissingReason("A manual price override needs a reason")
        for amount in (override.total_price, override.base_price, override.fuel_charge):
            if amount is not None and amount < 0:
                raise ValueError("override prices cannot be negative")

    @staticmethod
    def apply_price(shipment, price: ShipmentPrice) -> None:
        shipment.base_price = price.base_price
        shipment.fuel_charge = price.fuel_charge
        shipment.total_price = price.total_price
        shipment.original_base_price = price.original_base_price
        shipment.original_fuel_charge = price.original_fuel_charge
        shipment.original_total_price = price.original_total_price
        shipment.applied_multiplier = price.applied_multiplier
        shipment.insurance_cost = price.insurance_cost
        shipment.carrier_id = price.carrier_id
        shipment.carrier_name = price.carrier_name
        shipment.ddp_duty_amount = price.ddp_duty_amount
        shipment.ddp_processing_fee = price.ddp_processing_fee

    def _reason(self, categories, override: ManualOverride | None, recalculate: bool, refresh_multiplier: bool) -> str:
        if override is not None:
            return override.reason.strip()
        if refresh_multiplier:
            return "Administrator recalculation with current customer multiplier"
        if categories:
            labels = sorted(category.removesuffix("_changed").replace("_", " ") for category in categories)
            return f"Automatic recalculation after {', '.join(labels)} change"
        if recalculate:
            return "Administrator recalculation"
        return "Automatic recalculation"
