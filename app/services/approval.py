from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timezone

from sqlalchemy.exc import OperationalError

from app.core.logging import get_logger
from app.models.enums import ShipmentStatus, ShippingTerms, UserRole
from app.repositories.shipment_repo import ShipmentRepository
from app.services.errors import (
    ConcurrencyConflict,
    EditNotPermitted,
    InvalidTransition,
    MissingReason,
    PriceNotReconciled,
    RatingEngineError,
    ShipmentNotFound,
)
from app.services.ledger import BalanceLedger

logger = get_logger()

FROZEN_STATUSES = {ShipmentStatus.APPROVED, ShipmentStatus.IN_TRANSIT, ShipmentStatus.DELIVERED}


def generate_tracking_number(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"SR{now:%y%m%d}{secrets.token_hex(4).upper()}"


def check_edit_permission(shipment, actor, recalculate: bool = False) -> None:
    """Owners and admins edit pending/rejected shipments; approved and later are admin-only."""
    is_admin = actor.role == UserRole.ADMIN
    if not is_admin and shipment.user_id != actor.id:
        raise EditNotPermitted("Only the owner or an administrator can edit this shipment")
    if shipment.status in FROZEN_STATUSES:
        if not is_admin:
            raise EditNotPermitted(f"{shipment.status.value} shipments can only be edited by an administrator")
    elif recalculate and not is_admin:
        raise EditNotPermitted("Explicit recalculation is an administrator action")


class ApprovalService:
    def __init__(self, session, ledger: BalanceLedger | None = None) -> None:
        self.session = session
        self.shipments = ShipmentRepository(session)
        self.ledger = ledger or BalanceLedger(session)

    async def approve(self, shipment_id: str | uuid.UUID, admin, bypass_credit_check: bool = False):
        """pending -> approved, debiting the customer in the same transaction as the status flip."""
        shipment = await self._lock(shipment_id)
        try:
            if shipment.status == ShipmentStatus.APPROVED:
                raise ConcurrencyConflict("Shipment is already approved")
            if shipment.status != ShipmentStatus.PENDING:
                raise InvalidTransition(f"Cannot approve a {shipment.status.value} shipment")
            if shipment.total_price is None or shipment.price_dirty:
                raise PriceNotReconciled("Shipment price must be recalculated before approval")
            ddp = shipment.shipping_terms == ShippingTerms.DDP and shipment.ddp_processing_fee is not None
            if ddp and shipment.ddp_duty_amount is None:
                raise PriceNotReconciled("DDP duty could not be estimated for this shipment")

            # An admin override can price a shipment at zero; nothing to debit then.
            if shipment.total_price:
                await self.ledger.debit(
                    shipment.user_id,
                    shipment.total_price,
                    f"Shipment {shipment.id} approved",
                    shipment_id=shipment.id,
                    bypass_credit_check=bypass_credit_check,
                )
            if ddp:
                if shipment.ddp_duty_amount:
                    await self.ledger.debit(
                        shipment.user_id,
                        shipment.ddp_duty_amount,
                        f"DDP duty for shipment {shipment.id}",
                        shipment_id=shipment.id,
                        bypass_credit_check=bypass_credit_check,
                    )
                if shipment.ddp_processing_fee:
                    await self.ledger.debit(
                        shipment.user_id,
                        shipment.ddp_processing_fee,
                        f"DDP processing fee for shipment {shipment.id}",
                        shipment_id=shipment.id,
                        bypass_credit_check=bypass_credit_check,
                    )
        except RatingEngineError as exc:
            await self.session.rollback()
            logger.info("shipment_approval_refused", shipment_id=str(shipment_id), reason=type(exc).__name__)
            raise
        except Exception as exc:
            await self.session.rollback()
            logger.error(
                "shipment_approval_failed",
                shipment_id=str(shipment_id),
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise

        shipment.status = ShipmentStatus.APPROVED
        shipment.approved_by = admin.id
        shipment.approved_at = datetime.now(timezone.utc)
        shipment.tracking_number = shipment.tracking_number or generate_tracking_number()
        shipment.rejection_reason = None
        await self.session.commit()
        logger.info("shipment_approved", shipment_id=str(shipment.id), amount=shipment.total_price)
        return shipment

    async def reject(self, shipment_id: str | uuid.UUID, admin, reason: str):
        reason = (reason or "").strip()
        if not reason:
            raise MissingReason("A rejection reason is required")

        shipment = await self._lock(shipment_id)
        if shipment.status != ShipmentStatus.PENDING:
            await self.session.rollback()
            raise InvalidTransition(f"Cannot reject a {shipment.status.value} shipment")

        shipment.status = ShipmentStatus.REJECTED
        shipment.rejection_reason = reason
        await self.session.commit()
        logger.info("shipment_rejected", shipment_id=str(shipment.id), admin_id=str(admin.id))
        return shipment

    async def mark_in_transit(self, shipment_id: str | uuid.UUID):
        return await self._advance(shipment_id, ShipmentStatus.APPROVED, ShipmentStatus.IN_TRANSIT)

    async def mark_delivered(self, shipment_id: str | uuid.UUID):
        return await self._advance(shipment_id, ShipmentStatus.IN_TRANSIT, ShipmentStatus.DELIVERED)

    async def _advance(self, shipment_id, expected: ShipmentStatus, target: ShipmentStatus):
        shipment = await self._lock(shipment_id)
        if shipment.status == target:
            await self.session.commit()
            return shipment
        if shipment.status != expected:
            await self.session.rollback()
            raise InvalidTransition(f"Cannot move a {shipment.status.value} shipment to {target.value}")
        shipment.status = target
        await self.session.commit()
        logger.info("shipment_status_changed", shipment_id=str(shipment.id), status=target.value)
        return shipment

    async def _lock(self, shipment_id):
        try:
            shipment = await self.shipments.get_for_update(shipment_id)
        except OperationalError as exc:
            await self.session.rollback()
            raise ConcurrencyConflict("Shipment is being changed by another request") from exc
        if shipment is None:
            await self.session.rollback()
            raise ShipmentNotFound(str(shipment_id))
        return shipment
