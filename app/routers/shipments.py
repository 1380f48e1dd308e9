from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from app.core.config import get_settings
from app.core.deps import get_admin_user, get_current_user, get_db_session
from app.core.errors import http_error
from app.core.logging import get_logger
from app.models.enums import ShipmentStatus, UserRole
from app.models.shipment import Shipment
from app.repositories.price_history_repo import PriceHistoryRepository
from app.repositories.shipment_repo import ShipmentRepository
from app.repositories.transaction_repo import BalanceTransactionRepository
from app.schemas.customer import BalanceTransactionRead
from app.schemas.price_history import PriceHistoryRead
from app.schemas.shipment import (
    ApproveRequest,
    ManualPriceOverride,
    RecalculateRequest,
    ReconcileResponse,
    RejectRequest,
    ShipmentAdminRead,
    ShipmentCreate,
    ShipmentList,
    ShipmentRead,
    ShipmentUpdate,
    StatusUpdate,
)
from app.services.approval import ApprovalService
from app.services.edit_session import edit_sessions
from app.services.errors import (
    InvalidPackageSpec,
    NoRouteAvailable,
    ProviderUnavailable,
    RatingEngineError,
)
from app.services.pricing import PricingEngine, price_state
from app.services.reconciler import ManualOverride, PriceReconciler

router = APIRouter(prefix="/shipments", tags=["shipments"])
logger = get_logger()


def _read(shipment, user) -> ShipmentRead:
    schema = ShipmentAdminRead if user.role == UserRole.ADMIN else ShipmentRead
    state = price_state(shipment, recalculating=edit_sessions.is_recalculating(shipment.id))
    return schema.model_validate(shipment).model_copy(update={"price_state": state})


async def _get_visible(session, shipment_id: str, user) -> Shipment:
    repo = ShipmentRepository(session)
    shipment = await repo.get(shipment_id)
    if not shipment or (user.role != UserRole.ADMIN and shipment.user_id != user.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Shipment not found")
    return shipment


@router.post("")
async def create_shipment(
    payload: ShipmentCreate,
    user=Depends(get_current_user),
    session=Depends(get_db_session),
):
    settings = get_settings()
    repo = ShipmentRepository(session)
    data = payload.model_dump()
    data["sender_country"] = data["sender_country"] or settings.home_country
    shipment = Shipment(user_id=user.id, status=ShipmentStatus.PENDING, price_dirty=False, **data)

    engine = PricingEngine(session)
    try:
        price = await engine.price_for_shipment(shipment)
    except InvalidPackageSpec as exc:
        raise http_error(exc) from exc
    except (ProviderUnavailable, NoRouteAvailable) as exc:
        # Saved without a price; the next edit or recalculation prices it.
        logger.warning("shipment_created_without_price", user_id=str(user.id), error=str(exc))
    else:
        PriceReconciler.apply_price(shipment, price)

    shipment = await repo.create(shipment)
    return _read(shipment, user)


@router.get("", response_model=ShipmentList)
async def list_shipments(user=Depends(get_current_user), session=Depends(get_db_session)):
    repo = ShipmentRepository(session)
    shipments = await repo.list(None if user.role == UserRole.ADMIN else user.id)
    return ShipmentList(shipments=[_read(shipment, user) for shipment in shipments])


@router.get("/{shipment_id}")
async def get_shipment(shipment_id: str, user=Depends(get_current_user), session=Depends(get_db_session)):
    shipment = await _get_visible(session, shipment_id, user)
    return _read(shipment, user)


@router.patch("/{shipment_id}", response_model=ReconcileResponse)
async def update_shipment(
    shipment_id: str,
    payload: ShipmentUpdate,
    user=Depends(get_current_user),
    session=Depends(get_db_session),
):
    await _get_visible(session, shipment_id, user)
    data = payload.model_dump(exclude_unset=True)
    recalculate = data.pop("recalculate", False)
    reconciler = PriceReconciler(session)
    try:
        result = await reconciler.reconcile(shipment_id, data, user, recalculate=recalculate)
    except (RatingEngineError, ValueError) as exc:
        raise _translate(exc) from exc
    shipment = await ShipmentRepository(session).get(shipment_id)
    return ReconcileResponse(shipment=_read(shipment, user), **_result_fields(result))


@router.post("/{shipment_id}/recalculate", response_model=ReconcileResponse)
async def recalculate_shipment(
    shipment_id: str,
    payload: RecalculateRequest,
    admin=Depends(get_admin_user),
    session=Depends(get_db_session),
):
    reconciler = PriceReconciler(session)
    try:
        result = await reconciler.reconcile(
            shipment_id, {}, admin, recalculate=True, refresh_multiplier=payload.refresh_multiplier
        )
    except (RatingEngineError, ValueError) as exc:
        raise _translate(exc) from exc
    shipment = await ShipmentRepository(session).get(shipment_id)
    return ReconcileResponse(shipment=_read(shipment, admin), **_result_fields(result))


@router.post("/{shipment_id}/price-override", response_model=ReconcileResponse)
async def override_price(
    shipment_id: str,
    payload: ManualPriceOverride,
    admin=Depends(get_admin_user),
    session=Depends(get_db_session),
):
    override = ManualOverride(
        total_price=payload.total_price,
        base_price=payload.base_price,
        fuel_charge=payload.fuel_charge,
        reason=payload.reason,
    )
    reconciler = PriceReconciler(session)
    try:
        result = await reconciler.reconcile(shipment_id, {}, admin, manual_override=override)
    except (RatingEngineError, ValueError) as exc:
        raise _translate(exc) from exc
    shipment = await ShipmentRepository(session).get(shipment_id)
    return ReconcileResponse(shipment=_read(shipment, admin), **_result_fields(result))


@router.get("/{shipment_id}/price-history", response_model=list[PriceHistoryRead])
async def price_history(shipment_id: str, user=Depends(get_current_user), session=Depends(get_db_session)):
    shipment = await _get_visible(session, shipment_id, user)
    return await PriceHistoryRepository(session).list_for_shipment(shipment.id)


@router.get("/{shipment_id}/transactions", response_model=list[BalanceTransactionRead])
async def shipment_transactions(shipment_id: str, admin=Depends(get_admin_user), session=Depends(get_db_session)):
    """Balance debits charged for this shipment at approval."""
    shipment = await _get_visible(session, shipment_id, admin)
    return await BalanceTransactionRepository(session).list_for_shipment(shipment.id)


@router.post("/{shipment_id}/approve")
async def approve_shipment(
    shipment_id: str,
    payload: ApproveRequest,
    admin=Depends(get_admin_user),
    session=Depends(get_db_session),
):
    service = ApprovalService(session)
    try:
        shipment = await service.approve(shipment_id, admin, bypass_credit_check=payload.bypass_credit_check)
    except RatingEngineError as exc:
        raise http_error(exc) from exc
    return _read(shipment, admin)


@router.post("/{shipment_id}/reject")
async def reject_shipment(
    shipment_id: str,
    payload: RejectRequest,
    admin=Depends(get_admin_user),
    session=Depends(get_db_session),
):
    service = ApprovalService(session)
    try:
        shipment = await service.reject(shipment_id, admin, payload.reason)
    except RatingEngineError as exc:
        raise http_error(exc) from exc
    return _read(shipment, admin)


@router.put("/{shipment_id}/status")
async def update_status(
    shipment_id: str,
    payload: StatusUpdate,
    admin=Depends(get_admin_user),
    session=Depends(get_db_session),
):
    service = ApprovalService(session)
    try:
        if payload.status == ShipmentStatus.IN_TRANSIT:
            shipment = await service.mark_in_transit(shipment_id)
        elif payload.status == ShipmentStatus.DELIVERED:
            shipment = await service.mark_delivered(shipment_id)
        else:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Use the approve and reject endpoints for review decisions",
            )
    except RatingEngineError as exc:
        raise http_error(exc) from exc
    return _read(shipment, admin)


def _translate(exc: Exception) -> HTTPException:
    if isinstance(exc, RatingEngineError):
        return http_error(exc)
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))


def _result_fields(result) -> dict:
    return {
        "updated": result.updated,
        "new_price": result.new_price,
        "price_state": result.price_state,
        "history_entry_id": result.history_entry_id,
        "changed_fields": result.changed_fields,
    }
