from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from app.core.deps import get_admin_user, get_db_session
from app.core.logging import get_logger
from app.repositories.user_repo import UserRepository
from app.schemas.customer import CustomerRead, PriceMultiplierUpdate

router = APIRouter(prefix="/customers", tags=["customers"])
logger = get_logger()


@router.get("/{customer_id}", response_model=CustomerRead)
async def get_customer(customer_id: str, admin=Depends(get_admin_user), session=Depends(get_db_session)):
    customer = await UserRepository(session).get_by_id(customer_id)
    if not customer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")
    return customer


@router.put("/{customer_id}/price-multiplier", response_model=CustomerRead)
async def set_price_multiplier(
    customer_id: str,
    payload: PriceMultiplierUpdate,
    admin=Depends(get_admin_user),
    session=Depends(get_db_session),
):
    """Applies to future quotes and unpriced shipments; stored shipment prices keep their multiplier."""
    repo = UserRepository(session)
    customer = await repo.get_by_id(customer_id)
    if not customer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")
    previous = customer.price_multiplier
    customer = await repo.set_price_multiplier(customer, payload.price_multiplier)
    logger.info(
        "price_multiplier_changed",
        customer_id=str(customer.id),
        admin_id=str(admin.id),
        previous=str(previous) if previous is not None else None,
        current=str(customer.price_multiplier) if customer.price_multiplier is not None else None,
    )
    return customer
