from __future__ import annotations

from fastapi import APIRouter, Depends

from app.core.deps import get_current_user, get_db_session
from app.core.errors import http_error
from app.core.rate_limit import quote_rate_limiter
from app.models.enums import UserRole
from app.schemas.quote import (
    DutyEstimateRead,
    LandedPriceRead,
    QuoteOption,
    QuoteRequest,
    QuoteResponse,
    RateOptionRead,
)
from app.services.errors import RatingEngineError
from app.services.pricing import PricingEngine
from app.services.weight import PackageSpec

router = APIRouter(prefix="/quotes", tags=["quotes"])


@router.post("", response_model=QuoteResponse)
async def quote(payload: QuoteRequest, user=Depends(get_current_user), session=Depends(get_db_session)):
    quote_rate_limiter.check(str(user.id))
    customer_id = payload.customer_id if user.role == UserRole.ADMIN and payload.customer_id else user.id

    spec = PackageSpec(
        length_cm=payload.length_cm,
        width_cm=payload.width_cm,
        height_cm=payload.height_cm,
        weight_kg=payload.weight_kg,
        piece_count=payload.piece_count,
        item_count=payload.item_count,
    )
    engine = PricingEngine(session)
    try:
        result = await engine.rate(
            spec,
            payload.destination_country,
            customer_id,
            origin=payload.origin_country,
            service_level=payload.service_level,
            shipping_terms=payload.shipping_terms,
            declared_value=payload.declared_value,
            hs_code=payload.hs_code,
            insured=payload.insured,
        )
    except RatingEngineError as exc:
        raise http_error(exc) from exc

    return QuoteResponse(
        volumetric_weight_kg=result.weight.volumetric,
        billable_weight_kg=result.weight.billable,
        applied_multiplier=result.multiplier,
        duty=DutyEstimateRead.model_validate(result.duty) if result.duty else None,
        options=[
            QuoteOption(
                option=RateOptionRead.model_validate(priced.option),
                landed=LandedPriceRead.model_validate(priced.landed),
            )
            for priced in result.options
        ],
    )
