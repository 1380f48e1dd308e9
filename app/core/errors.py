from __future__ import annotations

from fastapi import HTTPException, status

from app.services.errors import (
    ConcurrencyConflict,
    CustomerNotFound,
    EditNotPermitted,
    InsufficientFunds,
    InvalidPackageSpec,
    InvalidTransition,
    MissingReason,
    NoRouteAvailable,
    PriceNotReconciled,
    ProviderUnavailable,
    RatingEngineError,
    RecalculationFailed,
    ShipmentNotFound,
)

STATUS_BY_ERROR = (
    (InvalidPackageSpec, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (MissingReason, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ShipmentNotFound, status.HTTP_404_NOT_FOUND),
    (CustomerNotFound, status.HTTP_404_NOT_FOUND),
    (EditNotPermitted, status.HTTP_403_FORBIDDEN),
    (ConcurrencyConflict, status.HTTP_409_CONFLICT),
    (InvalidTransition, status.HTTP_409_CONFLICT),
    (PriceNotReconciled, status.HTTP_409_CONFLICT),
    (InsufficientFunds, status.HTTP_402_PAYMENT_REQUIRED),
    (NoRouteAvailable, status.HTTP_404_NOT_FOUND),
    (ProviderUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (RecalculationFailed, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def http_error(exc: RatingEngineError) -> HTTPException:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            break
    else:
        status_code = status.HTTP_400_BAD_REQUEST

    if isinstance(exc, ShipmentNotFound):
        detail = "Shipment not found"
    elif isinstance(exc, CustomerNotFound):
        detail = "Customer not found"
    elif isinstance(exc, RecalculationFailed):
        detail = f"Price calculation failed, showing last known price: {exc}"
    else:
        detail = str(exc)
    return HTTPException(status_code=status_code, detail=detail)
