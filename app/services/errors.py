from __future__ import annotations


class RatingEngineError(Exception):
    """Base class for rating, reconciliation and approval failures."""


class InvalidPackageSpec(RatingEngineError):
    def __init__(self, field: str, value) -> None:
        super().__init__(f"{field} must be a positive number, got {value!r}")
        self.field = field
        self.value = value


class ProviderUnavailable(RatingEngineError):
    """Every configured rate provider failed or timed out."""


class NoRouteAvailable(RatingEngineError):
    """No provider offers a service to the destination."""


class RecalculationFailed(RatingEngineError):
    """Reconciliation could not price the shipment; stored prices were left untouched."""


class InsufficientFunds(RatingEngineError):
    def __init__(self, balance: int, amount: int, minimum_balance: int) -> None:
        super().__init__(
            f"Debit of {amount} would take balance {balance} below the minimum of {minimum_balance}"
        )
        self.balance = balance
        self.amount = amount
        self.minimum_balance = minimum_balance


class ConcurrencyConflict(RatingEngineError):
    """Another transaction holds or already changed the record."""


class InvalidTransition(RatingEngineError):
    pass


class EditNotPermitted(RatingEngineError):
    pass


class ShipmentNotFound(RatingEngineError):
    pass


class CustomerNotFound(RatingEngineError):
    pass


class PriceNotReconciled(RatingEngineError):
    """The shipment has no current customer price to charge."""


class MissingReason(RatingEngineError):
    """Rejections and manual price overrides must say why."""
