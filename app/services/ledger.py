from __future__ import annotations

import uuid

from sqlalchemy.exc import OperationalError

from app.core.config import Settings, get_settings
from app.core.logging import get_logger
from app.models.enums import TransactionType
from app.models.transaction import BalanceTransaction
from app.repositories.settings_repo import MIN_BALANCE, SystemSettingRepository
from app.repositories.transaction_repo import BalanceTransactionRepository
from app.repositories.user_repo import UserRepository
from app.services.errors import ConcurrencyConflict, CustomerNotFound, InsufficientFunds

logger = get_logger()


class BalanceLedger:
    """Customer balance debits; the caller owns the transaction and commits or rolls back."""

    def __init__(self, session, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()
        self.users = UserRepository(session)
        self.system_settings = SystemSettingRepository(session)
        self.transactions = BalanceTransactionRepository(session)

    async def debit(
        self,
        customer_id: str | uuid.UUID,
        amount: int,
        reason: str,
        shipment_id: uuid.UUID | None = None,
        bypass_credit_check: bool = False,
    ) -> BalanceTransaction:
        if amount <= 0:
            raise ValueError(f"debit amount must be positive, got {amount}")

        try:
            user = await self.users.get_for_update(customer_id)
        except OperationalError as exc:
            raise ConcurrencyConflict("customer balance is locked by another transaction") from exc
        if user is None:
            raise CustomerNotFound(str(customer_id))

        minimum = await self.minimum_balance(user)
        new_balance = user.balance - amount
        if new_balance < minimum and not bypass_credit_check:
            raise InsufficientFunds(user.balance, amount, minimum)

        user.balance = new_balance
        transaction = BalanceTransaction(
            user_id=user.id,
            amount=-amount,
            balance_after=new_balance,
            transaction_type=TransactionType.PURCHASE,
            description=reason,
            related_shipment_id=shipment_id,
        )
        await self.transactions.add(transaction)
        logger.info(
            "balance_debited",
            user_id=str(user.id),
            amount=amount,
            balance_after=new_balance,
            shipment_id=str(shipment_id) if shipment_id else None,
            credit_check_bypassed=bypass_credit_check and new_balance < minimum,
        )
        return transaction

    async def minimum_balance(self, user) -> int:
        if user.minimum_balance is not None:
            return int(user.minimum_balance)
        raw = await self.system_settings.get_value(MIN_BALANCE)
        if raw is not None:
            try:
                return int(raw)
            except ValueError:
                logger.warning("invalid_min_balance_setting", value=raw)
        return self.settings.default_minimum_balance
