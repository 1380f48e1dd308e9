import asyncio
import uuid
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError

from app.models.enums import ShipmentStatus, ShippingTerms, TransactionType, UserRole
from app.services.approval import ApprovalService, generate_tracking_number
from app.services.errors import (
    ConcurrencyConflict,
    InsufficientFunds,
    InvalidTransition,
    MissingReason,
    PriceNotReconciled,
    ShipmentNotFound,
)
from app.services.ledger import BalanceLedger
from app.repositories.settings_repo import MIN_BALANCE

ADMIN = SimpleNamespace(id=uuid.uuid4(), role=UserRole.ADMIN)


class FakeDatabase:
    """Single shipment and customer with row locks held per session until commit or rollback."""

    def __init__(self, shipment, user, settings=None):
        self.shipment = shipment
        self.user = user
        self.settings = settings or {}
        self.locks = {}
        self.transactions = []


class FakeSession:
    def __init__(self, db):
        self.db = db
        self.pending = []
        self.snapshot = None
        self.commits = 0
        self.rollbacks = 0

    async def lock(self, key):
        holder = self.db.locks.get(key)
        if holder is not None and holder is not self:
            raise OperationalError("SELECT ... FOR UPDATE NOWAIT", None, Exception("lock not available"))
        self.db.locks[key] = self
        if self.snapshot is None:
            self.snapshot = (dict(vars(self.db.shipment)), self.db.user.balance)
        await asyncio.sleep(0)

    def add(self, obj):
        self.pending.append(obj)

    async def flush(self):
        return None

    async def commit(self):
        self.commits += 1
        self.db.transactions.extend(self.pending)
        self._release()

    async def rollback(self):
        self.rollbacks += 1
        if self.snapshot is not None:
            vars(self.db.shipment).update(self.snapshot[0])
            self.db.user.balance = self.snapshot[1]
        self._release()

    def _release(self):
        self.pending = []
        self.snapshot = None
        for key in [k for k, holder in self.db.locks.items() if holder is self]:
            del self.db.locks[key]


class FakeShipmentRepo:
    def __init__(self, session):
        self.session = session

    async def get_for_update(self, shipment_id):
        shipment = self.session.db.shipment
        if str(shipment_id) != str(shipment.id):
            return None
        await self.session.lock(("shipment", shipment.id))
        return shipment


class FakeUserRepo:
    def __init__(self, session):
        self.session = session

    async def get_for_update(self, user_id):
        user = self.session.db.user
        if str(user_id) != str(user.id):
            return None
        await self.session.lock(("user", user.id))
        return user


class FakeSettingsRepo:
    def __init__(self, session):
        self.session = session

    async def get_value(self, key):
        return self.session.db.settings.get(key)


class FakeTransactionRepo:
    def __init__(self, session):
        self.session = session

    async def add(self, transaction):
        self.session.add(transaction)
        await self.session.flush()
        return transaction


def make_user(balance=10000, minimum_balance=None):
    return SimpleNamespace(id=uuid.uuid4(), role=UserRole.USER, balance=balance, minimum_balance=minimum_balance)


def make_shipment(user, **overrides):
    data = dict(
        id=uuid.uuid4(),
        user_id=user.id,
        status=ShipmentStatus.PENDING,
        rejection_reason=None,
        shipping_terms=ShippingTerms.DAP,
        total_price=1450,
        price_dirty=False,
        ddp_duty_amount=None,
        ddp_processing_fee=None,
        tracking_number=None,
        approved_by=None,
        approved_at=None,
    )
    data.update(overrides)
    return SimpleNamespace(**data)


def make_service(db, default_minimum_balance=0):
    session = FakeSession(db)
    ledger = BalanceLedger(session, settings=SimpleNamespace(default_minimum_balance=default_minimum_balance))
    ledger.users = FakeUserRepo(session)
    ledger.system_settings = FakeSettingsRepo(session)
    ledger.transactions = FakeTransactionRepo(session)
    service = ApprovalService(session, ledger=ledger)
    service.shipments = FakeShipmentRepo(session)
    return service, session


@pytest.mark.asyncio
async def test_approve_debits_customer_and_assigns_tracking():
    user = make_user(balance=10000)
    db = FakeDatabase(make_shipment(user), user)
    service, session = make_service(db)

    shipment = await service.approve(db.shipment.id, ADMIN)

    assert shipment.status == ShipmentStatus.APPROVED
    assert shipment.approved_by == ADMIN.id
    assert shipment.approved_at is not None
    assert shipment.tracking_number.startswith("SR")
    assert user.balance == 8550
    [transaction] = db.transactions
    assert transaction.amount == -1450
    assert transaction.balance_after == 8550
    assert transaction.transaction_type == TransactionType.PURCHASE
    assert transaction.related_shipment_id == shipment.id
    assert session.commits == 1
    assert db.locks == {}


@pytest.mark.asyncio
async def test_insufficient_funds_leaves_shipment_pending():
    user = make_user(balance=1000)
    db = FakeDatabase(make_shipment(user), user)
    service, session = make_service(db)

    with pytest.raises(InsufficientFunds) as excinfo:
        await service.approve(db.shipment.id, ADMIN)

    assert excinfo.value.amount == 1450
    assert db.shipment.status == ShipmentStatus.PENDING
    assert user.balance == 1000
    assert db.transactions == []
    assert session.rollbacks == 1


@pytest.mark.asyncio
async def test_admin_can_bypass_credit_check():
    user = make_user(balance=1000)
    db = FakeDatabase(make_shipment(user), user)
    service, _ = make_service(db)

    await service.approve(db.shipment.id, ADMIN, bypass_credit_check=True)

    assert db.shipment.status == ShipmentStatus.APPROVED
    assert user.balance == -450


@pytest.mark.asyncio
async def test_minimum_balance_allows_controlled_credit():
    user = make_user(balance=1000, minimum_balance=-500)
    db = FakeDatabase(make_shipment(user), user)
    service, _ = make_service(db)

    await service.approve(db.shipment.id, ADMIN)

    assert user.balance == -450


@pytest.mark.asyncio
async def test_minimum_balance_falls_back_to_system_setting_then_config():
    user = make_user()
    db = FakeDatabase(make_shipment(user), user, settings={MIN_BALANCE: "-2000"})
    service, _ = make_service(db, default_minimum_balance=-100)
    assert await service.ledger.minimum_balance(user) == -2000

    db.settings = {MIN_BALANCE: "not a number"}
    assert await service.ledger.minimum_balance(user) == -100

    user.minimum_balance = 300
    assert await service.ledger.minimum_balance(user) == 300


@pytest.mark.asyncio
async def test_concurrent_approvals_debit_once():
    user = make_user(balance=10000)
    db = FakeDatabase(make_shipment(user), user)
    first, _ = make_service(db)
    second, _ = make_service(db)

    results = await asyncio.gather(
        first.approve(db.shipment.id, ADMIN),
        second.approve(db.shipment.id, ADMIN),
        return_exceptions=True,
    )

    conflicts = [r for r in results if isinstance(r, ConcurrencyConflict)]
    approved = [r for r in results if not isinstance(r, Exception)]
    assert len(conflicts) == 1
    assert len(approved) == 1
    assert len(db.transactions) == 1
    assert user.balance == 8550


@pytest.mark.asyncio
async def test_approving_twice_is_a_conflict():
    user = make_user(balance=10000)
    db = FakeDatabase(make_shipment(user), user)
    service, _ = make_service(db)
    await service.approve(db.shipment.id, ADMIN)

    with pytest.raises(ConcurrencyConflict):
        await service.approve(db.shipment.id, ADMIN)
    assert len(db.transactions) == 1


@pytest.mark.asyncio
async def test_ddp_writes_separate_duty_and_fee_debits():
    user = make_user(balance=10000)
    shipment = make_shipment(
        user,
        shipping_terms=ShippingTerms.DDP,
        total_price=1450,
        ddp_duty_amount=200,
        ddp_processing_fee=45,
    )
    db = FakeDatabase(shipment, user)
    service, _ = make_service(db)

    await service.approve(shipment.id, ADMIN)

    assert [t.amount for t in db.transactions] == [-1450, -200, -45]
    assert [t.balance_after for t in db.transactions] == [8550, 8350, 8305]
    assert user.balance == 8305


@pytest.mark.asyncio
async def test_ddp_partial_debit_is_rolled_back():
    user = make_user(balance=1500)
    shipment = make_shipment(
        user,
        shipping_terms=ShippingTerms.DDP,
        total_price=1450,
        ddp_duty_amount=200,
        ddp_processing_fee=45,
    )
    db = FakeDatabase(shipment, user)
    service, _ = make_service(db)

    with pytest.raises(InsufficientFunds):
        await service.approve(shipment.id, ADMIN)

    assert user.balance == 1500
    assert db.transactions == []
    assert shipment.status == ShipmentStatus.PENDING


@pytest.mark.asyncio
async def test_zero_priced_shipment_approves_without_a_debit():
    user = make_user(balance=0)
    db = FakeDatabase(make_shipment(user, total_price=0), user)
    service, session = make_service(db)

    shipment = await service.approve(db.shipment.id, ADMIN)

    assert shipment.status == ShipmentStatus.APPROVED
    assert shipment.tracking_number
    assert user.balance == 0
    assert db.transactions == []
    assert session.commits == 1


@pytest.mark.asyncio
async def test_unexpected_ledger_error_rolls_back():
    class BrokenUserRepo(FakeUserRepo):
        async def get_for_update(self, user_id):
            raise RuntimeError("connection reset")

    user = make_user(balance=10000)
    db = FakeDatabase(make_shipment(user), user)
    service, session = make_service(db)
    service.ledger.users = BrokenUserRepo(session)

    with pytest.raises(RuntimeError):
        await service.approve(db.shipment.id, ADMIN)

    assert session.rollbacks == 1
    assert session.commits == 0
    assert db.shipment.status == ShipmentStatus.PENDING
    assert db.locks == {}
    assert db.transactions == []


@pytest.mark.asyncio
async def test_ddp_without_duty_estimate_cannot_be_approved():
    user = make_user()
    shipment = make_shipment(user, shipping_terms=ShippingTerms.DDP, ddp_duty_amount=None, ddp_processing_fee=45)
    db = FakeDatabase(shipment, user)
    service, _ = make_service(db)

    with pytest.raises(PriceNotReconciled):
        await service.approve(shipment.id, ADMIN)


@pytest.mark.asyncio
@pytest.mark.parametrize("overrides", [{"total_price": None}, {"price_dirty": True}])
async def test_unreconciled_price_blocks_approval(overrides):
    user = make_user()
    db = FakeDatabase(make_shipment(user, **overrides), user)
    service, _ = make_service(db)

    with pytest.raises(PriceNotReconciled):
        await service.approve(db.shipment.id, ADMIN)
    assert db.transactions == []


@pytest.mark.asyncio
async def test_only_pending_shipments_are_approved():
    user = make_user()
    db = FakeDatabase(make_shipment(user, status=ShipmentStatus.REJECTED), user)
    service, _ = make_service(db)

    with pytest.raises(InvalidTransition):
        await service.approve(db.shipment.id, ADMIN)


@pytest.mark.asyncio
async def test_unknown_shipment():
    user = make_user()
    db = FakeDatabase(make_shipment(user), user)
    service, _ = make_service(db)

    with pytest.raises(ShipmentNotFound):
        await service.approve(uuid.uuid4(), ADMIN)


@pytest.mark.asyncio
async def test_reject_requires_reason():
    user = make_user()
    db = FakeDatabase(make_shipment(user), user)
    service, _ = make_service(db)

    with pytest.raises(MissingReason):
        await service.reject(db.shipment.id, ADMIN, "   ")

    shipment = await service.reject(db.shipment.id, ADMIN, "Contents not allowed")
    assert shipment.status == ShipmentStatus.REJECTED
    assert shipment.rejection_reason == "Contents not allowed"
    assert db.transactions == []


@pytest.mark.asyncio
async def test_status_moves_forward_only():
    user = make_user(balance=10000)
    db = FakeDatabase(make_shipment(user), user)
    service, _ = make_service(db)

    with pytest.raises(InvalidTransition):
        await service.mark_in_transit(db.shipment.id)

    await service.approve(db.shipment.id, ADMIN)
    with pytest.raises(InvalidTransition):
        await service.mark_delivered(db.shipment.id)

    await service.mark_in_transit(db.shipment.id)
    shipment = await service.mark_delivered(db.shipment.id)
    assert shipment.status == ShipmentStatus.DELIVERED

    with pytest.raises(InvalidTransition):
        await service.reject(db.shipment.id, ADMIN, "too late")
    assert db.shipment.status == ShipmentStatus.DELIVERED


def test_tracking_numbers_are_unique():
    numbers = {generate_tracking_number() for _ in range(50)}
    assert len(numbers) == 50
