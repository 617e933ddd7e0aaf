# ABOUTME: Pytest fixtures for clinicledger tests
# ABOUTME: Provides seeded in-memory stores, record factories, and store doubles

from datetime import date
from decimal import Decimal

import pytest

from clinicledger.exceptions import StoreError
from clinicledger.store import InMemoryLedgerStore
from clinicledger.types import (
    BankAccount,
    ExpenseStatus,
    ExpenseTransaction,
    RevenueTransaction,
)

TENANT = "clinic-1"


class RecordingStore(InMemoryLedgerStore):
    """In-memory store that remembers every bulk balance write."""

    def __init__(self) -> None:
        super().__init__()
        self.writes: list[dict[str, Decimal]] = []

    async def set_balances(self, balances: dict[str, Decimal]) -> None:
        self.writes.append(dict(balances))
        await super().set_balances(balances)


class FailingExpenseStore(RecordingStore):
    """Store whose expense read for clinic-1 blows up, as a dropped connection would."""

    async def list_expenses(self, tenant_id: str) -> list[ExpenseTransaction]:
        if tenant_id == TENANT:
            raise StoreError("connection reset while reading expenses", status_code=503)
        return await super().list_expenses(tenant_id)


class OptimisticStore(RecordingStore):
    """Store without atomic increments; forces the compare-and-set path."""

    supports_atomic_increment = False

    async def increment_balance(self, account_id: str, delta_cents: int) -> Decimal:
        raise AssertionError("increment_balance must not be used on this store")


def seed_accounts(store: InMemoryLedgerStore) -> InMemoryLedgerStore:
    store.add_account(
        BankAccount(
            id="acc-a",
            tenant_id=TENANT,
            name="Conta Itaú",
            initial_balance=Decimal("1000.00"),
            current_balance=Decimal("1000.00"),
        )
    )
    store.add_account(
        BankAccount(
            id="acc-b",
            tenant_id=TENANT,
            name="Conta Nubank",
            initial_balance=Decimal("500.00"),
            current_balance=Decimal("500.00"),
        )
    )
    return store


@pytest.fixture
def store():
    """Recording in-memory store with two accounts for one clinic."""
    return seed_accounts(RecordingStore())


@pytest.fixture
def optimistic_store():
    """Same accounts, but balances can only be changed by compare-and-set."""
    return seed_accounts(OptimisticStore())


@pytest.fixture
def failing_store():
    return seed_accounts(FailingExpenseStore())


@pytest.fixture
def make_revenue():
    """Factory for revenues with sensible defaults."""

    def _make(id: str = "rev-1", **overrides) -> RevenueTransaction:
        fields = {
            "id": id,
            "tenant_id": TENANT,
            "gross_amount": Decimal("100.00"),
            "competence_date": date(2025, 1, 1),
            "payment_instrument": "PIX",
            "installment_count": 1,
            "bank_account_id": "acc-a",
        }
        fields.update(overrides)
        return RevenueTransaction(**fields)

    return _make


@pytest.fixture
def make_expense():
    """Factory for expenses with sensible defaults."""

    def _make(id: str = "exp-1", **overrides) -> ExpenseTransaction:
        fields = {
            "id": id,
            "tenant_id": TENANT,
            "amount": Decimal("50.00"),
            "competence_date": date(2025, 1, 1),
            "due_date": date(2025, 1, 10),
            "status": ExpenseStatus.PENDING,
            "bank_account_id": "acc-a",
        }
        fields.update(overrides)
        return ExpenseTransaction(**fields)

    return _make
