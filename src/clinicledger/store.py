# ABOUTME: Storage boundary for the ledger engine
# ABOUTME: LedgerStore protocol plus a lock-guarded in-memory implementation

import asyncio
import logging
from decimal import Decimal
from typing import Protocol

from clinicledger.exceptions import AccountNotFoundError, TransactionNotFoundError
from clinicledger.types import (
    BankAccount,
    ExpenseTransaction,
    RevenueTransaction,
    cents_to_decimal,
)

logger = logging.getLogger(__name__)


class LedgerStore(Protocol):
    """
    What the engine needs from the host's database.

    Stores that can add to a balance atomically set
    `supports_atomic_increment` and implement `increment_balance`; others
    must implement `compare_and_set_balance` so updates can be retried
    optimistically.
    """

    supports_atomic_increment: bool

    async def list_bank_accounts(self, tenant_id: str) -> list[BankAccount]: ...

    async def get_bank_account(self, account_id: str) -> BankAccount: ...

    async def list_revenues(self, tenant_id: str) -> list[RevenueTransaction]: ...

    async def list_expenses(self, tenant_id: str) -> list[ExpenseTransaction]: ...

    async def set_balances(self, balances: dict[str, Decimal]) -> None: ...

    async def increment_balance(self, account_id: str, delta_cents: int) -> Decimal: ...

    async def compare_and_set_balance(
        self, account_id: str, expected: Decimal, new: Decimal
    ) -> bool: ...


class InMemoryLedgerStore:
    """
    Process-local ledger store.

    Every read and write happens under one asyncio.Lock, so increments are
    atomic and `set_balances` applies all-or-nothing.
    """

    supports_atomic_increment = True

    def __init__(self) -> None:
        self._accounts: dict[str, BankAccount] = {}
        self._revenues: dict[str, RevenueTransaction] = {}
        self._expenses: dict[str, ExpenseTransaction] = {}
        self._lock = asyncio.Lock()

    # Host-side record keeping

    def add_account(self, account: BankAccount) -> None:
        self._accounts[account.id] = account.model_copy()

    def put_revenue(self, revenue: RevenueTransaction) -> None:
        self._revenues[revenue.id] = revenue.model_copy()

    def put_expense(self, expense: ExpenseTransaction) -> None:
        self._expenses[expense.id] = expense.model_copy()

    def remove_revenue(self, revenue_id: str) -> None:
        if self._revenues.pop(revenue_id, None) is None:
            raise TransactionNotFoundError(f"Revenue {revenue_id} not found")

    def remove_expense(self, expense_id: str) -> None:
        if self._expenses.pop(expense_id, None) is None:
            raise TransactionNotFoundError(f"Expense {expense_id} not found")

    # LedgerStore

    async def list_bank_accounts(self, tenant_id: str) -> list[BankAccount]:
        async with self._lock:
            return [
                acc.model_copy() for acc in self._accounts.values() if acc.tenant_id == tenant_id
            ]

    async def get_bank_account(self, account_id: str) -> BankAccount:
        async with self._lock:
            if account_id not in self._accounts:
                raise AccountNotFoundError(f"Bank account {account_id} not found")
            return self._accounts[account_id].model_copy()

    async def list_revenues(self, tenant_id: str) -> list[RevenueTransaction]:
        async with self._lock:
            return [r.model_copy() for r in self._revenues.values() if r.tenant_id == tenant_id]

    async def list_expenses(self, tenant_id: str) -> list[ExpenseTransaction]:
        async with self._lock:
            return [e.model_copy() for e in self._expenses.values() if e.tenant_id == tenant_id]

    async def set_balances(self, balances: dict[str, Decimal]) -> None:
        async with self._lock:
            missing = [acc_id for acc_id in balances if acc_id not in self._accounts]
            if missing:
                raise AccountNotFoundError(f"Bank accounts not found: {', '.join(missing)}")
            for acc_id, balance in balances.items():
                self._accounts[acc_id].current_balance = balance

    async def increment_balance(self, account_id: str, delta_cents: int) -> Decimal:
        async with self._lock:
            if account_id not in self._accounts:
                raise AccountNotFoundError(f"Bank account {account_id} not found")
            account = self._accounts[account_id]
            account.current_balance = account.current_balance + cents_to_decimal(delta_cents)
            return account.current_balance

    async def compare_and_set_balance(
        self, account_id: str, expected: Decimal, new: Decimal
    ) -> bool:
        async with self._lock:
            if account_id not in self._accounts:
                raise AccountNotFoundError(f"Bank account {account_id} not found")
            account = self._accounts[account_id]
            if account.current_balance != expected:
                logger.debug(f"Balance of {account_id} moved, compare-and-set rejected")
                return False
            account.current_balance = new
            return True
