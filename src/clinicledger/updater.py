# ABOUTME: Incremental balance updater for single transaction create/edit/delete
# ABOUTME: Applies the signed cents delta a transaction contributes to its account

import logging
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, NamedTuple

from clinicledger.client import retry_on_conflict
from clinicledger.exceptions import ConcurrentUpdateError, ValidationError
from clinicledger.ledger import expense_outflow_cents, recognized_revenue_cents
from clinicledger.settlement import validate_revenue
from clinicledger.types import (
    ExpenseStatus,
    ExpenseTransaction,
    RevenueTransaction,
    cents_to_decimal,
)

if TYPE_CHECKING:
    from clinicledger.store import LedgerStore

logger = logging.getLogger(__name__)

MAX_CONFLICT_RETRIES = 5

Transaction = RevenueTransaction | ExpenseTransaction


class Contribution(NamedTuple):
    """What one transaction adds to one account's balance, in cents."""

    bank_account_id: str | None
    cents: int


def contribution(txn: Transaction, as_of: date) -> Contribution:
    """
    Signed balance contribution of a transaction as of a date.

    Revenue contributes its recognized installments, using the same
    recognition as the reconciliation job. Expenses contribute minus their
    amount once paid, zero while pending.
    """
    if isinstance(txn, RevenueTransaction):
        cents = recognized_revenue_cents(txn, as_of)
    else:
        cents = -expense_outflow_cents(txn)
    return Contribution(txn.bank_account_id, cents)


@retry_on_conflict(MAX_CONFLICT_RETRIES)
async def _compare_and_add(store: "LedgerStore", account_id: str, delta_cents: int) -> Decimal:
    account = await store.get_bank_account(account_id)
    new_balance = account.current_balance + cents_to_decimal(delta_cents)
    if not await store.compare_and_set_balance(account_id, account.current_balance, new_balance):
        raise ConcurrentUpdateError(f"Balance of account {account_id} changed during update")
    return new_balance


async def apply_delta(
    store: "LedgerStore", account_id: str | None, delta_cents: int
) -> Decimal | None:
    """
    Add `delta_cents` to an account's stored balance.

    Uses the store's atomic increment when it has one, otherwise an
    optimistic compare-and-set loop, so concurrent deltas are never lost.
    No-op for a zero delta or a missing account id.

    Returns:
        The new balance, or None when nothing was written

    Raises:
        ConcurrentUpdateError: If optimistic retries are exhausted
    """
    if not account_id or delta_cents == 0:
        return None

    if store.supports_atomic_increment:
        new_balance = await store.increment_balance(account_id, delta_cents)
    else:
        new_balance = await _compare_and_add(store, account_id, delta_cents)

    logger.info(f"Applied {cents_to_decimal(delta_cents)} to account {account_id}: {new_balance}")
    return new_balance


def _validate(txn: Transaction) -> None:
    if isinstance(txn, RevenueTransaction):
        validate_revenue(txn)


async def record_created(
    store: "LedgerStore", txn: Transaction, as_of: date | None = None
) -> Contribution:
    """Apply a newly created transaction's contribution to its account."""
    _validate(txn)
    current = contribution(txn, as_of or date.today())
    await apply_delta(store, current.bank_account_id, current.cents)
    return current


async def record_updated(
    store: "LedgerStore",
    old: Transaction,
    new: Transaction,
    as_of: date | None = None,
) -> Contribution:
    """
    Move a transaction's contribution from its old state to its new one.

    The old contribution is reversed on the old account and the new one
    applied on the new account. When both sit on the same account only the
    net difference is written.

    A cross-account move is two writes and is not atomic: if applying the
    new contribution fails, the reversal on the old account stays. The
    next reconciliation run restores both balances.

    Raises:
        ValidationError: If the new state is invalid or the kinds differ.
            Raised before any write.
    """
    if type(old) is not type(new):
        raise ValidationError(
            f"Cannot turn {type(old).__name__} {old.id} into {type(new).__name__}"
        )
    _validate(new)

    as_of = as_of or date.today()
    before = contribution(old, as_of)
    after = contribution(new, as_of)

    if before.bank_account_id == after.bank_account_id:
        await apply_delta(store, after.bank_account_id, after.cents - before.cents)
    else:
        await apply_delta(store, before.bank_account_id, -before.cents)
        await apply_delta(store, after.bank_account_id, after.cents)
    return after


async def record_deleted(
    store: "LedgerStore", txn: Transaction, as_of: date | None = None
) -> Contribution:
    """Reverse a deleted transaction's last contribution."""
    previous = contribution(txn, as_of or date.today())
    await apply_delta(store, previous.bank_account_id, -previous.cents)
    return previous


async def mark_expense_paid(
    store: "LedgerStore",
    expense: ExpenseTransaction,
    payment_date: date | None = None,
) -> ExpenseTransaction:
    """
    Flip a pending expense to paid and debit its account.

    The full amount is debited now, whatever the due date. Already-paid
    expenses are returned untouched so the debit happens once.
    """
    if expense.is_paid:
        return expense
    paid = expense.model_copy(
        update={
            "status": ExpenseStatus.PAID,
            "payment_date": payment_date or expense.due_date or date.today(),
        }
    )
    await record_updated(store, expense, paid)
    return paid


async def mark_expense_pending(
    store: "LedgerStore", expense: ExpenseTransaction
) -> ExpenseTransaction:
    """Undo a payment: back to pending, crediting the amount back."""
    if not expense.is_paid:
        return expense
    pending = expense.model_copy(update={"status": ExpenseStatus.PENDING, "payment_date": None})
    await record_updated(store, expense, pending)
    return pending
