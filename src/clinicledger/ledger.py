# ABOUTME: Ledger view builder: recognized inflow and paid outflow per bank account
# ABOUTME: Read-only aggregation over a tenant's revenues and expenses as of a date

import asyncio
import logging
from collections.abc import Iterable
from datetime import date
from typing import TYPE_CHECKING

from clinicledger.instruments import PaymentInstrument, canonicalize_instrument
from clinicledger.settlement import project_schedule
from clinicledger.types import (
    AccountLedger,
    ExpenseTransaction,
    RevenueTransaction,
    decimal_to_cents,
)

if TYPE_CHECKING:
    from clinicledger.store import LedgerStore

logger = logging.getLogger(__name__)


def recognize_revenue(revenue: RevenueTransaction, as_of: date) -> tuple[int, int]:
    """
    Split a revenue's value into what has cleared and what is still due.

    An installment is recognized once its settlement date is on or before
    `as_of`. Never raises on bad data; problems are logged and the
    affected installments are skipped.

    Returns:
        (recognized_cents, pending_cents)
    """
    if canonicalize_instrument(revenue.payment_instrument) == PaymentInstrument.OTHER:
        logger.warning(
            f"Revenue {revenue.id}: unrecognized payment instrument "
            f"{revenue.payment_instrument!r}, settling on competence date"
        )

    recognized = 0
    pending = 0
    for installment in project_schedule(revenue):
        if installment.due_date is None:
            logger.warning(
                f"Revenue {revenue.id}: installment {installment.sequence_number} "
                "has no date to settle on, skipping"
            )
            continue
        if installment.due_date <= as_of:
            recognized += installment.amount
        else:
            pending += installment.amount
    return recognized, pending


def recognized_revenue_cents(revenue: RevenueTransaction, as_of: date) -> int:
    return recognize_revenue(revenue, as_of)[0]


def expense_outflow_cents(expense: ExpenseTransaction) -> int:
    """Paid expenses count in full; anything else counts as zero."""
    return decimal_to_cents(expense.amount) if expense.is_paid else 0


def build_ledger_view(
    revenues: Iterable[RevenueTransaction],
    expenses: Iterable[ExpenseTransaction],
    as_of: date,
) -> dict[str, AccountLedger]:
    """
    Aggregate recognized inflow and paid outflow per bank account.

    Records without a bank account are skipped. Accounts with no activity
    are absent from the result.
    """
    view: dict[str, AccountLedger] = {}

    def entry(account_id: str) -> AccountLedger:
        if account_id not in view:
            view[account_id] = AccountLedger(bank_account_id=account_id)
        return view[account_id]

    for revenue in revenues:
        if not revenue.bank_account_id:
            continue
        recognized, pending = recognize_revenue(revenue, as_of)
        ledger = entry(revenue.bank_account_id)
        ledger.recognized_inflow += recognized
        ledger.pending_inflow += pending

    for expense in expenses:
        if not expense.bank_account_id or not expense.is_paid:
            continue
        entry(expense.bank_account_id).paid_outflow += expense_outflow_cents(expense)

    return view


async def fetch_ledger_view(
    store: "LedgerStore",
    tenant_id: str,
    as_of: date | None = None,
) -> dict[str, AccountLedger]:
    """Read a tenant's revenues and expenses and build its ledger view."""
    as_of = as_of or date.today()
    revenues, expenses = await asyncio.gather(
        store.list_revenues(tenant_id),
        store.list_expenses(tenant_id),
    )
    logger.debug(
        f"Building ledger view for tenant {tenant_id} as of {as_of}: "
        f"{len(revenues)} revenues, {len(expenses)} expenses"
    )
    return build_ledger_view(revenues, expenses, as_of)
