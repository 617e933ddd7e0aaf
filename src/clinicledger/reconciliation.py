# ABOUTME: Balance reconciliation job: recompute stored balances from the full ledger
# ABOUTME: Writes only accounts that drifted, and nothing at all if a read fails

import asyncio
import logging
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING

from clinicledger.exceptions import ReconciliationError
from clinicledger.ledger import build_ledger_view
from clinicledger.types import (
    BalanceChange,
    ReconciliationResult,
    cents_to_decimal,
    decimal_to_cents,
)

if TYPE_CHECKING:
    from clinicledger.store import LedgerStore

logger = logging.getLogger(__name__)

# Tolerated gap between stored and computed balances. Only there to absorb
# float noise in legacy rows; any real cent of difference gets written.
BALANCE_EPSILON = Decimal("0.009")


async def reconcile(
    store: "LedgerStore",
    tenant_id: str,
    as_of: date | None = None,
    dry_run: bool = False,
) -> ReconciliationResult:
    """
    Recompute every bank account balance of a tenant.

    new_balance = initial_balance + recognized inflow - paid outflow, with
    revenue recognized as of `as_of` (default today). Accounts within
    BALANCE_EPSILON of their stored balance are left alone, so a second run
    with no new transactions writes nothing.

    Concurrent incremental updates landing between our reads and our write
    may be overwritten; the next run converges again. This is eventually
    consistent, not serializable.

    Args:
        store: Ledger store to read from and write to
        tenant_id: Clinic whose accounts are reconciled
        as_of: Evaluation date for revenue recognition
        dry_run: Report the changes without writing them

    Returns:
        ReconciliationResult listing every account that changed

    Raises:
        ReconciliationError: If any read or the write fails. No balance is
            written when a read fails.
    """
    as_of = as_of or date.today()

    try:
        accounts, revenues, expenses = await asyncio.gather(
            store.list_bank_accounts(tenant_id),
            store.list_revenues(tenant_id),
            store.list_expenses(tenant_id),
        )
    except Exception as exc:
        logger.error(f"Reconciliation for tenant {tenant_id} aborted, read failed: {exc}")
        raise ReconciliationError(
            f"Could not read ledger for tenant {tenant_id}; balances left unchanged",
            tenant_id=tenant_id,
        ) from exc

    view = build_ledger_view(revenues, expenses, as_of)

    known = {acc.id for acc in accounts}
    for orphan in sorted(set(view) - known):
        logger.warning(
            f"Tenant {tenant_id}: transactions reference unknown bank account {orphan}"
        )

    changes: list[BalanceChange] = []
    for account in accounts:
        ledger = view.get(account.id)
        computed = decimal_to_cents(account.initial_balance) + (ledger.net if ledger else 0)
        new_balance = cents_to_decimal(computed)
        difference = new_balance - account.current_balance
        if abs(difference) > BALANCE_EPSILON:
            changes.append(
                BalanceChange(
                    bank_account_id=account.id,
                    previous_balance=account.current_balance,
                    new_balance=new_balance,
                    difference=difference,
                )
            )

    if changes and not dry_run:
        try:
            await store.set_balances({c.bank_account_id: c.new_balance for c in changes})
        except Exception as exc:
            logger.error(f"Reconciliation for tenant {tenant_id} failed to write: {exc}")
            raise ReconciliationError(
                f"Could not write reconciled balances for tenant {tenant_id}",
                tenant_id=tenant_id,
            ) from exc

    for change in changes:
        logger.info(
            f"{'Would update' if dry_run else 'Updated'} account {change.bank_account_id}: "
            f"{change.previous_balance} -> {change.new_balance}"
        )
    logger.info(
        f"Reconciled tenant {tenant_id} as of {as_of}: "
        f"{len(changes)} of {len(accounts)} accounts changed"
    )

    return ReconciliationResult(
        tenant_id=tenant_id,
        as_of=as_of,
        checked=len(accounts),
        changes=changes,
        ledgers=view,
        dry_run=dry_run,
    )


async def reconcile_tenants(
    store: "LedgerStore",
    tenant_ids: list[str],
    as_of: date | None = None,
) -> tuple[list[ReconciliationResult], dict[str, ReconciliationError]]:
    """
    Reconcile several tenants, isolating failures to the tenant that failed.

    Returns:
        (results for tenants that reconciled, errors keyed by tenant id)
    """
    results: list[ReconciliationResult] = []
    failures: dict[str, ReconciliationError] = {}
    for tenant_id in tenant_ids:
        try:
            results.append(await reconcile(store, tenant_id, as_of=as_of))
        except ReconciliationError as exc:
            failures[tenant_id] = exc
    if failures:
        logger.warning(f"Reconciliation failed for tenants: {', '.join(failures)}")
    return results, failures
