# ABOUTME: Bank account tools for clinicledger
# ABOUTME: Query bank accounts and compare stored balances against the ledger

from decimal import Decimal
from typing import TYPE_CHECKING

from clinicledger.client import with_auth_retry
from clinicledger.instruments import parse_as_of
from clinicledger.reconciliation import BALANCE_EPSILON, reconcile
from clinicledger.types import BankAccount, cents_to_decimal

if TYPE_CHECKING:
    from collections.abc import Callable

    from fastmcp import FastMCP

    from clinicledger.store import LedgerStore


def register_account_tools(mcp: "FastMCP", get_client: "Callable") -> None:
    """Register bank account tools with the MCP server."""

    @mcp.tool
    @with_auth_retry
    async def get_bank_accounts(tenant_id: str) -> list[BankAccount]:
        """
        List a clinic's bank accounts with their stored balances.

        The stored current_balance is a cache; run get_balance_discrepancy
        to see whether it still matches the ledger.

        Args:
            tenant_id: Clinic ID
        """
        store: LedgerStore = await get_client()
        return await store.list_bank_accounts(tenant_id)

    @mcp.tool
    @with_auth_retry
    async def get_balance_discrepancy(
        tenant_id: str,
        account_id: str | None = None,
        as_of_date: str | None = None,
    ) -> dict:
        """
        Compare stored balances against balances recomputed from the ledger.

        Nothing is written. Use reconcile_balances to fix what this finds.

        Args:
            tenant_id: Clinic ID
            account_id: Specific account to check (default: all accounts)
            as_of_date: Evaluation date in YYYY-MM-DD format (default: today)

        Returns:
            Summary of discrepancies with possible causes
        """
        store: LedgerStore = await get_client()
        as_of = parse_as_of(as_of_date)

        result = await reconcile(store, tenant_id, as_of=as_of, dry_run=True)
        view = result.ledgers

        discrepancies = []
        for change in result.changes:
            if account_id and change.bank_account_id != account_id:
                continue

            possible_causes = []
            ledger = view.get(change.bank_account_id)
            pending = cents_to_decimal(ledger.pending_inflow if ledger else 0)

            # Installments clearing after the last reconciliation
            if change.difference > Decimal("0.00"):
                possible_causes.append(
                    "Revenue installments settled since the last reconciliation"
                )
            if pending > Decimal("0.00"):
                possible_causes.append(f"Future installments not yet recognized: {pending:.2f}")
            if abs(abs(change.difference) - pending) <= BALANCE_EPSILON:
                possible_causes.append(
                    "Difference matches future installments - balance was likely "
                    "updated with the full sale value"
                )
            possible_causes.append("Transaction edited or deleted without a balance update")

            discrepancies.append({
                "account_id": change.bank_account_id,
                "stored_balance": float(change.previous_balance),
                "ledger_balance": float(change.new_balance),
                "difference": float(change.difference),
                "pending_inflow": float(pending),
                "possible_causes": possible_causes,
            })

        return {
            "tenant_id": tenant_id,
            "as_of_date": as_of.isoformat(),
            "accounts_checked": result.checked,
            "discrepancies": discrepancies,
            "balanced": not discrepancies,
        }
