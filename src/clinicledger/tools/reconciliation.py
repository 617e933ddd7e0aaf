# ABOUTME: Reconciliation tools for clinicledger
# ABOUTME: Run the balance reconciliation job and inspect the per-account ledger view

from typing import TYPE_CHECKING

from clinicledger.client import with_auth_retry
from clinicledger.instruments import parse_as_of
from clinicledger.ledger import fetch_ledger_view
from clinicledger.reconciliation import reconcile
from clinicledger.types import cents_to_decimal

if TYPE_CHECKING:
    from collections.abc import Callable

    from fastmcp import FastMCP

    from clinicledger.store import LedgerStore


def register_reconciliation_tools(mcp: "FastMCP", get_client: "Callable") -> None:
    """Register reconciliation tools with the MCP server."""

    @mcp.tool
    @with_auth_retry
    async def reconcile_balances(tenant_id: str, as_of_date: str | None = None) -> dict:
        """
        Recompute every bank account balance of a clinic and save the drifted ones.

        Balance = initial balance + revenue installments already settled
        - paid expenses. Safe to run any time; a second run in a row
        changes nothing.

        Args:
            tenant_id: Clinic ID
            as_of_date: Evaluation date in YYYY-MM-DD format (default: today)

        Returns:
            Accounts checked and the balances that were changed
        """
        store: LedgerStore = await get_client()
        result = await reconcile(store, tenant_id, as_of=parse_as_of(as_of_date))
        return {
            "tenant_id": result.tenant_id,
            "as_of_date": result.as_of.isoformat(),
            "accounts_checked": result.checked,
            "changes": [
                {
                    "account_id": change.bank_account_id,
                    "previous_balance": float(change.previous_balance),
                    "new_balance": float(change.new_balance),
                    "difference": float(change.difference),
                }
                for change in result.changes
            ],
        }

    @mcp.tool
    @with_auth_retry
    async def get_ledger_view(tenant_id: str, as_of_date: str | None = None) -> list[dict]:
        """
        Show recognized inflow, paid outflow, and pending inflow per account.

        Args:
            tenant_id: Clinic ID
            as_of_date: Evaluation date in YYYY-MM-DD format (default: today)

        Returns:
            One entry per bank account with ledger activity
        """
        store: LedgerStore = await get_client()
        view = await fetch_ledger_view(store, tenant_id, as_of=parse_as_of(as_of_date))
        return [
            {
                "account_id": account_id,
                "recognized_inflow": float(cents_to_decimal(ledger.recognized_inflow)),
                "paid_outflow": float(cents_to_decimal(ledger.paid_outflow)),
                "pending_inflow": float(cents_to_decimal(ledger.pending_inflow)),
                "net": float(cents_to_decimal(ledger.net)),
            }
            for account_id, ledger in sorted(view.items())
        ]
