# ABOUTME: MCP server entry point for clinicledger
# ABOUTME: Configures FastMCP and registers settlement and balance tools

import logging

from fastmcp import FastMCP

from clinicledger.client import get_store
from clinicledger.tools.accounts import register_account_tools
from clinicledger.tools.reconciliation import register_reconciliation_tools
from clinicledger.tools.transactions import register_transaction_tools

logger = logging.getLogger(__name__)


def create_server() -> FastMCP:
    """
    Create and configure the clinicledger MCP server.

    Returns:
        Configured FastMCP server instance
    """
    mcp = FastMCP(
        name="clinicledger",
        instructions="""
clinicledger keeps clinic bank account balances consistent with recorded
sales and expenses. You can:

- List a clinic's bank accounts and their stored balances
- Compare stored balances against balances recomputed from the ledger
- Reconcile balances (recompute and save the ones that drifted)
- See recognized inflow, paid outflow, and pending inflow per account
- Preview installment splits and settlement schedules for a sale

Settlement rules:
- PIX, cash and wire transfers clear on the sale date
- Debit card clears one business day later (weekends skipped)
- Credit card and health-plan receivables clear every 30 days per installment
- Bank slips and checks clear on their due dates, or on manual per-installment dates

Stored balances are a cache. Revenue installments become recognized as their
settlement dates pass, so balances drift with time alone; reconcile_balances
is always safe to run and is the source of truth.

For investigating discrepancies:
- get_balance_discrepancy() to compare without writing
- get_ledger_view() to see per-account totals as of a date
- find_unrecognized_instruments() to spot revenues with bad instrument data
""",
    )

    # Register all tools with access to the store factory
    register_account_tools(mcp, get_store)
    register_transaction_tools(mcp, get_store)
    register_reconciliation_tools(mcp, get_store)

    return mcp


def main() -> None:
    """Run the MCP server."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    server = create_server()
    server.run()


if __name__ == "__main__":
    main()
