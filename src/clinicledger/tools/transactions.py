# ABOUTME: Transaction tools for clinicledger
# ABOUTME: Preview installment splits and settlement schedules, flag bad instrument data

from decimal import Decimal
from typing import TYPE_CHECKING

from clinicledger.client import with_auth_retry
from clinicledger.installments import split_cents
from clinicledger.instruments import (
    PaymentInstrument,
    canonicalize_instrument,
    parse_date,
    parse_manual_dates,
)
from clinicledger.settlement import project_schedule, validate_revenue
from clinicledger.types import (
    RevenueTransaction,
    cents_to_decimal,
    decimal_to_cents,
    net_amount_for,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from fastmcp import FastMCP

    from clinicledger.store import LedgerStore


def register_transaction_tools(mcp: "FastMCP", get_client: "Callable") -> None:
    """Register transaction tools with the MCP server."""

    @mcp.tool
    async def preview_installments(total: float, count: int) -> list[float]:
        """
        Split an amount into installments that add up to it exactly.

        The last installment absorbs the rounding remainder.

        Args:
            total: Amount to split (e.g., 100.00)
            count: Number of installments (at least 1)
        """
        return [float(cents_to_decimal(c)) for c in split_cents(decimal_to_cents(total), count)]

    @mcp.tool
    async def get_settlement_schedule(
        competence_date: str,
        payment_instrument: str,
        amount: float,
        installment_count: int = 1,
        manual_dates: list[str] | None = None,
        payment_date: str | None = None,
        due_date: str | None = None,
        fee_rate: float = 0.0,
        discount: float = 0.0,
    ) -> dict:
        """
        Project when each installment of a sale clears into the bank.

        Args:
            competence_date: Sale date (YYYY-MM-DD)
            payment_instrument: Instrument label, e.g. "PIX", "Cartão de Crédito", "Boleto"
            amount: Gross sale value
            installment_count: Number of installments
            manual_dates: Explicit due dates, bank slip and check only (YYYY-MM-DD)
            payment_date: Recorded receipt date of the first installment (YYYY-MM-DD)
            due_date: Bank slip or check due date (YYYY-MM-DD)
            fee_rate: Clearing fee percentage charged by the instrument (e.g., 3.5)
            discount: Discount given on the sale, taken off before the fee

        Returns:
            Canonical instrument, net amount, and the installment schedule
        """
        gross = Decimal(str(amount))
        net = net_amount_for(gross, Decimal(str(fee_rate)), Decimal(str(discount)))
        revenue = RevenueTransaction(
            id="preview",
            gross_amount=gross,
            net_amount=net,
            competence_date=parse_date(competence_date),
            payment_instrument=payment_instrument,
            installment_count=installment_count,
            manual_installment_dates=manual_dates,
            payment_date=parse_date(payment_date),
            due_date=parse_date(due_date),
        )
        validate_revenue(revenue)

        return {
            "instrument": canonicalize_instrument(payment_instrument).value,
            "net_amount": float(net),
            "installments": [
                {
                    "number": inst.sequence_number,
                    "amount": float(cents_to_decimal(inst.amount)),
                    "settlement_date": inst.due_date.isoformat() if inst.due_date else None,
                }
                for inst in project_schedule(revenue)
            ],
        }

    @mcp.tool
    @with_auth_retry
    async def find_unrecognized_instruments(tenant_id: str, limit: int = 50) -> list[dict]:
        """
        Find revenues whose data can't be settled as entered.

        Flags unknown payment instrument labels (they settle on the
        competence date) and manual due dates that are unreadable or
        attached to an instrument that ignores them.

        Args:
            tenant_id: Clinic ID
            limit: Maximum results to return

        Returns:
            List of revenues with the data-quality issue found
        """
        store: LedgerStore = await get_client()
        revenues = await store.list_revenues(tenant_id)

        suspicious = []
        for revenue in revenues:
            instrument = canonicalize_instrument(revenue.payment_instrument)
            raw_manual = revenue.manual_installment_dates
            manual = parse_manual_dates(raw_manual)

            issue = None
            if instrument == PaymentInstrument.OTHER:
                issue = f"Unrecognized payment instrument {revenue.payment_instrument!r}"
            elif manual and not instrument.accepts_manual_dates:
                issue = f"Manual due dates ignored for {instrument.value}"
            elif raw_manual not in (None, "", []) and not manual:
                issue = "Manual due dates present but unreadable"

            if issue:
                suspicious.append({
                    "id": revenue.id,
                    "competence_date": (
                        revenue.competence_date.isoformat() if revenue.competence_date else None
                    ),
                    "payment_instrument": revenue.payment_instrument,
                    "amount": float(revenue.total),
                    "bank_account_id": revenue.bank_account_id,
                    "issue": issue,
                })

            if len(suspicious) >= limit:
                break

        return suspicious
