# ABOUTME: Pydantic models and money helpers for clinicledger
# ABOUTME: Defines BankAccount, revenue/expense records, Installment, and ledger views

from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

CENT = Decimal("0.01")


def cents_to_decimal(cents: int | None) -> Decimal:
    """Convert cents (integer) to a two-place Decimal."""
    if cents is None:
        return Decimal("0.00")
    return (Decimal(cents) / 100).quantize(CENT)


def decimal_to_cents(value: Decimal | float | int | str | None) -> int:
    """
    Convert an external monetary value to integer cents.

    Floats go through their shortest repr first, so legacy values such as
    0.1 + 0.2 land on 30 cents rather than on binary noise. Half-cents round
    away from zero. Empty or unparseable values count as zero.
    """
    if value is None or value == "":
        return 0
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        return 0
    if not amount.is_finite():
        return 0
    return int(amount.quantize(CENT, rounding=ROUND_HALF_UP) * 100)


def net_amount_for(
    gross: Decimal,
    fee_rate: Decimal = Decimal("0"),
    discount: Decimal = Decimal("0"),
) -> Decimal:
    """
    Compute the net value of a sale after discount and clearing fee.

    The discount comes off first, then the instrument fee percentage is
    charged on what is left. Never goes below zero.
    """
    base = max(0, decimal_to_cents(gross) - decimal_to_cents(discount))
    fee = (Decimal(base) * Decimal(str(fee_rate)) / 100).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    return cents_to_decimal(max(0, base - int(fee)))


class ExpenseStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class BankAccount(BaseModel):
    """A clinic bank account whose balance the engine maintains."""

    id: str
    tenant_id: str | None = None
    name: str = ""
    initial_balance: Decimal = Field(
        default=Decimal("0.00"), description="Opening balance, set at account creation"
    )
    current_balance: Decimal = Field(
        default=Decimal("0.00"), description="Cached running balance"
    )


class RevenueTransaction(BaseModel):
    """A recorded sale, possibly paid in installments."""

    id: str
    tenant_id: str | None = None
    gross_amount: Decimal = Decimal("0.00")
    net_amount: Decimal | None = Field(
        default=None, description="Gross minus clearing fee and discount"
    )
    competence_date: date | None = None
    payment_instrument: str = Field(default="", description="Instrument label as entered")
    installment_count: int = 1
    manual_installment_dates: Any = Field(
        default=None,
        description="Explicit due dates for bank-slip and check installments, in any stored shape",
    )
    due_date: date | None = Field(
        default=None, description="Explicit bank-slip or check due date"
    )
    payment_date: date | None = Field(
        default=None, description="Recorded receipt date of the first installment"
    )
    bank_account_id: str | None = None
    description: str = ""

    @property
    def total(self) -> Decimal:
        return self.net_amount if self.net_amount is not None else self.gross_amount


class ExpenseTransaction(BaseModel):
    """A payable; only paid expenses touch a balance."""

    id: str
    tenant_id: str | None = None
    amount: Decimal = Decimal("0.00")
    competence_date: date | None = None
    due_date: date | None = None
    payment_date: date | None = None
    status: ExpenseStatus = ExpenseStatus.PENDING
    bank_account_id: str | None = None
    description: str = ""

    @property
    def is_paid(self) -> bool:
        return self.status == ExpenseStatus.PAID


class Installment(BaseModel):
    """One portion of a transaction, with its own settlement date."""

    sequence_number: int
    amount: int = Field(description="Amount in cents")
    due_date: date | None = None


class AccountLedger(BaseModel):
    """Recognized money movement for one bank account, in cents."""

    bank_account_id: str
    recognized_inflow: int = 0
    paid_outflow: int = 0
    pending_inflow: int = Field(default=0, description="Revenue installments not yet due")

    @property
    def net(self) -> int:
        return self.recognized_inflow - self.paid_outflow


class BalanceChange(BaseModel):
    """A stored balance that disagrees with the ledger."""

    bank_account_id: str
    previous_balance: Decimal
    new_balance: Decimal
    difference: Decimal


class ReconciliationResult(BaseModel):
    """Outcome of reconciling one tenant's accounts."""

    tenant_id: str
    as_of: date
    checked: int = 0
    changes: list[BalanceChange] = Field(default_factory=list)
    ledgers: dict[str, AccountLedger] = Field(
        default_factory=dict, description="Ledger view the balances were computed from"
    )
    dry_run: bool = False
