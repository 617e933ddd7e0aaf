# ABOUTME: Installment splitting without creating or losing cents
# ABOUTME: Also expands installment and recurring expenses into individual payables

from datetime import date
from enum import Enum

from clinicledger.dates import add_days, add_months
from clinicledger.exceptions import ValidationError
from clinicledger.types import (
    ExpenseTransaction,
    Installment,
    cents_to_decimal,
    decimal_to_cents,
)


def split_cents(total: int, count: int) -> list[int]:
    """
    Split `total` cents into `count` installments that sum exactly to it.

    Every installment but the last gets floor(total / count); the last one
    absorbs the remainder.

    Raises:
        ValidationError: If count is less than 1
    """
    if count < 1:
        raise ValidationError(f"Installment count must be at least 1, got {count}")
    base = total // count
    return [base] * (count - 1) + [total - base * (count - 1)]


def build_installments(total: int, due_dates: list[date | None]) -> list[Installment]:
    """Pair split amounts with their settlement dates, numbered from 1."""
    amounts = split_cents(total, len(due_dates))
    return [
        Installment(sequence_number=i + 1, amount=amount, due_date=due)
        for i, (amount, due) in enumerate(zip(amounts, due_dates))
    ]


class RecurrenceInterval(str, Enum):
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


def _shift(start: date, interval: RecurrenceInterval, steps: int) -> date:
    if interval == RecurrenceInterval.BIWEEKLY:
        return add_days(start, 15 * steps)
    if interval == RecurrenceInterval.QUARTERLY:
        return add_months(start, 3 * steps)
    if interval == RecurrenceInterval.YEARLY:
        return add_months(start, 12 * steps)
    return add_months(start, steps)


def split_expense(expense: ExpenseTransaction, count: int) -> list[ExpenseTransaction]:
    """
    Expand an expense paid in installments into `count` monthly payables.

    The first installment is due on the expense's due date (or competence
    date), each following one a calendar month later. Amounts are split
    cent-exactly. A paid expense yields paid installments whose payment
    date is their own due date.
    """
    first_due = expense.due_date or expense.competence_date
    if first_due is None:
        raise ValidationError(f"Expense {expense.id} has no due or competence date to split from")

    amounts = split_cents(decimal_to_cents(expense.amount), count)
    if count == 1:
        return [expense]

    parts = []
    for i, cents in enumerate(amounts):
        due = add_months(first_due, i)
        parts.append(
            expense.model_copy(
                update={
                    "id": f"{expense.id}-{i + 1}",
                    "amount": cents_to_decimal(cents),
                    "due_date": due,
                    "payment_date": due if expense.is_paid else None,
                }
            )
        )
    return parts


def recurring_expenses(
    expense: ExpenseTransaction,
    count: int,
    interval: RecurrenceInterval | str = RecurrenceInterval.MONTHLY,
) -> list[ExpenseTransaction]:
    """
    Repeat an expense `count` times at a fixed interval.

    Each occurrence carries the full amount; competence and due dates move
    together. The first occurrence keeps the original id.
    """
    if count < 1:
        raise ValidationError(f"Recurrence count must be at least 1, got {count}")
    interval = RecurrenceInterval(interval)
    first_due = expense.due_date or expense.competence_date
    if first_due is None:
        raise ValidationError(f"Expense {expense.id} has no due or competence date to repeat from")

    occurrences = [expense]
    for step in range(1, count):
        due = _shift(first_due, interval, step)
        competence = (
            _shift(expense.competence_date, interval, step)
            if expense.competence_date
            else None
        )
        occurrences.append(
            expense.model_copy(
                update={
                    "id": f"{expense.id}-{step + 1}",
                    "due_date": due,
                    "competence_date": competence,
                    "payment_date": due if expense.is_paid else None,
                }
            )
        )
    return occurrences
