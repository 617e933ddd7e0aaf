# ABOUTME: Tests for installment splitting and expense installment plans
# ABOUTME: Checks that no cent is created or lost and dates step correctly

from datetime import date
from decimal import Decimal

import pytest

from clinicledger.exceptions import ValidationError
from clinicledger.installments import (
    RecurrenceInterval,
    build_installments,
    recurring_expenses,
    split_cents,
    split_expense,
)
from clinicledger.types import ExpenseStatus


class TestSplitCents:
    """Test the installment splitter."""

    def test_even_split(self):
        assert split_cents(30000, 3) == [10000, 10000, 10000]

    def test_last_installment_absorbs_remainder(self):
        assert split_cents(10000, 3) == [3333, 3333, 3334]

    def test_single_installment_is_unchanged(self):
        assert split_cents(12345, 1) == [12345]

    def test_zero_total(self):
        assert split_cents(0, 4) == [0, 0, 0, 0]

    def test_more_installments_than_cents(self):
        assert split_cents(2, 5) == [0, 0, 0, 0, 2]

    @pytest.mark.parametrize("total", [0, 1, 99, 100, 9999, 123457, 1000003])
    @pytest.mark.parametrize("count", [1, 2, 3, 7, 12, 24])
    def test_sum_is_exact(self, total, count):
        parts = split_cents(total, count)
        assert len(parts) == count
        assert sum(parts) == total
        assert len(set(parts[:-1])) <= 1
        assert 0 <= parts[-1] - parts[0] <= count - 1

    @pytest.mark.parametrize("count", [0, -1])
    def test_rejects_count_below_one(self, count):
        with pytest.raises(ValidationError):
            split_cents(1000, count)


class TestBuildInstallments:
    """Test pairing amounts with dates."""

    def test_numbers_from_one(self):
        installments = build_installments(1000, [date(2025, 1, 1), date(2025, 2, 1)])
        assert [i.sequence_number for i in installments] == [1, 2]
        assert [i.amount for i in installments] == [500, 500]
        assert installments[1].due_date == date(2025, 2, 1)


class TestSplitExpense:
    """Test expanding an installment expense into monthly payables."""

    def test_splits_amount_and_steps_months(self, make_expense):
        expense = make_expense(amount=Decimal("100.00"), due_date=date(2025, 1, 31))
        parts = split_expense(expense, 3)

        assert [p.amount for p in parts] == [
            Decimal("33.33"),
            Decimal("33.33"),
            Decimal("33.34"),
        ]
        assert [p.due_date for p in parts] == [
            date(2025, 1, 31),
            date(2025, 2, 28),
            date(2025, 3, 31),
        ]
        assert [p.id for p in parts] == ["exp-1-1", "exp-1-2", "exp-1-3"]
        assert all(p.payment_date is None for p in parts)

    def test_paid_installments_pay_on_their_due_date(self, make_expense):
        expense = make_expense(status=ExpenseStatus.PAID, due_date=date(2025, 1, 10))
        parts = split_expense(expense, 2)
        assert [p.payment_date for p in parts] == [date(2025, 1, 10), date(2025, 2, 10)]

    def test_single_installment_returns_expense(self, make_expense):
        expense = make_expense()
        assert split_expense(expense, 1) == [expense]

    def test_needs_a_date(self, make_expense):
        expense = make_expense(due_date=None, competence_date=None)
        with pytest.raises(ValidationError):
            split_expense(expense, 2)


class TestRecurringExpenses:
    """Test repeating an expense at fixed intervals."""

    def test_monthly_keeps_full_amount(self, make_expense):
        expense = make_expense(amount=Decimal("80.00"), due_date=date(2025, 1, 5))
        occurrences = recurring_expenses(expense, 3, "monthly")

        assert [o.amount for o in occurrences] == [Decimal("80.00")] * 3
        assert [o.due_date for o in occurrences] == [
            date(2025, 1, 5),
            date(2025, 2, 5),
            date(2025, 3, 5),
        ]
        assert occurrences[0].id == "exp-1"

    def test_biweekly_is_fifteen_days(self, make_expense):
        expense = make_expense(due_date=date(2025, 1, 1))
        occurrences = recurring_expenses(expense, 3, RecurrenceInterval.BIWEEKLY)
        assert [o.due_date for o in occurrences] == [
            date(2025, 1, 1),
            date(2025, 1, 16),
            date(2025, 1, 31),
        ]

    def test_quarterly_and_yearly(self, make_expense):
        expense = make_expense(due_date=date(2024, 2, 29), competence_date=date(2024, 2, 1))
        quarterly = recurring_expenses(expense, 2, "quarterly")
        yearly = recurring_expenses(expense, 2, "yearly")

        assert quarterly[1].due_date == date(2024, 5, 29)
        assert quarterly[1].competence_date == date(2024, 5, 1)
        assert yearly[1].due_date == date(2025, 2, 28)

    def test_rejects_unknown_interval(self, make_expense):
        with pytest.raises(ValueError):
            recurring_expenses(make_expense(), 2, "weekly")

    def test_rejects_count_below_one(self, make_expense):
        with pytest.raises(ValidationError):
            recurring_expenses(make_expense(), 0)
