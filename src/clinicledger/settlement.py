# ABOUTME: Settlement date projection per payment instrument
# ABOUTME: Decides when each installment of a sale clears into the bank account

import logging
from datetime import date

from clinicledger.dates import add_business_days, add_days, add_months
from clinicledger.exceptions import ValidationError
from clinicledger.installments import build_installments
from clinicledger.instruments import PaymentInstrument, canonicalize_instrument, parse_manual_dates
from clinicledger.types import Installment, RevenueTransaction, decimal_to_cents

logger = logging.getLogger(__name__)

# Card acquirers net-settle each installment on a 30-day cycle
CARD_CYCLE_DAYS = 30


def _first_settlement(
    competence_date: date | None,
    instrument: PaymentInstrument,
    prior_payment_date: date | None,
    due_date: date | None,
) -> date | None:
    if instrument == PaymentInstrument.DEBIT_CARD:
        if prior_payment_date:
            return prior_payment_date
        return add_business_days(competence_date, 1) if competence_date else None
    if instrument.accepts_manual_dates:
        return due_date or prior_payment_date or competence_date
    # Instant transfer, cash, wire and anything unrecognized clear same day
    return prior_payment_date or competence_date


def project_settlement_date(
    competence_date: date | None,
    instrument: PaymentInstrument | str | None,
    installment_index: int = 0,
    manual_dates: list[date] | None = None,
    prior_payment_date: date | None = None,
    due_date: date | None = None,
) -> date | None:
    """
    Project the date installment `installment_index` (0-based) clears.

    Pure function of its arguments. Rules, in order:
      1. Bank slip / check with manual dates: the manual date verbatim.
      2. Credit card / health plan: 30-day cycles, the first one after the
         competence date or on the recorded payment date.
      3. Debit card: next business day after competence.
      4. Bank slip / check: explicit due date.
      5. Instant transfer, cash, wire, unknown: competence date.
    Installments after the first of non-card instruments follow monthly.

    Returns None only when there is no date at all to project from.

    Raises:
        ValidationError: If the index is negative or past the manual dates
    """
    if installment_index < 0:
        raise ValidationError(f"Installment index must be >= 0, got {installment_index}")
    instrument = canonicalize_instrument(instrument)

    if manual_dates and instrument.accepts_manual_dates:
        if installment_index >= len(manual_dates):
            raise ValidationError(
                f"Installment {installment_index + 1} has no manual due date "
                f"({len(manual_dates)} supplied)"
            )
        return manual_dates[installment_index]

    if instrument.settles_by_card_cycle:
        if prior_payment_date:
            return add_days(prior_payment_date, CARD_CYCLE_DAYS * installment_index)
        if competence_date is None:
            return None
        return add_days(competence_date, CARD_CYCLE_DAYS * (installment_index + 1))

    first = _first_settlement(competence_date, instrument, prior_payment_date, due_date)
    if first is None or installment_index == 0:
        return first
    return add_months(first, installment_index)


def validate_revenue(revenue: RevenueTransaction) -> None:
    """
    Check a revenue's installment plan before it is written.

    Raises:
        ValidationError: If the installment count is below 1, if manual due
            dates don't cover every installment of a bank slip or check, or
            if manual dates are attached to an instrument that can't use them
    """
    if revenue.installment_count < 1:
        raise ValidationError(
            f"Revenue {revenue.id}: installment count must be at least 1, "
            f"got {revenue.installment_count}"
        )

    instrument = canonicalize_instrument(revenue.payment_instrument)
    manual = parse_manual_dates(revenue.manual_installment_dates)

    if manual and not instrument.accepts_manual_dates:
        raise ValidationError(
            f"Revenue {revenue.id}: manual due dates are only valid for bank slip and "
            f"check, not {instrument.value}; regenerate them after changing the instrument"
        )
    if not instrument.accepts_manual_dates:
        return
    if revenue.installment_count > 1 and len(manual) < revenue.installment_count:
        raise ValidationError(
            f"Revenue {revenue.id}: {revenue.installment_count} installments need a due "
            f"date each, got {len(manual)}"
        )
    if manual and len(manual) != revenue.installment_count:
        raise ValidationError(
            f"Revenue {revenue.id}: {len(manual)} manual due dates for "
            f"{revenue.installment_count} installments"
        )


def project_schedule(revenue: RevenueTransaction) -> list[Installment]:
    """
    Build the full installment schedule of a revenue, as stored.

    Tolerates imperfect historical rows: manual dates on instruments that
    can't use them are ignored, a bank slip or check with manual dates is
    split over those dates, and a count below 1 is read as 1.
    """
    instrument = canonicalize_instrument(revenue.payment_instrument)
    manual = parse_manual_dates(revenue.manual_installment_dates)

    if manual and not instrument.accepts_manual_dates:
        logger.warning(
            f"Revenue {revenue.id}: ignoring manual due dates for {instrument.value}"
        )
        manual = []

    count = len(manual) or max(1, revenue.installment_count)
    due_dates = [
        project_settlement_date(
            revenue.competence_date,
            instrument,
            i,
            manual_dates=manual,
            prior_payment_date=revenue.payment_date,
            due_date=revenue.due_date,
        )
        for i in range(count)
    ]
    return build_installments(decimal_to_cents(revenue.total), due_dates)
