# ABOUTME: Payment instrument canonicalization and manual due-date parsing
# ABOUTME: Turns free-text labels and loosely stored date arrays into clean values

import json
import logging
import re
import unicodedata
from datetime import date, datetime
from enum import Enum
from typing import Any

from clinicledger.exceptions import ValidationError

logger = logging.getLogger(__name__)


class PaymentInstrument(str, Enum):
    """The payment rails a sale can clear through."""

    INSTANT_TRANSFER = "instant_transfer"  # PIX
    DEBIT_CARD = "debit_card"
    CREDIT_CARD = "credit_card"
    HEALTH_PLAN = "health_plan"  # convênio receivables, settle like credit
    BANK_SLIP = "bank_slip"  # boleto
    CHECK = "check"
    CASH = "cash"
    WIRE = "wire"
    OTHER = "other"

    @property
    def accepts_manual_dates(self) -> bool:
        return self in (PaymentInstrument.BANK_SLIP, PaymentInstrument.CHECK)

    @property
    def settles_by_card_cycle(self) -> bool:
        return self in (PaymentInstrument.CREDIT_CARD, PaymentInstrument.HEALTH_PLAN)


# Checked in order; the first hit wins. Short abbreviations are matched as
# whole words so that e.g. "DOC" does not fire inside "DOCUMENTO".
_SUBSTRING_RULES: list[tuple[PaymentInstrument, tuple[str, ...]]] = [
    (PaymentInstrument.CREDIT_CARD, ("CREDITO", "CREDIT")),
    (PaymentInstrument.DEBIT_CARD, ("DEBITO", "DEBIT")),
    (PaymentInstrument.INSTANT_TRANSFER, ("PIX", "INSTANT")),
    (PaymentInstrument.BANK_SLIP, ("BOLETO", "BANK SLIP", "BANKSLIP")),
    (PaymentInstrument.CHECK, ("CHEQUE", "CHECK")),
    (PaymentInstrument.WIRE, ("TRANSFER", "WIRE")),
    (PaymentInstrument.HEALTH_PLAN, ("CONVENIO", "HEALTH PLAN", "INSURANCE")),
    (PaymentInstrument.CASH, ("DINHEIRO", "CASH", "ESPECIE")),
]

_SEPARATORS = re.compile(r"[-_/]")

_WORD_RULES: list[tuple[PaymentInstrument, re.Pattern[str]]] = [
    (PaymentInstrument.WIRE, re.compile(r"\b(TED|DOC)\b")),
]


def _fold(value: str) -> str:
    """Uppercase, strip diacritics, and read `-`, `_` and `/` as spaces."""
    decomposed = unicodedata.normalize("NFD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _SEPARATORS.sub(" ", stripped).upper()


def canonicalize_instrument(label: str | PaymentInstrument | None) -> PaymentInstrument:
    """
    Classify a free-text payment instrument label.

    Matching ignores case, accents and separators, so "Cartão de Crédito",
    "credit-card" and "CREDIT CARD" all map to CREDIT_CARD. Empty or
    unknown labels map to OTHER; callers treat OTHER as settling on the
    competence date.
    """
    if isinstance(label, PaymentInstrument):
        return label
    if not label:
        return PaymentInstrument.OTHER

    folded = _fold(str(label))
    for member in PaymentInstrument:
        if folded == _fold(member.value):
            return member

    for instrument, needles in _SUBSTRING_RULES:
        if any(needle in folded for needle in needles):
            return instrument
    for instrument, pattern in _WORD_RULES:
        if pattern.search(folded):
            return instrument

    return PaymentInstrument.OTHER


_DATE_KEYS = ("vencimento", "due_date", "data", "date")
_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y")


def parse_date(value: Any) -> date | None:
    """Parse an ISO date/datetime or a dd/mm/yyyy string; None if it can't."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text[:10], fmt).date()
        except ValueError:
            continue
    return None


def parse_as_of(value: str | None) -> date:
    """Parse an optional YYYY-MM-DD evaluation date, defaulting to today."""
    if not value:
        return date.today()
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(f"Invalid date {value!r}, expected YYYY-MM-DD")
    return parsed


def parse_manual_dates(raw: Any) -> list[date]:
    """
    Normalize stored manual installment due dates into an ordered list.

    Accepts a list (of dates, strings, or objects carrying a
    vencimento/due_date/data/date key), a JSON-encoded list, or a single
    date string. Malformed input never raises: unusable entries are dropped
    and logged as data-quality warnings.
    """
    if raw is None or raw == "" or raw == []:
        return []

    items: Any = raw
    if isinstance(raw, str):
        text = raw.strip()
        if text.startswith("[") or text.startswith("{"):
            try:
                items = json.loads(text)
            except json.JSONDecodeError:
                logger.warning(f"Ignoring malformed manual installment dates: {raw!r}")
                return []
        else:
            items = [text]
    elif isinstance(raw, (date, dict)):
        items = [raw]

    if isinstance(items, dict):
        items = [items]
    if not isinstance(items, list):
        logger.warning(f"Ignoring manual installment dates of type {type(raw).__name__}")
        return []

    dates: list[date] = []
    for item in items:
        if isinstance(item, dict):
            value = next((item[key] for key in _DATE_KEYS if item.get(key)), None)
        else:
            value = item
        parsed = parse_date(value)
        if parsed is None:
            logger.warning(f"Dropping unparseable manual installment date: {item!r}")
            continue
        dates.append(parsed)
    return dates
