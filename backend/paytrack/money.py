# Overview: Fixed-point money helpers; all amounts are integer cents.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .validation import ValidationError


# Maximum amount: 9,999,999,999.99 (fits NUMERIC(12, 2) in the original ledger)
MAX_AMOUNT_CENTS = 999_999_999_999

_CENT = Decimal("0.01")


def to_cents(value) -> int:
    """
    Convert a currency amount (Decimal, str or int, in whole units) to cents.

    "1234.5" -> 123450, Decimal("0.005") -> 1 (ROUND_HALF_UP).
    Floats are rejected so binary rounding never leaks into the ledger.
    """
    if value is None or isinstance(value, (bool, float)):
        raise ValidationError("amount must be a decimal string or integer")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"amount is not a valid decimal: {value!r}")
    if not amount.is_finite():
        raise ValidationError("amount must be finite")
    cents = int((amount.quantize(_CENT, rounding=ROUND_HALF_UP) * 100).to_integral_value())
    if abs(cents) > MAX_AMOUNT_CENTS:
        raise ValidationError(f"amount cannot exceed {format_cents(MAX_AMOUNT_CENTS)}")
    return cents


def format_cents(cents: int) -> str:
    """123450 -> '1234.50'"""
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(cents), 100)
    return f"{sign}{whole}.{frac:02d}"


def split_rounded(total_cents: int, periods: int) -> list[int]:
    """
    Monthly split: every period gets round(total / periods) to the cent and the
    rounding residue lands on the first period, so the parts sum to total.
    """
    if periods <= 0:
        raise ValidationError("periods must be positive")
    per_period = int((Decimal(total_cents) / periods).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    if per_period * (periods - 1) > total_cents:
        per_period = total_cents // periods
    first = total_cents - per_period * (periods - 1)
    return [first] + [per_period] * (periods - 1)


def split_installments(total_cents: int, periods: int) -> list[int]:
    """
    Installment split: base = floor(total / periods); the first installment
    carries base + remainder, the rest carry base.

    10000 over 3 -> [3334, 3333, 3333]
    """
    if periods <= 0:
        raise ValidationError("periods must be positive")
    base = total_cents // periods
    remainder = total_cents - base * periods
    return [base + remainder] + [base] * (periods - 1)
