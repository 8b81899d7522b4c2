from decimal import Decimal

import pytest

from paytrack.money import MAX_AMOUNT_CENTS, format_cents, split_installments, split_rounded, to_cents
from paytrack.validation import ValidationError


@pytest.mark.parametrize("value, expected", [
    ("1234.5", 123450),
    (Decimal("0.005"), 1),
    (12, 1200),
    (" 7.99 ", 799),
    ("-3.10", -310),
])
def test_to_cents(value, expected):
    assert to_cents(value) == expected


@pytest.mark.parametrize("value", [None, 1.5, True, "abc", "NaN", "Infinity"])
def test_to_cents_rejects(value):
    with pytest.raises(ValidationError):
        to_cents(value)


def test_to_cents_limit():
    assert to_cents(format_cents(MAX_AMOUNT_CENTS)) == MAX_AMOUNT_CENTS
    with pytest.raises(ValidationError):
        to_cents("10000000000.00")


def test_format_cents():
    assert format_cents(123450) == "1234.50"
    assert format_cents(5) == "0.05"
    assert format_cents(-310) == "-3.10"


def test_split_rounded_residue_on_first_period():
    assert split_rounded(100, 3) == [34, 33, 33]
    assert split_rounded(200, 3) == [66, 67, 67]
    assert split_rounded(90000, 3) == [30000, 30000, 30000]
    assert sum(split_rounded(1000001, 7)) == 1000001


def test_split_installments_remainder_first():
    assert split_installments(10000, 3) == [3334, 3333, 3333]
    assert split_installments(5, 4) == [2, 1, 1, 1]
    assert split_installments(3, 1) == [3]


def test_split_rejects_zero_periods():
    with pytest.raises(ValidationError):
        split_rounded(100, 0)
    with pytest.raises(ValidationError):
        split_installments(100, -1)
