# Overview: Expands a new payment plan into dated planned payment records.

"""
Schedule Generator

WHY: Monthly and installment items are known in advance; their planned
payments are written at creation so forecasts and reminders can read them.

RULES:
- single: no planned records.
- monthly: n = months_between(start, end); every period gets total / n rounded
  to the cent, rounding residue on the first period.
- installment: base = floor(total / n); first period gets base + remainder.
- monthly/installment with no end_date fall back to an undated single item.
- end_date must be strictly after start_date for monthly/installment.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from ..models import PaymentItem, PaymentRecord
from ..models.payments import (
    PAYMENT_TYPE_INSTALLMENT,
    PAYMENT_TYPE_MONTHLY,
    PAYMENT_TYPE_SINGLE,
    VALID_PAYMENT_TYPES,
)
from ..money import MAX_AMOUNT_CENTS, split_installments, split_rounded
from ..validation import ValidationError
from paytrack.time_utils import add_months, months_between


PLANNED_METHOD = "scheduled"


@dataclass(frozen=True)
class PlannedPeriod:
    period_index: int  # 1-based
    due_date: date
    amount_cents: int


def validate_plan(
    payment_type: str,
    total_cents: int,
    start_date: Optional[date],
    end_date: Optional[date],
) -> str:
    """
    Check a draft plan and return the payment type it will be created with.

    Raises ValidationError before anything is persisted.
    """
    if payment_type not in VALID_PAYMENT_TYPES:
        raise ValidationError(f"Invalid payment_type: {payment_type}. Must be one of {list(VALID_PAYMENT_TYPES)}")
    if not isinstance(total_cents, int) or isinstance(total_cents, bool):
        raise ValidationError("total_amount_cents must be an integer")
    if total_cents <= 0:
        raise ValidationError("total_amount_cents must be > 0")
    if total_cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"total_amount_cents cannot exceed {MAX_AMOUNT_CENTS}")
    if start_date is None:
        raise ValidationError("start_date is required")

    if payment_type == PAYMENT_TYPE_SINGLE:
        if end_date is not None and end_date < start_date:
            raise ValidationError("end_date cannot be before start_date")
        return PAYMENT_TYPE_SINGLE

    if end_date is None:
        return PAYMENT_TYPE_SINGLE
    if end_date <= start_date:
        raise ValidationError("end_date must be after start_date")

    periods = months_between(start_date, end_date)
    if total_cents < periods:
        raise ValidationError(f"total_amount_cents is too small to spread over {periods} periods")
    return payment_type


def plan_schedule(
    payment_type: str,
    total_cents: int,
    start_date: date,
    end_date: Optional[date],
) -> list[PlannedPeriod]:
    """
    Pure expansion of a validated plan into periods, one per calendar month.

    Period i falls on start_date shifted by i months (day clamped to month end).
    """
    if payment_type == PAYMENT_TYPE_SINGLE or end_date is None:
        return []

    periods = months_between(start_date, end_date)
    if payment_type == PAYMENT_TYPE_MONTHLY:
        amounts = split_rounded(total_cents, periods)
    elif payment_type == PAYMENT_TYPE_INSTALLMENT:
        amounts = split_installments(total_cents, periods)
    else:
        raise ValidationError(f"Invalid payment_type: {payment_type}")

    return [
        PlannedPeriod(
            period_index=i + 1,
            due_date=add_months(start_date, i),
            amount_cents=amount,
        )
        for i, amount in enumerate(amounts)
    ]


def generate_schedule(item: PaymentItem, *, repo) -> list[PaymentRecord]:
    """
    Write planned records for an item with none (new, or just re-totalled).

    Runs inside the caller's transaction; nothing is committed here, so a
    failing insert leaves neither the item nor a partial schedule behind.
    """
    periods = plan_schedule(item.payment_type, item.total_amount_cents, item.start_date, item.end_date)
    if not periods:
        return []

    total = len(periods)
    records = [
        PaymentRecord(
            item_id=item.id,
            amount_cents=p.amount_cents,
            payment_date=p.due_date,
            method=PLANNED_METHOD,
            notes=f"{item.payment_type} period {p.period_index}/{total}",
            is_planned=True,
            period_index=p.period_index,
        )
        for p in periods
    ]
    return repo.insert_records(records)
