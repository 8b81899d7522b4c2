# Overview: Pure monthly cashflow forecast over items, schedules, budgets and paid history.

"""
Forecast Aggregator

Six independent buckets per calendar month:
- budget:          unconverted budget items on their per-period dates
- scheduled:       schedule entries that are still open
- estimated:       remaining amount of non-monthly items due in the month
- recurring:       remaining amount of monthly items due in the month
- paid_current:    actual payments made in the month they were due
- paid_carry_over: actual payments made in a later month than they were due

month.total sums the visible buckets only; hidden buckets are still reported.
Everything here is a function of its arguments: no database, no clock.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Sequence

from ..models.payments import (
    PAYMENT_TYPE_INSTALLMENT,
    PAYMENT_TYPE_MONTHLY,
    SCHEDULE_STATUS_CANCELLED,
    SCHEDULE_STATUS_COMPLETED,
)
from ..money import split_installments, split_rounded
from ..validation import ValidationError
from paytrack.time_utils import add_months, month_key, month_start, months_between


BUCKET_BUDGET = "budget"
BUCKET_SCHEDULED = "scheduled"
BUCKET_ESTIMATED = "estimated"
BUCKET_RECURRING = "recurring"
BUCKET_PAID_CURRENT = "paid_current"
BUCKET_PAID_CARRY_OVER = "paid_carry_over"
BUCKETS = (
    BUCKET_BUDGET,
    BUCKET_SCHEDULED,
    BUCKET_ESTIMATED,
    BUCKET_RECURRING,
    BUCKET_PAID_CURRENT,
    BUCKET_PAID_CARRY_OVER,
)


# =============================================================================
# INPUTS
# =============================================================================

@dataclass(frozen=True)
class ForecastItem:
    item_id: int
    name: str
    payment_type: str
    total_cents: int
    paid_cents: int
    due_date: Optional[date]

    @property
    def remaining_cents(self) -> int:
        return max(self.total_cents - self.paid_cents, 0)


@dataclass(frozen=True)
class ScheduleEntry:
    schedule_id: int
    item_id: int
    name: str
    scheduled_date: date
    amount_cents: int
    status: str


@dataclass(frozen=True)
class BudgetLine:
    budget_item_id: int
    name: str
    payment_type: str
    planned_amount_cents: int
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    monthly_amount_cents: Optional[int] = None
    month_count: Optional[int] = None
    installment_count: Optional[int] = None
    installment_amount_cents: Optional[int] = None
    converted: bool = False


@dataclass(frozen=True)
class BudgetPlanInput:
    plan_id: int
    name: str
    start_date: date
    items: tuple[BudgetLine, ...] = ()


@dataclass(frozen=True)
class PaidRecord:
    """An actual payment tagged with the month it was paid and the month it was due."""
    record_id: int
    item_id: int
    name: str
    amount_cents: int
    payment_month: str
    due_month: Optional[str] = None

    @property
    def is_current(self) -> bool:
        return self.due_month is None or self.due_month == self.payment_month

    @property
    def origin_label(self) -> str:
        return "current" if self.is_current else self.due_month


@dataclass(frozen=True)
class Visibility:
    """Which buckets count toward month totals; `paid` governs both paid buckets."""
    budget: bool = True
    scheduled: bool = True
    estimated: bool = True
    recurring: bool = True
    paid: bool = True

    @classmethod
    def from_hidden(cls, hidden: Iterable[str]) -> "Visibility":
        names = {f.name for f in fields(cls)}
        flags = {}
        for raw in hidden:
            name = raw.strip().lower()
            if not name:
                continue
            if name not in names:
                raise ValidationError(f"Unknown forecast bucket: {raw}. Must be one of {sorted(names)}")
            flags[name] = False
        return cls(**flags)

    def shows(self, bucket: str) -> bool:
        if bucket in (BUCKET_PAID_CURRENT, BUCKET_PAID_CARRY_OVER):
            return self.paid
        return getattr(self, bucket)

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


# =============================================================================
# OUTPUTS
# =============================================================================

@dataclass(frozen=True)
class DetailLine:
    source: str
    ref_id: int
    name: str
    amount_cents: int
    date: Optional[str] = None
    label: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "ref_id": self.ref_id,
            "name": self.name,
            "amount_cents": self.amount_cents,
            "date": self.date,
            "label": self.label,
        }


@dataclass
class MonthForecast:
    month: str
    budget_cents: int = 0
    scheduled_cents: int = 0
    estimated_cents: int = 0
    recurring_cents: int = 0
    paid_current_cents: int = 0
    paid_carry_over_cents: int = 0
    total_cents: int = 0
    details: dict[str, list[DetailLine]] = field(default_factory=lambda: {b: [] for b in BUCKETS})

    def bucket(self, name: str) -> int:
        return getattr(self, f"{name}_cents")

    def add(self, bucket: str, line: DetailLine) -> None:
        setattr(self, f"{bucket}_cents", self.bucket(bucket) + line.amount_cents)
        self.details[bucket].append(line)

    def to_dict(self, *, include_details: bool = True) -> dict:
        data = {"month": self.month}
        for name in BUCKETS:
            data[f"{name}_cents"] = self.bucket(name)
        data["total_cents"] = self.total_cents
        if include_details:
            data["details"] = {name: [d.to_dict() for d in lines] for name, lines in self.details.items()}
        return data


@dataclass(frozen=True)
class ForecastSummary:
    total_cents: int
    average_cents: int
    peak_month: Optional[str]
    peak_cents: int
    trough_month: Optional[str]
    trough_cents: int
    trend_cents: int
    trend_percent: float

    def to_dict(self) -> dict:
        return {
            "total_cents": self.total_cents,
            "average_cents": self.average_cents,
            "peak_month": self.peak_month,
            "peak_cents": self.peak_cents,
            "trough_month": self.trough_month,
            "trough_cents": self.trough_cents,
            "trend_cents": self.trend_cents,
            "trend_percent": self.trend_percent,
        }


# =============================================================================
# BUDGET EXPANSION
# =============================================================================

def budget_periods(line: BudgetLine, plan_start: date) -> list[tuple[date, int]]:
    """
    (date, amount) pairs a budget line contributes.

    monthly: monthly_amount per month for month_count months, or planned
    amount split with the residue on the first month; installment: the same
    with installment_amount / floor split; anything else: planned amount on
    end_date or start_date.
    """
    start = line.start_date or plan_start

    if line.payment_type == PAYMENT_TYPE_MONTHLY:
        count = line.month_count or (months_between(start, line.end_date) if line.end_date else 1)
        if line.monthly_amount_cents:
            amounts = [line.monthly_amount_cents] * count
        else:
            amounts = split_rounded(line.planned_amount_cents, count)
        return [(add_months(start, i), amount) for i, amount in enumerate(amounts)]

    if line.payment_type == PAYMENT_TYPE_INSTALLMENT:
        count = line.installment_count or (months_between(start, line.end_date) if line.end_date else 1)
        if line.installment_amount_cents:
            amounts = [line.installment_amount_cents] * count
        else:
            amounts = split_installments(line.planned_amount_cents, count)
        return [(add_months(start, i), amount) for i, amount in enumerate(amounts)]

    return [(line.end_date or start, line.planned_amount_cents)]


# =============================================================================
# AGGREGATION
# =============================================================================

def forecast_months(today: date, months: int) -> list[str]:
    first = month_start(today)
    return [month_key(add_months(first, i)) for i in range(months)]


def build_forecast(
    items: Sequence[ForecastItem],
    schedules: Sequence[ScheduleEntry],
    budget_plans: Sequence[BudgetPlanInput],
    paid_records: Sequence[PaidRecord],
    *,
    months: int,
    visibility: Optional[Visibility] = None,
    today: date,
) -> list[MonthForecast]:
    """
    One MonthForecast per calendar month, starting at the month containing today.
    """
    if not isinstance(months, int) or isinstance(months, bool) or months < 1:
        raise ValidationError("months must be a positive integer")
    visibility = visibility or Visibility()

    result = [MonthForecast(month=key) for key in forecast_months(today, months)]
    by_key = {m.month: m for m in result}

    def _month_for(d: Optional[date]) -> Optional[MonthForecast]:
        if d is None:
            return None
        return by_key.get(month_key(d))

    for plan in budget_plans:
        for line in plan.items:
            if line.converted:
                continue
            for period_date, amount in budget_periods(line, plan.start_date):
                bucket_month = _month_for(period_date)
                if bucket_month is not None:
                    bucket_month.add(
                        BUCKET_BUDGET,
                        DetailLine(BUCKET_BUDGET, line.budget_item_id, line.name, amount,
                                   period_date.isoformat(), plan.name),
                    )

    for entry in schedules:
        if entry.status in (SCHEDULE_STATUS_COMPLETED, SCHEDULE_STATUS_CANCELLED):
            continue
        bucket_month = _month_for(entry.scheduled_date)
        if bucket_month is not None:
            bucket_month.add(
                BUCKET_SCHEDULED,
                DetailLine(BUCKET_SCHEDULED, entry.schedule_id, entry.name, entry.amount_cents,
                           entry.scheduled_date.isoformat(), entry.status),
            )

    for item in items:
        remaining = item.remaining_cents
        if remaining <= 0:
            continue
        bucket_month = _month_for(item.due_date)
        if bucket_month is None:
            continue
        bucket = BUCKET_RECURRING if item.payment_type == PAYMENT_TYPE_MONTHLY else BUCKET_ESTIMATED
        bucket_month.add(
            bucket,
            DetailLine(bucket, item.item_id, item.name, remaining, item.due_date.isoformat(), item.payment_type),
        )

    for record in paid_records:
        bucket_month = by_key.get(record.payment_month)
        if bucket_month is None:
            continue
        bucket = BUCKET_PAID_CURRENT if record.is_current else BUCKET_PAID_CARRY_OVER
        bucket_month.add(
            bucket,
            DetailLine(bucket, record.record_id, record.name, record.amount_cents, None, record.origin_label),
        )

    for month in result:
        month.total_cents = sum(month.bucket(b) for b in BUCKETS if visibility.shows(b))
    return result


def summarize(months: Sequence[MonthForecast]) -> ForecastSummary:
    """
    Horizon statistics. Trend compares the first two months; with fewer than
    two months, or a zero first month, the percentage is 0.
    """
    if not months:
        return ForecastSummary(0, 0, None, 0, None, 0, 0, 0.0)

    totals = [m.total_cents for m in months]
    grand_total = sum(totals)
    average = int((Decimal(grand_total) / len(totals)).quantize(Decimal(1), rounding=ROUND_HALF_UP))

    peak = max(months, key=lambda m: m.total_cents)
    trough = min(months, key=lambda m: m.total_cents)

    trend = 0
    trend_percent = 0.0
    if len(months) >= 2:
        trend = totals[1] - totals[0]
        if totals[0]:
            trend_percent = float(
                (Decimal(trend) * 100 / Decimal(totals[0])).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
            )

    return ForecastSummary(
        total_cents=grand_total,
        average_cents=average,
        peak_month=peak.month,
        peak_cents=peak.total_cents,
        trough_month=trough.month,
        trough_cents=trough.total_cents,
        trend_cents=trend,
        trend_percent=trend_percent,
    )
