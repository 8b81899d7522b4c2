# Overview: Loads forecast inputs from the store and runs the pure forecast aggregator.

from __future__ import annotations

from datetime import date
from typing import Optional

from flask import current_app, has_app_context

from ..extensions import db
from ..models import BudgetItem, BudgetPlan, PaymentItem, PaymentRecord, PaymentSchedule
from ..models.payments import (
    SCHEDULE_STATUS_CANCELLED,
    SCHEDULE_STATUS_COMPLETED,
    STATUS_PAID,
)
from ..validation import ValidationError
from .forecast import (
    BudgetLine,
    BudgetPlanInput,
    ForecastItem,
    PaidRecord,
    ScheduleEntry,
    Visibility,
    build_forecast,
    summarize,
)
from paytrack.time_utils import add_months, month_key, month_start, today as business_today


DEFAULT_MONTHS = 6
DEFAULT_MAX_MONTHS = 24
DEFAULT_MONTHS_BACK = 6


def _config(key: str, default: int) -> int:
    if has_app_context():
        return int(current_app.config.get(key, default))
    return default


def load_open_items(session) -> list[ForecastItem]:
    rows = (
        session.query(PaymentItem)
        .filter(PaymentItem.is_deleted.is_(False), PaymentItem.status != STATUS_PAID)
        .order_by(PaymentItem.id.asc())
        .all()
    )
    return [
        ForecastItem(
            item_id=row.id,
            name=row.name,
            payment_type=row.payment_type,
            total_cents=row.total_amount_cents,
            paid_cents=row.paid_amount_cents or 0,
            due_date=row.due_date,
        )
        for row in rows
    ]


def load_open_schedules(session) -> list[ScheduleEntry]:
    rows = (
        session.query(PaymentSchedule, PaymentItem.name)
        .join(PaymentItem, PaymentItem.id == PaymentSchedule.payment_item_id)
        .filter(
            PaymentItem.is_deleted.is_(False),
            PaymentSchedule.status.notin_((SCHEDULE_STATUS_COMPLETED, SCHEDULE_STATUS_CANCELLED)),
        )
        .order_by(PaymentSchedule.scheduled_date.asc(), PaymentSchedule.id.asc())
        .all()
    )
    return [
        ScheduleEntry(
            schedule_id=schedule.id,
            item_id=schedule.payment_item_id,
            name=name,
            scheduled_date=schedule.scheduled_date,
            amount_cents=schedule.scheduled_amount_cents,
            status=schedule.status,
        )
        for schedule, name in rows
    ]


def load_budget_plans(session) -> list[BudgetPlanInput]:
    plans = (
        session.query(BudgetPlan)
        .filter(BudgetPlan.status == "active")
        .order_by(BudgetPlan.id.asc())
        .all()
    )
    out = []
    for plan in plans:
        lines = tuple(
            BudgetLine(
                budget_item_id=bi.id,
                name=bi.name,
                payment_type=bi.payment_type,
                planned_amount_cents=bi.planned_amount_cents,
                start_date=bi.start_date,
                end_date=bi.end_date,
                monthly_amount_cents=bi.monthly_amount_cents,
                month_count=bi.month_count,
                installment_count=bi.installment_count,
                installment_amount_cents=bi.installment_amount_cents,
                converted=bool(bi.converted_to_payment),
            )
            for bi in session.query(BudgetItem)
            .filter(
                BudgetItem.budget_plan_id == plan.id,
                BudgetItem.is_deleted.is_(False),
                BudgetItem.converted_to_payment.is_(False),
            )
            .order_by(BudgetItem.id.asc())
            .all()
        )
        out.append(BudgetPlanInput(plan_id=plan.id, name=plan.name, start_date=plan.start_date, items=lines))
    return out


def cashflow_records(*, today: Optional[date] = None, months_back: Optional[int] = None, session=None) -> list[PaidRecord]:
    """
    Actual payment records from the last `months_back` months, tagged with
    the month paid and the month the item was due.
    """
    session = session if session is not None else db.session
    today = today or business_today()
    if months_back is None:
        months_back = _config("PAYTRACK_CASHFLOW_MONTHS_BACK", DEFAULT_MONTHS_BACK)
    since = add_months(month_start(today), -months_back)

    rows = (
        session.query(PaymentRecord, PaymentItem)
        .outerjoin(PaymentItem, PaymentItem.id == PaymentRecord.item_id)
        .filter(PaymentRecord.is_planned.is_(False), PaymentRecord.payment_date >= since)
        .order_by(PaymentRecord.payment_date.asc(), PaymentRecord.id.asc())
        .all()
    )
    out = []
    for record, item in rows:
        payment_month = month_key(record.payment_date)
        due = item.due_date if item is not None else None
        out.append(
            PaidRecord(
                record_id=record.id,
                item_id=record.item_id,
                name=item.name if item is not None else "",
                amount_cents=record.amount_cents,
                payment_month=payment_month,
                due_month=month_key(due) if due else payment_month,
            )
        )
    return out


def resolve_months(months: Optional[int]) -> int:
    if months is None:
        return _config("PAYTRACK_FORECAST_MONTHS", DEFAULT_MONTHS)
    if not isinstance(months, int) or isinstance(months, bool) or months < 1:
        raise ValidationError("months must be a positive integer")
    max_months = _config("PAYTRACK_FORECAST_MAX_MONTHS", DEFAULT_MAX_MONTHS)
    if months > max_months:
        raise ValidationError(f"months cannot exceed {max_months}")
    return months


def get_forecast(
    months: Optional[int] = None,
    visibility: Optional[Visibility] = None,
    today: Optional[date] = None,
    *,
    include_details: bool = True,
    session=None,
) -> dict:
    """Read-only: gathers the four input collections and aggregates them."""
    session = session if session is not None else db.session
    today = today or business_today()
    months = resolve_months(months)
    visibility = visibility or Visibility()

    result = build_forecast(
        load_open_items(session),
        load_open_schedules(session),
        load_budget_plans(session),
        cashflow_records(today=today, session=session),
        months=months,
        visibility=visibility,
        today=today,
    )
    return {
        "as_of": today.isoformat(),
        "visibility": visibility.to_dict(),
        "months": [m.to_dict(include_details=include_details) for m in result],
        "summary": summarize(result).to_dict(),
    }
