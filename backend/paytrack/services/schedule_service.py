# Overview: Service-layer operations for manual payment schedules (planned pay dates per item).

from __future__ import annotations

from datetime import date
from typing import Optional

from ..extensions import db
from ..models import PaymentItem, PaymentSchedule
from ..models.audit import AUDIT_INSERT, AUDIT_UPDATE
from ..models.payments import (
    PAYMENT_TYPE_SINGLE,
    SCHEDULE_STATUS_CANCELLED,
    SCHEDULE_STATUS_COMPLETED,
    SCHEDULE_STATUS_RESCHEDULED,
    SCHEDULE_STATUS_SCHEDULED,
    STATUS_OVERDUE,
    STATUS_PARTIAL,
    STATUS_PENDING,
)
from ..repositories import ItemRepository
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_amount,
    validate_payload,
)
from .audit_service import AuditRecorder
from .concurrency import atomic, lock_for_update
from paytrack.time_utils import add_months, month_end, parse_iso_date, today as business_today


SCHEDULES_TABLE = "payment_schedules"
CLOSED_STATUSES = (SCHEDULE_STATUS_COMPLETED, SCHEDULE_STATUS_CANCELLED)
OPEN_ITEM_STATUSES = (STATUS_PENDING, STATUS_PARTIAL, STATUS_OVERDUE)

SCHEDULE_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"payment_item_id", "scheduled_date", "scheduled_amount_cents", "notes"},
    required_on_create={"payment_item_id", "scheduled_date", "scheduled_amount_cents"},
)


def _get_schedule(session, schedule_id: int, *, for_update: bool = False) -> PaymentSchedule:
    query = session.query(PaymentSchedule).filter(PaymentSchedule.id == schedule_id)
    if for_update:
        query = lock_for_update(query)
    schedule = query.first()
    if schedule is None:
        raise NotFoundError(f"Payment schedule {schedule_id} not found")
    return schedule


def _transition(
    schedule_id: int,
    *,
    status: str,
    actor: Optional[str],
    reason: str,
    session,
    new_date: Optional[date] = None,
) -> PaymentSchedule:
    audit = AuditRecorder(session)
    with atomic(session):
        schedule = _get_schedule(session, schedule_id, for_update=True)
        if schedule.status in CLOSED_STATUSES:
            raise ConflictError(f"Payment schedule {schedule_id} is already {schedule.status}")

        old_values = schedule.snapshot()
        if new_date is not None:
            schedule.scheduled_date = new_date
            schedule.reschedule_count = (schedule.reschedule_count or 0) + 1
        schedule.status = status
        session.flush()

        audit.record(
            table_name=SCHEDULES_TABLE,
            record_id=schedule.id,
            action=AUDIT_UPDATE,
            old_values=old_values,
            new_values=schedule.snapshot(),
            actor=actor,
            reason=reason,
        )
    return schedule


def create_schedule(payload: dict, *, actor: Optional[str] = None, session=None) -> PaymentSchedule:
    """Plan (part of) an item's payment on a date; the item's due date is kept as original_due_date."""
    session = session if session is not None else db.session
    patch = validate_payload(model=PaymentSchedule, payload=payload, policy=SCHEDULE_CREATE_POLICY, partial=False)
    enforce_rules_amount(patch, "scheduled_amount_cents")

    audit = AuditRecorder(session)
    with atomic(session):
        item = ItemRepository(session).get_item(patch["payment_item_id"])
        if patch["scheduled_amount_cents"] > item.owed_cents:
            raise ValidationError(
                f"scheduled_amount_cents cannot exceed the {item.owed_cents} still owed on item {item.id}"
            )
        schedule = PaymentSchedule(
            payment_item_id=item.id,
            scheduled_date=patch["scheduled_date"],
            original_due_date=item.due_date,
            reschedule_count=0,
            scheduled_amount_cents=patch["scheduled_amount_cents"],
            status=SCHEDULE_STATUS_SCHEDULED,
            notes=patch.get("notes"),
        )
        session.add(schedule)
        session.flush()

        audit.record(
            table_name=SCHEDULES_TABLE,
            record_id=schedule.id,
            action=AUDIT_INSERT,
            new_values=schedule.snapshot(),
            actor=actor,
            reason=f"schedule payment for item {item.id}",
        )
    return schedule


def reschedule(
    schedule_id: int,
    new_date,
    *,
    actor: Optional[str] = None,
    reason: Optional[str] = None,
    session=None,
) -> PaymentSchedule:
    """Move a schedule; the original due date is kept and the move is counted."""
    session = session if session is not None else db.session
    if isinstance(new_date, str):
        try:
            new_date = parse_iso_date(new_date)
        except ValueError:
            raise ValidationError("scheduled_date must be an ISO-8601 date (YYYY-MM-DD)")
    if not isinstance(new_date, date):
        raise ValidationError("scheduled_date is required")
    return _transition(
        schedule_id,
        status=SCHEDULE_STATUS_RESCHEDULED,
        new_date=new_date,
        actor=actor,
        reason=reason or f"rescheduled to {new_date.isoformat()}",
        session=session,
    )


def complete_schedule(schedule_id: int, *, actor: Optional[str] = None, reason: Optional[str] = None, session=None) -> PaymentSchedule:
    session = session if session is not None else db.session
    return _transition(
        schedule_id,
        status=SCHEDULE_STATUS_COMPLETED,
        actor=actor,
        reason=reason or "schedule completed",
        session=session,
    )


def cancel_schedule(schedule_id: int, *, actor: Optional[str] = None, reason: Optional[str] = None, session=None) -> PaymentSchedule:
    session = session if session is not None else db.session
    return _transition(
        schedule_id,
        status=SCHEDULE_STATUS_CANCELLED,
        actor=actor,
        reason=reason or "schedule cancelled",
        session=session,
    )


def list_schedules(year: int, month: int, *, include_closed: bool = True, session=None) -> list[PaymentSchedule]:
    """Schedules falling in one calendar month, skipping items that were soft-deleted."""
    session = session if session is not None else db.session
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")
    first_day = date(year, month, 1)
    next_month = add_months(first_day, 1)

    query = (
        session.query(PaymentSchedule)
        .join(PaymentItem, PaymentItem.id == PaymentSchedule.payment_item_id)
        .filter(
            PaymentSchedule.scheduled_date >= first_day,
            PaymentSchedule.scheduled_date < next_month,
            PaymentItem.is_deleted.is_(False),
        )
    )
    if not include_closed:
        query = query.filter(PaymentSchedule.status.notin_(CLOSED_STATUSES))
    return query.order_by(PaymentSchedule.scheduled_date.asc(), PaymentSchedule.id.asc()).all()


def schedules_for_item(item_id: int, *, session=None) -> list[PaymentSchedule]:
    session = session if session is not None else db.session
    ItemRepository(session).get_item(item_id, include_deleted=True)
    return (
        session.query(PaymentSchedule)
        .filter(PaymentSchedule.payment_item_id == item_id)
        .order_by(PaymentSchedule.scheduled_date.asc(), PaymentSchedule.id.asc())
        .all()
    )


def list_overdue_schedules(*, today: Optional[date] = None, session=None) -> list[PaymentSchedule]:
    """Open schedules whose date has passed, longest overdue first."""
    session = session if session is not None else db.session
    today = today or business_today()
    return (
        session.query(PaymentSchedule)
        .join(PaymentItem, PaymentItem.id == PaymentSchedule.payment_item_id)
        .filter(
            PaymentSchedule.scheduled_date < today,
            PaymentSchedule.status.notin_(CLOSED_STATUSES),
            PaymentItem.is_deleted.is_(False),
        )
        .order_by(PaymentSchedule.scheduled_date.asc(), PaymentSchedule.id.asc())
        .all()
    )


def _due_in_month(item: PaymentItem, first_day: date, last_day: date) -> bool:
    if item.payment_type == PAYMENT_TYPE_SINGLE:
        return first_day <= item.due_date <= last_day
    # A running plan owes something in every month it spans.
    return item.start_date <= last_day and item.due_date >= first_day


def list_unscheduled_items(year: int, month: int, *, session=None) -> list[dict]:
    """
    Open items due in a month whose schedules do not yet cover their total.

    Cancelled schedules do not count as coverage. Sorted by due date, then
    higher priority first.
    """
    session = session if session is not None else db.session
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")
    first_day = date(year, month, 1)
    last_day = month_end(first_day)

    covered = dict(
        session.query(PaymentSchedule.payment_item_id, db.func.sum(PaymentSchedule.scheduled_amount_cents))
        .filter(PaymentSchedule.status != SCHEDULE_STATUS_CANCELLED)
        .group_by(PaymentSchedule.payment_item_id)
        .all()
    )
    candidates = (
        session.query(PaymentItem)
        .filter(
            PaymentItem.is_deleted.is_(False),
            PaymentItem.status.in_(OPEN_ITEM_STATUSES),
            PaymentItem.start_date <= last_day,
        )
        .all()
    )

    rows = []
    for item in candidates:
        if not _due_in_month(item, first_day, last_day):
            continue
        scheduled = int(covered.get(item.id) or 0)
        if scheduled >= item.total_amount_cents:
            continue
        data = item.to_dict()
        data["scheduled_cents"] = scheduled
        data["unscheduled_cents"] = item.total_amount_cents - scheduled
        rows.append(data)
    rows.sort(key=lambda row: (row["due_date"], -(row["priority"] or 0), row["id"]))
    return rows
