# Overview: Service-layer operations for budget plans; forecast-only entries and their conversion.

"""
Budget Plans

WHY: Budgets describe money expected to go out before it becomes a real
obligation. They only feed the forecast until a budget item is converted,
at which point a PaymentItem is created through the normal item path
(schedule generation and audit included) and the budget item stops counting.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from ..extensions import db
from ..models import BudgetItem, BudgetPlan
from ..models.audit import AUDIT_INSERT, AUDIT_UPDATE
from ..models.payments import (
    PAYMENT_TYPE_INSTALLMENT,
    PAYMENT_TYPE_MONTHLY,
    PAYMENT_TYPE_SINGLE,
    VALID_PAYMENT_TYPES,
)
from ..repositories import ItemRepository
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_amount,
    enforce_rules_date_range,
    validate_payload,
)
from .audit_service import AuditRecorder
from .concurrency import atomic, lock_for_update
from .item_service import _create_item_locked, _ensure_project_exists, category_from_fields
from paytrack.time_utils import add_months, months_between, utcnow


log = logging.getLogger(__name__)

PLANS_TABLE = "budget_plans"
BUDGET_ITEMS_TABLE = "budget_items"

PLAN_POLICY = ModelValidationPolicy(
    writable_fields={"name", "project_id", "start_date", "end_date", "total_budget_cents"},
    required_on_create={"name", "start_date", "end_date"},
)

BUDGET_ITEM_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "category_id",
        "fixed_category_id",
        "fixed_sub_option_id",
        "payment_type",
        "planned_amount_cents",
        "monthly_amount_cents",
        "month_count",
        "installment_count",
        "installment_amount_cents",
        "start_date",
        "end_date",
        "priority",
        "notes",
    },
    required_on_create={"name"},
)


def create_plan(payload: dict, *, actor: Optional[str] = None, session=None) -> BudgetPlan:
    session = session if session is not None else db.session
    patch = validate_payload(model=BudgetPlan, payload=payload, policy=PLAN_POLICY, partial=False)
    enforce_rules_amount(patch, "total_budget_cents", allow_zero=True)
    enforce_rules_date_range(patch["start_date"], patch["end_date"], strict=False)

    audit = AuditRecorder(session)
    with atomic(session):
        _ensure_project_exists(session, patch.get("project_id"))
        plan = BudgetPlan(
            name=patch["name"],
            project_id=patch.get("project_id"),
            start_date=patch["start_date"],
            end_date=patch["end_date"],
            total_budget_cents=patch.get("total_budget_cents") or 0,
        )
        session.add(plan)
        session.flush()
        audit.record(
            table_name=PLANS_TABLE,
            record_id=plan.id,
            action=AUDIT_INSERT,
            new_values=plan.snapshot(),
            actor=actor,
            reason="create budget plan",
        )
    return plan


def get_plan(plan_id: int, *, session=None) -> BudgetPlan:
    session = session if session is not None else db.session
    plan = session.get(BudgetPlan, plan_id)
    if plan is None:
        raise NotFoundError(f"Budget plan {plan_id} not found")
    return plan


def _normalize_amounts(patch: dict) -> None:
    """
    Fill planned_amount_cents from per-period amounts when it is omitted,
    and per-period counts from the date range when they are omitted.
    """
    for field in ("planned_amount_cents", "monthly_amount_cents", "installment_amount_cents"):
        enforce_rules_amount(patch, field)
    for field in ("month_count", "installment_count"):
        if patch.get(field) is not None and patch[field] <= 0:
            raise ValidationError(f"{field} must be > 0")

    payment_type = patch.get("payment_type") or PAYMENT_TYPE_SINGLE
    if payment_type not in VALID_PAYMENT_TYPES:
        raise ValidationError(f"Invalid payment_type: {payment_type}. Must be one of {list(VALID_PAYMENT_TYPES)}")
    patch["payment_type"] = payment_type

    start, end = patch.get("start_date"), patch.get("end_date")
    enforce_rules_date_range(start, end, strict=False)
    span = months_between(start, end) if start and end else None

    if payment_type == PAYMENT_TYPE_MONTHLY:
        if patch.get("month_count") is None:
            patch["month_count"] = span or 1
        if patch.get("planned_amount_cents") is None and patch.get("monthly_amount_cents") is not None:
            patch["planned_amount_cents"] = patch["monthly_amount_cents"] * patch["month_count"]
    elif payment_type == PAYMENT_TYPE_INSTALLMENT:
        if patch.get("installment_count") is None:
            patch["installment_count"] = span or 1
        if patch.get("planned_amount_cents") is None and patch.get("installment_amount_cents") is not None:
            patch["planned_amount_cents"] = patch["installment_amount_cents"] * patch["installment_count"]

    if patch.get("planned_amount_cents") is None:
        raise ValidationError("planned_amount_cents is required")
    enforce_rules_amount(patch, "planned_amount_cents")


def add_budget_item(plan_id: int, payload: dict, *, actor: Optional[str] = None, session=None) -> BudgetItem:
    session = session if session is not None else db.session
    patch = validate_payload(model=BudgetItem, payload=payload, policy=BUDGET_ITEM_POLICY, partial=False)
    _normalize_amounts(patch)
    category_from_fields(
        patch.get("category_id"),
        patch.get("fixed_category_id"),
        patch.get("fixed_sub_option_id"),
        required=False,
    )

    audit = AuditRecorder(session)
    with atomic(session):
        plan = get_plan(plan_id, session=session)
        item = BudgetItem(budget_plan_id=plan.id, converted_to_payment=False, is_deleted=False, **patch)
        if item.priority is None:
            item.priority = 1
        session.add(item)
        session.flush()
        audit.record(
            table_name=BUDGET_ITEMS_TABLE,
            record_id=item.id,
            action=AUDIT_INSERT,
            new_values=item.snapshot(),
            actor=actor,
            reason=f"add {item.payment_type} budget item to plan {plan.id}",
        )
    return item


def list_plans_with_items(*, include_closed: bool = False, session=None) -> list[BudgetPlan]:
    session = session if session is not None else db.session
    query = session.query(BudgetPlan)
    if not include_closed:
        query = query.filter(BudgetPlan.status == "active")
    return query.order_by(BudgetPlan.start_date.asc(), BudgetPlan.id.asc()).all()


def _conversion_payload(budget_item: BudgetItem, plan: BudgetPlan) -> dict:
    start = budget_item.start_date or plan.start_date
    payment_type = budget_item.payment_type or PAYMENT_TYPE_SINGLE
    end = budget_item.end_date

    if payment_type in (PAYMENT_TYPE_MONTHLY, PAYMENT_TYPE_INSTALLMENT):
        count = budget_item.month_count if payment_type == PAYMENT_TYPE_MONTHLY else budget_item.installment_count
        if end is None and count:
            end = add_months(start, count - 1)
        if end is not None and end <= start:
            # A one-period plan is a single payment.
            payment_type = PAYMENT_TYPE_SINGLE

    return {
        "name": budget_item.name,
        "category_id": budget_item.category_id,
        "fixed_category_id": budget_item.fixed_category_id,
        "fixed_sub_option_id": budget_item.fixed_sub_option_id,
        "project_id": plan.project_id,
        "total_amount_cents": budget_item.planned_amount_cents,
        "payment_type": payment_type,
        "start_date": start,
        "end_date": end,
        "priority": budget_item.priority,
        "notes": budget_item.notes,
    }


def convert_budget_item(
    budget_item_id: int,
    *,
    actor: Optional[str] = None,
    today: Optional[date] = None,
    session=None,
):
    """
    Turn a budget item into a real PaymentItem in one transaction.

    Returns (budget_item, payment_item). Converting twice is a conflict.
    """
    session = session if session is not None else db.session
    repo = ItemRepository(session)
    audit = AuditRecorder(session)

    with atomic(session):
        budget_item = lock_for_update(
            session.query(BudgetItem).filter(BudgetItem.id == budget_item_id)
        ).first()
        if budget_item is None or budget_item.is_deleted:
            raise NotFoundError(f"Budget item {budget_item_id} not found")
        if budget_item.converted_to_payment:
            raise ConflictError(f"Budget item {budget_item_id} was already converted")
        if budget_item.category is None:
            raise ValidationError("Budget item needs a category before it can be converted")

        payment_item = _create_item_locked(
            _conversion_payload(budget_item, budget_item.plan),
            repo=repo,
            audit=audit,
            actor=actor,
            reason=f"converted from budget item {budget_item.id}",
            today=today,
        )

        old_values = budget_item.snapshot()
        budget_item.converted_to_payment = True
        budget_item.linked_payment_item_id = payment_item.id
        budget_item.conversion_date = utcnow()
        session.flush()
        audit.record(
            table_name=BUDGET_ITEMS_TABLE,
            record_id=budget_item.id,
            action=AUDIT_UPDATE,
            old_values=old_values,
            new_values=budget_item.snapshot(),
            actor=actor,
            reason=f"converted to payment item {payment_item.id}",
        )

    log.info("Converted budget item %s into payment item %s", budget_item_id, payment_item.id)
    return budget_item, payment_item
