# Overview: Service-layer operations for payment items; creation, edits, payments and lifecycle.

"""
Payment Item Service

WHY: Single entry point for every mutation of a PaymentItem. Each operation
validates first, writes through the ItemRepository, records its audit row in
the same session and commits once.

LIFECYCLE:
- create (INSERT) -> update / pay (UPDATE) -> soft delete (DELETE)
- soft delete -> restore (RESTORE) or purge (PERMANENT_DELETE, irreversible)
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from ..extensions import db
from ..models import (
    Category,
    DebtCategory,
    FixedCategory,
    FixedCategorySubOption,
    FlexibleCategory,
    PaymentItem,
    PaymentProject,
    PaymentRecord,
)
from ..models.audit import (
    AUDIT_DELETE,
    AUDIT_INSERT,
    AUDIT_PERMANENT_DELETE,
    AUDIT_RESTORE,
    AUDIT_UPDATE,
)
from ..models.payments import (
    PAYMENT_TYPE_SINGLE,
    STATUS_OVERDUE,
    STATUS_PAID,
    STATUS_PARTIAL,
    STATUS_PENDING,
)
from ..repositories import ItemFilters, ItemRepository, ItemScope
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_amount,
    enforce_rules_date_range,
    validate_payload,
)
from .audit_service import AuditRecorder, diff_fields
from .concurrency import atomic
from .schedule_generator import generate_schedule, validate_plan
from paytrack.time_utils import month_end, month_start, parse_iso_date, today as business_today


log = logging.getLogger(__name__)

ITEMS_TABLE = "payment_items"
RECORDS_TABLE = "payment_records"
DIRECT_PAYMENT_METHOD = "manual"

BATCH_UPDATE_PRIORITY = "update_priority"
BATCH_UPDATE_CATEGORY = "update_category"
BATCH_ARCHIVE = "archive"
BATCH_ACTIONS = (BATCH_UPDATE_PRIORITY, BATCH_UPDATE_CATEGORY, BATCH_ARCHIVE)

ITEM_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "category_id",
        "fixed_category_id",
        "fixed_sub_option_id",
        "project_id",
        "total_amount_cents",
        "payment_type",
        "start_date",
        "end_date",
        "priority",
        "notes",
    },
    required_on_create={"name", "total_amount_cents", "start_date"},
)

ITEM_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "project_id",
        "total_amount_cents",
        "start_date",
        "end_date",
        "priority",
        "notes",
    },
)

RECORD_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"amount_cents", "payment_date", "method", "notes"},
)


# =============================================================================
# PURE HELPERS
# =============================================================================

def compute_status(total_cents: int, paid_cents: int, due_date: Optional[date], today: date) -> str:
    """
    Status is a pure function of amounts and the due date.

    paid    : paid >= total
    overdue : not paid and due before today
    partial : 0 < paid < total
    pending : nothing paid yet
    """
    if paid_cents >= total_cents:
        return STATUS_PAID
    if due_date is not None and due_date < today:
        return STATUS_OVERDUE
    if paid_cents > 0:
        return STATUS_PARTIAL
    return STATUS_PENDING


def item_status(item: PaymentItem, today: date) -> str:
    return compute_status(item.total_amount_cents, item.paid_amount_cents or 0, item.due_date, today)


def category_from_fields(
    category_id: Optional[int],
    fixed_category_id: Optional[int],
    fixed_sub_option_id: Optional[int],
    *,
    required: bool = True,
) -> Optional[Category]:
    """
    Map the three nullable columns onto the Category sum type.

    Exactly one of category_id or (fixed_category_id + fixed_sub_option_id).
    """
    if category_id is not None and (fixed_category_id is not None or fixed_sub_option_id is not None):
        raise ValidationError("Provide either category_id or fixed_category_id + fixed_sub_option_id, not both")
    if category_id is not None:
        return FlexibleCategory(category_id)
    if fixed_category_id is not None or fixed_sub_option_id is not None:
        if fixed_category_id is None or fixed_sub_option_id is None:
            raise ValidationError("fixed_category_id and fixed_sub_option_id must be provided together")
        return FixedCategory(fixed_category_id, fixed_sub_option_id)
    if required:
        raise ValidationError("A category is required (category_id or fixed_category_id + fixed_sub_option_id)")
    return None


def scope_from_payload(data: dict) -> ItemScope:
    """Build an ItemScope from request-style keys; at least one element is required."""
    def _int_or_none(key):
        value = data.get(key)
        if value is None or value == "":
            return None
        if isinstance(value, bool):
            raise ValidationError(f"{key} must be an integer")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{key} must be an integer")

    category = category_from_fields(
        _int_or_none("category_id"),
        _int_or_none("fixed_category_id"),
        _int_or_none("fixed_sub_option_id"),
        required=False,
    )
    scope = ItemScope(category=category, project_id=_int_or_none("project_id"))
    if scope.is_empty:
        raise ValidationError("A scope needs a category and/or a project_id")
    return scope


def _ensure_category_exists(session, category: Category) -> None:
    if isinstance(category, FlexibleCategory):
        if session.get(DebtCategory, category.category_id) is None:
            raise NotFoundError(f"Category {category.category_id} not found")
        return
    sub_option = session.get(FixedCategorySubOption, category.sub_option_id)
    if sub_option is None or sub_option.fixed_category_id != category.category_id:
        raise NotFoundError(
            f"Sub-option {category.sub_option_id} not found for fixed category {category.category_id}"
        )


def _ensure_project_exists(session, project_id: Optional[int]) -> None:
    if project_id is None:
        return
    project = session.get(PaymentProject, project_id)
    if project is None or project.is_deleted:
        raise NotFoundError(f"Project {project_id} not found")


def _collaborators(repo: Optional[ItemRepository], audit: Optional[AuditRecorder]):
    repo = repo or ItemRepository(db.session)
    audit = audit or AuditRecorder(repo.session)
    return repo, audit


# =============================================================================
# CREATION
# =============================================================================

def _create_item_locked(
    payload: dict,
    *,
    repo: ItemRepository,
    audit: AuditRecorder,
    actor: Optional[str],
    reason: Optional[str] = None,
    today: Optional[date] = None,
) -> PaymentItem:
    """
    Validate, insert, expand the schedule and audit, without committing.

    Shared by create_item and budget conversion so both stay one transaction.
    """
    today = today or business_today()
    patch = validate_payload(model=PaymentItem, payload=payload, policy=ITEM_CREATE_POLICY, partial=False)

    category = category_from_fields(
        patch.pop("category_id", None),
        patch.pop("fixed_category_id", None),
        patch.pop("fixed_sub_option_id", None),
    )
    enforce_rules_amount(patch, "total_amount_cents")

    requested_type = patch.get("payment_type") or PAYMENT_TYPE_SINGLE
    payment_type = validate_plan(
        requested_type,
        patch["total_amount_cents"],
        patch.get("start_date"),
        patch.get("end_date"),
    )

    _ensure_category_exists(repo.session, category)
    _ensure_project_exists(repo.session, patch.get("project_id"))

    item = PaymentItem(
        name=patch["name"],
        project_id=patch.get("project_id"),
        total_amount_cents=patch["total_amount_cents"],
        paid_amount_cents=0,
        payment_type=payment_type,
        start_date=patch["start_date"],
        end_date=patch.get("end_date"),
        priority=patch.get("priority") if patch.get("priority") is not None else 1,
        notes=patch.get("notes"),
        is_deleted=False,
    )
    item.category = category
    item.status = item_status(item, today)
    repo.upsert_item(item)

    records = generate_schedule(item, repo=repo)

    if reason is None:
        if payment_type != requested_type:
            reason = f"create {payment_type} item ({requested_type} plan without end_date)"
        elif records:
            reason = f"create {payment_type} item with {len(records)} planned payments"
        else:
            reason = f"create {payment_type} item"

    audit.record(
        table_name=ITEMS_TABLE,
        record_id=item.id,
        action=AUDIT_INSERT,
        old_values=None,
        new_values=item.snapshot(),
        actor=actor,
        reason=reason,
    )
    return item


def create_item(
    payload: dict,
    *,
    actor: Optional[str] = None,
    reason: Optional[str] = None,
    today: Optional[date] = None,
    repo: Optional[ItemRepository] = None,
    audit: Optional[AuditRecorder] = None,
) -> PaymentItem:
    """
    Create a payment item and, for monthly/installment plans, its planned records.

    The item, every planned record and the INSERT audit row commit together.
    """
    repo, audit = _collaborators(repo, audit)
    with atomic(repo.session):
        item = _create_item_locked(payload, repo=repo, audit=audit, actor=actor, reason=reason, today=today)
    return item


# =============================================================================
# READS
# =============================================================================

def get_item(item_id: int, *, include_deleted: bool = False, repo: Optional[ItemRepository] = None) -> PaymentItem:
    repo = repo or ItemRepository(db.session)
    return repo.get_item(item_id, include_deleted=include_deleted)


def list_items(filters: Optional[ItemFilters] = None, *, repo: Optional[ItemRepository] = None) -> list[PaymentItem]:
    repo = repo or ItemRepository(db.session)
    return repo.list_items_by_scope(filters or ItemFilters())


def list_records(item_id: int, *, planned: Optional[bool] = None, repo: Optional[ItemRepository] = None) -> list[PaymentRecord]:
    repo = repo or ItemRepository(db.session)
    repo.get_item(item_id, include_deleted=True)
    return repo.records_for_item(item_id, planned=planned)


# =============================================================================
# EDITS AND PAYMENTS
# =============================================================================

def update_item(
    item_id: int,
    payload: dict,
    *,
    actor: Optional[str] = None,
    reason: Optional[str] = None,
    today: Optional[date] = None,
    repo: Optional[ItemRepository] = None,
    audit: Optional[AuditRecorder] = None,
) -> PaymentItem:
    """
    Direct edit of an item.

    Dates are editable on single items only; a scheduled plan keeps the
    dates its planned records were generated from. An edit that changes
    nothing writes nothing.
    """
    today = today or business_today()
    repo, audit = _collaborators(repo, audit)
    patch = validate_payload(model=PaymentItem, payload=payload, policy=ITEM_UPDATE_POLICY, partial=True)
    enforce_rules_amount(patch, "total_amount_cents")

    with atomic(repo.session):
        item = repo.get_item(item_id, for_update=True)

        if ("start_date" in patch or "end_date" in patch) and item.payment_type != PAYMENT_TYPE_SINGLE:
            new_start = patch.get("start_date", item.start_date)
            new_end = patch.get("end_date", item.end_date)
            if new_start != item.start_date or new_end != item.end_date:
                raise ValidationError(f"Dates of a {item.payment_type} item cannot be edited")
        if "start_date" in patch and patch["start_date"] is None:
            raise ValidationError("start_date cannot be null")
        enforce_rules_date_range(
            patch.get("start_date", item.start_date),
            patch.get("end_date", item.end_date),
            strict=False,
        )
        if "total_amount_cents" in patch and patch["total_amount_cents"] < (item.paid_amount_cents or 0):
            raise ConflictError(
                f"total_amount_cents cannot be below the amount already paid ({item.paid_amount_cents})"
            )
        if "project_id" in patch:
            _ensure_project_exists(repo.session, patch["project_id"])
        respread = (
            item.payment_type != PAYMENT_TYPE_SINGLE
            and patch.get("total_amount_cents", item.total_amount_cents) != item.total_amount_cents
        )
        if respread:
            validate_plan(item.payment_type, patch["total_amount_cents"], item.start_date, item.end_date)

        old_values = item.snapshot()
        for field, value in patch.items():
            if getattr(item, field) != value:
                setattr(item, field, value)
        new_status = item_status(item, today)
        if item.status != new_status:
            item.status = new_status

        new_values = item.snapshot()
        changed = diff_fields(old_values, new_values)
        if not changed:
            return item

        repo.upsert_item(item)
        if respread:
            # Planned records must keep summing to the new total.
            repo.delete_planned_records(item)
            records = generate_schedule(item, repo=repo)
            reason = reason or f"direct edit; {len(records)} planned payments regenerated"
        audit.record(
            table_name=ITEMS_TABLE,
            record_id=item.id,
            action=AUDIT_UPDATE,
            old_values=old_values,
            new_values=new_values,
            changed_fields=changed,
            actor=actor,
            reason=reason or "direct edit",
        )
    return item


def record_payment(
    item_id: int,
    amount_cents: int,
    *,
    payment_date: Optional[date] = None,
    method: Optional[str] = None,
    notes: Optional[str] = None,
    actor: Optional[str] = None,
    today: Optional[date] = None,
    repo: Optional[ItemRepository] = None,
    audit: Optional[AuditRecorder] = None,
) -> tuple[PaymentItem, PaymentRecord]:
    """
    Pay one item directly (no waterfall).

    Paying more than is owed is a conflict; use an allocation to spread a
    larger amount.
    """
    today = today or business_today()
    if isinstance(payment_date, str):
        try:
            payment_date = parse_iso_date(payment_date)
        except ValueError:
            raise ValidationError("payment_date must be an ISO-8601 date (YYYY-MM-DD)")
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool):
        raise ValidationError("amount_cents must be an integer")
    enforce_rules_amount({"amount_cents": amount_cents}, "amount_cents")

    repo, audit = _collaborators(repo, audit)
    with atomic(repo.session):
        item = repo.get_item(item_id, for_update=True)
        owed = item.owed_cents
        if owed <= 0:
            raise ConflictError(f"Payment item {item_id} is already fully paid")
        if amount_cents > owed:
            raise ConflictError(f"Payment of {amount_cents} exceeds the {owed} still owed")

        old_values = {"paid_amount_cents": item.paid_amount_cents, "status": item.status}
        item.paid_amount_cents = (item.paid_amount_cents or 0) + amount_cents
        item.status = item_status(item, today)
        repo.upsert_item(item)

        record = repo.insert_record(
            PaymentRecord(
                item_id=item.id,
                amount_cents=amount_cents,
                payment_date=payment_date or today,
                method=method or DIRECT_PAYMENT_METHOD,
                notes=notes,
                is_planned=False,
            )
        )
        new_values = {"paid_amount_cents": item.paid_amount_cents, "status": item.status}
        audit.record(
            table_name=ITEMS_TABLE,
            record_id=item.id,
            action=AUDIT_UPDATE,
            old_values=old_values,
            new_values=new_values,
            actor=actor,
            reason=f"direct payment of {amount_cents} (record {record.id})",
        )
    return item, record


# =============================================================================
# RECORD CORRECTIONS
# =============================================================================

def _sync_paid_locked(
    item: PaymentItem,
    *,
    repo: ItemRepository,
    audit: AuditRecorder,
    actor: Optional[str],
    reason: str,
    today: date,
) -> list[str]:
    """
    Re-derive paid amount and status from the item's actual records.

    Audits only when something moved. Returns the changed fields.
    """
    paid = repo.actual_paid_cents(item.id)
    if paid > item.total_amount_cents:
        raise ConflictError(
            f"Actual records of item {item.id} sum to {paid}, above its total of {item.total_amount_cents}"
        )
    old_values = {"paid_amount_cents": item.paid_amount_cents, "status": item.status}
    item.paid_amount_cents = paid
    item.status = item_status(item, today)
    new_values = {"paid_amount_cents": item.paid_amount_cents, "status": item.status}

    changed = diff_fields(old_values, new_values)
    if changed:
        repo.upsert_item(item)
        audit.record(
            table_name=ITEMS_TABLE,
            record_id=item.id,
            action=AUDIT_UPDATE,
            old_values=old_values,
            new_values=new_values,
            changed_fields=changed,
            actor=actor,
            reason=reason,
        )
    return changed


def _actual_record_locked(repo: ItemRepository, record_id: int) -> tuple[PaymentItem, PaymentRecord]:
    record = repo.get_record(record_id)
    if record.is_planned:
        raise ConflictError(
            f"Payment record {record_id} is a planned period; change the item instead"
        )
    item = repo.get_item(record.item_id, for_update=True)
    return item, repo.get_record(record_id, for_update=True)


def recompute_item_amounts(
    item_id: int,
    *,
    actor: Optional[str] = None,
    reason: Optional[str] = None,
    today: Optional[date] = None,
    repo: Optional[ItemRepository] = None,
    audit: Optional[AuditRecorder] = None,
) -> PaymentItem:
    """Repair paid_amount_cents and status from the actual records of one item."""
    today = today or business_today()
    repo, audit = _collaborators(repo, audit)
    with atomic(repo.session):
        item = repo.get_item(item_id, for_update=True)
        _sync_paid_locked(
            item, repo=repo, audit=audit, actor=actor,
            reason=reason or "paid amount recomputed from records", today=today,
        )
    return item


def update_record(
    record_id: int,
    payload: dict,
    *,
    actor: Optional[str] = None,
    reason: Optional[str] = None,
    today: Optional[date] = None,
    repo: Optional[ItemRepository] = None,
    audit: Optional[AuditRecorder] = None,
) -> tuple[PaymentItem, PaymentRecord]:
    """
    Correct an actual payment record.

    The item's paid amount and status follow the corrected records; a
    correction that would overpay the item is a conflict and changes nothing.
    """
    today = today or business_today()
    repo, audit = _collaborators(repo, audit)
    patch = validate_payload(model=PaymentRecord, payload=payload, policy=RECORD_UPDATE_POLICY, partial=True)
    enforce_rules_amount(patch, "amount_cents")

    with atomic(repo.session):
        item, record = _actual_record_locked(repo, record_id)
        old_values = record.snapshot()
        for field, value in patch.items():
            setattr(record, field, value)
        repo.session.flush()
        new_values = record.snapshot()
        changed = diff_fields(old_values, new_values)
        if not changed:
            return item, record

        audit.record(
            table_name=RECORDS_TABLE,
            record_id=record.id,
            action=AUDIT_UPDATE,
            old_values=old_values,
            new_values=new_values,
            changed_fields=changed,
            actor=actor,
            reason=reason or "record correction",
        )
        _sync_paid_locked(
            item, repo=repo, audit=audit, actor=actor,
            reason=f"payment record {record.id} corrected", today=today,
        )
    return item, record


def delete_record(
    record_id: int,
    *,
    actor: Optional[str] = None,
    reason: Optional[str] = None,
    today: Optional[date] = None,
    repo: Optional[ItemRepository] = None,
    audit: Optional[AuditRecorder] = None,
) -> PaymentItem:
    """Remove an actual payment record (e.g. a payment entered twice) and re-derive the item."""
    today = today or business_today()
    repo, audit = _collaborators(repo, audit)
    with atomic(repo.session):
        item, record = _actual_record_locked(repo, record_id)
        old_values = record.snapshot()
        repo.delete_record(record)
        audit.record(
            table_name=RECORDS_TABLE,
            record_id=record_id,
            action=AUDIT_PERMANENT_DELETE,
            old_values=old_values,
            new_values=None,
            changed_fields=[],
            actor=actor,
            reason=reason or "record removed",
        )
        _sync_paid_locked(
            item, repo=repo, audit=audit, actor=actor,
            reason=f"payment record {record_id} removed", today=today,
        )
    return item


# =============================================================================
# LIFECYCLE
# =============================================================================

def soft_delete_item(
    item_id: int,
    *,
    actor: Optional[str] = None,
    reason: Optional[str] = None,
    repo: Optional[ItemRepository] = None,
    audit: Optional[AuditRecorder] = None,
) -> PaymentItem:
    repo, audit = _collaborators(repo, audit)
    with atomic(repo.session):
        item = repo.get_item(item_id, include_deleted=True, for_update=True)
        if item.is_deleted:
            raise ConflictError(f"Payment item {item_id} is already deleted")
        old_values = item.snapshot()
        repo.soft_delete(item)
        audit.record(
            table_name=ITEMS_TABLE,
            record_id=item.id,
            action=AUDIT_DELETE,
            old_values=old_values,
            new_values=item.snapshot(),
            actor=actor,
            reason=reason or "soft delete",
        )
    return item


def restore_item(
    item_id: int,
    *,
    actor: Optional[str] = None,
    reason: Optional[str] = None,
    repo: Optional[ItemRepository] = None,
    audit: Optional[AuditRecorder] = None,
) -> PaymentItem:
    """Undo a soft delete; every other field comes back exactly as it was."""
    repo, audit = _collaborators(repo, audit)
    with atomic(repo.session):
        item = repo.get_item(item_id, include_deleted=True, for_update=True)
        if not item.is_deleted:
            raise ConflictError(f"Payment item {item_id} is not deleted")
        old_values = item.snapshot()
        repo.restore(item)
        audit.record(
            table_name=ITEMS_TABLE,
            record_id=item.id,
            action=AUDIT_RESTORE,
            old_values=old_values,
            new_values=item.snapshot(),
            actor=actor,
            reason=reason or "restore",
        )
    return item


def purge_item(
    item_id: int,
    *,
    actor: Optional[str] = None,
    reason: Optional[str] = None,
    repo: Optional[ItemRepository] = None,
    audit: Optional[AuditRecorder] = None,
) -> dict:
    """
    Permanently remove a soft-deleted item and its records.

    Irreversible. The audit rows describing the item are kept.
    """
    repo, audit = _collaborators(repo, audit)
    with atomic(repo.session):
        item = repo.get_item(item_id, include_deleted=True, for_update=True)
        if not item.is_deleted:
            raise ConflictError(f"Payment item {item_id} must be soft-deleted before it can be purged")
        old_values = item.snapshot()
        removed_records = repo.purge(item)
        audit.record(
            table_name=ITEMS_TABLE,
            record_id=item_id,
            action=AUDIT_PERMANENT_DELETE,
            old_values=old_values,
            new_values=None,
            changed_fields=[],
            actor=actor,
            reason=reason or f"permanent delete ({removed_records} records removed)",
        )
    log.info("Purged payment item %s with %s records", item_id, removed_records)
    return {"item_id": item_id, "records_removed": removed_records}


def list_deleted_items(*, repo: Optional[ItemRepository] = None) -> list[PaymentItem]:
    repo = repo or ItemRepository(db.session)
    return repo.list_deleted_items()


def _batch_ids(item_ids) -> list[int]:
    if not isinstance(item_ids, (list, tuple)) or not item_ids:
        raise ValidationError("item_ids must be a non-empty list")
    for item_id in item_ids:
        if not isinstance(item_id, int) or isinstance(item_id, bool):
            raise ValidationError("item_ids must contain integers")
    return list(item_ids)


def batch_update_items(
    item_ids,
    action: str,
    data: Optional[dict] = None,
    *,
    actor: Optional[str] = None,
    reason: Optional[str] = None,
    repo: Optional[ItemRepository] = None,
    audit: Optional[AuditRecorder] = None,
) -> list[PaymentItem]:
    """
    Apply one change to many items in a single transaction.

    Actions:
    - update_priority: data {"priority": int}
    - update_category: data {"category_id"} or {"fixed_category_id", "fixed_sub_option_id"}
    - archive: soft delete

    Every id must name a live item or nothing changes. Each changed item gets
    its own audit row; items already in the requested state are skipped.
    Returns the changed items.
    """
    if action not in BATCH_ACTIONS:
        raise ValidationError(f"Invalid action: {action}. Must be one of {list(BATCH_ACTIONS)}")
    ids = _batch_ids(item_ids)
    data = data or {}
    if not isinstance(data, dict):
        raise ValidationError("data must be an object")

    priority = category = None
    if action == BATCH_UPDATE_PRIORITY:
        priority = data.get("priority")
        if not isinstance(priority, int) or isinstance(priority, bool):
            raise ValidationError("priority must be an integer")
    elif action == BATCH_UPDATE_CATEGORY:
        category = category_from_fields(
            data.get("category_id"),
            data.get("fixed_category_id"),
            data.get("fixed_sub_option_id"),
        )

    repo, audit = _collaborators(repo, audit)
    changed_items: list[PaymentItem] = []
    with atomic(repo.session):
        if category is not None:
            _ensure_category_exists(repo.session, category)
        for item in repo.get_items(ids, for_update=True):
            old_values = item.snapshot()
            if action == BATCH_ARCHIVE:
                repo.soft_delete(item)
            elif action == BATCH_UPDATE_PRIORITY:
                item.priority = priority
            else:
                item.category = category
            new_values = item.snapshot()
            changed = diff_fields(old_values, new_values)
            if not changed:
                continue
            repo.upsert_item(item)
            audit.record(
                table_name=ITEMS_TABLE,
                record_id=item.id,
                action=AUDIT_DELETE if action == BATCH_ARCHIVE else AUDIT_UPDATE,
                old_values=old_values,
                new_values=new_values,
                changed_fields=changed,
                actor=actor,
                reason=reason or f"batch {action} of {len(ids)} items",
            )
            changed_items.append(item)
    log.info("Batch %s touched %s of %s items", action, len(changed_items), len(ids))
    return changed_items


# =============================================================================
# SWEEPS AND SUMMARIES
# =============================================================================

def refresh_overdue(
    *,
    today: Optional[date] = None,
    actor: Optional[str] = None,
    repo: Optional[ItemRepository] = None,
    audit: Optional[AuditRecorder] = None,
) -> list[PaymentItem]:
    """
    Re-derive status for every open item against today.

    Marks newly overdue items and reverts items whose due date moved back
    into the future. Returns the items that changed.
    """
    today = today or business_today()
    repo, audit = _collaborators(repo, audit)
    changed_items: list[PaymentItem] = []
    with atomic(repo.session):
        for item in repo.list_items_by_scope(ItemFilters(exclude_paid=True)):
            new_status = item_status(item, today)
            if new_status == item.status:
                continue
            old_values = {"status": item.status}
            item.status = new_status
            repo.upsert_item(item)
            audit.record(
                table_name=ITEMS_TABLE,
                record_id=item.id,
                action=AUDIT_UPDATE,
                old_values=old_values,
                new_values={"status": new_status},
                actor=actor,
                reason=f"status refresh as of {today.isoformat()}",
            )
            changed_items.append(item)
    log.info("Status refresh as of %s changed %s items", today.isoformat(), len(changed_items))
    return changed_items


def scope_summary(
    scope: ItemScope,
    *,
    today: Optional[date] = None,
    repo: Optional[ItemRepository] = None,
) -> dict:
    """
    Outstanding amounts of a scope bucketed by due month.

    overdue: due before the current month; current_month: due this month;
    future: due after this month.
    """
    today = today or business_today()
    repo = repo or ItemRepository(db.session)
    first_day = month_start(today)
    last_day = month_end(today)

    overdue = current = future = 0
    items = repo.list_items_by_scope(ItemFilters.for_scope(scope))
    for item in items:
        owed = item.owed_cents
        due = item.due_date
        if due < first_day:
            overdue += owed
        elif due <= last_day:
            current += owed
        else:
            future += owed

    return {
        "scope": scope.key,
        "overdue_cents": overdue,
        "current_month_cents": current,
        "future_cents": future,
        "total_outstanding_cents": overdue + current + future,
        "items": [item.to_dict() for item in items],
    }
