# Overview: Service-layer waterfall allocation of one incoming amount across a scope's open items.

"""
Allocation Engine (waterfall / unified payment)

WHY: A bookkeeper often pays one lump sum against everything owed in a
category or project. The sum is drained into items most-urgent-first until
it runs out; whatever is left is handed back to the caller.

GUARANTEES:
- sum(allocated) + leftover == amount
- no item's paid amount ever exceeds its total
- overdue items drain before due-today items, which drain before future ones

CONCURRENCY:
The whole waterfall for one scope runs under a scope-keyed lock inside one
transaction with the candidate rows selected FOR UPDATE. PaymentItem carries
a version column, so a stale write from another process fails instead of
over-allocating. No retry: the caller sees the failure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from ..models import PaymentItem, PaymentRecord
from ..models.audit import AUDIT_UPDATE
from ..models.payments import STATUS_OVERDUE, STATUS_PAID
from ..repositories import ItemRepository, ItemScope
from ..validation import ValidationError, enforce_rules_amount
from .audit_service import AuditRecorder, diff_fields
from .concurrency import atomic, scope_lock
from .item_service import ITEMS_TABLE, _collaborators, item_status
from paytrack.time_utils import today as business_today


log = logging.getLogger(__name__)

METHOD_SUBCATEGORY_ALLOCATION = "subcategory_allocation"
METHOD_UNIFIED_PAYMENT = "unified_payment"

TIER_OVERDUE = 0
TIER_DUE = 1
TIER_FUTURE = 2


@dataclass(frozen=True)
class AllocationLine:
    item_id: int
    item_name: str
    allocated_cents: int
    is_fully_paid: bool

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "item_name": self.item_name,
            "allocated_cents": self.allocated_cents,
            "is_fully_paid": self.is_fully_paid,
        }


@dataclass
class AllocationResult:
    scope: ItemScope
    method: str
    amount_cents: int
    lines: list[AllocationLine] = field(default_factory=list)
    leftover_cents: int = 0

    @property
    def allocated_cents(self) -> int:
        return sum(line.allocated_cents for line in self.lines)

    def to_dict(self) -> dict:
        return {
            "scope": self.scope.key,
            "method": self.method,
            "amount_cents": self.amount_cents,
            "allocated_cents": self.allocated_cents,
            "leftover_cents": self.leftover_cents,
            "lines": [line.to_dict() for line in self.lines],
        }


def urgency_tier(item: PaymentItem, today: date) -> int:
    if item.status == STATUS_OVERDUE or (item.due_date is not None and item.due_date < today):
        return TIER_OVERDUE
    if item.start_date <= today:
        return TIER_DUE
    return TIER_FUTURE


def urgency_key(item: PaymentItem, today: date) -> tuple:
    """
    Sort key: tier, then start date; priority (higher first) and id only
    break ties between equal dates.
    """
    return (urgency_tier(item, today), item.start_date, -(item.priority or 0), item.id)


def order_by_urgency(items: list[PaymentItem], today: date) -> list[PaymentItem]:
    return sorted(items, key=lambda item: urgency_key(item, today))


def allocation_method(scope: ItemScope) -> str:
    """Category-only scopes are sub-category allocations; anything with a project is a unified payment."""
    return METHOD_SUBCATEGORY_ALLOCATION if scope.project_id is None else METHOD_UNIFIED_PAYMENT


def allocate(
    scope: ItemScope,
    amount_cents: int,
    *,
    payment_date: Optional[date] = None,
    actor: Optional[str] = None,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
    today: Optional[date] = None,
    repo: Optional[ItemRepository] = None,
    audit: Optional[AuditRecorder] = None,
) -> AllocationResult:
    """
    Waterfall-distribute amount_cents across the scope's outstanding items.

    Leftover is a normal result, never an error; no item is created to absorb it.
    """
    if scope is None or scope.is_empty:
        raise ValidationError("Allocation needs a category and/or a project_id")
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool):
        raise ValidationError("amount_cents must be an integer")
    enforce_rules_amount({"amount_cents": amount_cents}, "amount_cents")

    today = today or business_today()
    payment_date = payment_date or today
    repo, audit = _collaborators(repo, audit)
    method = allocation_method(scope)
    result = AllocationResult(scope=scope, method=method, amount_cents=amount_cents)

    with scope_lock(scope.key), atomic(repo.session):
        remaining = amount_cents
        for item in order_by_urgency(repo.lock_items_in_scope(scope), today):
            if remaining <= 0:
                break
            owed = item.owed_cents
            if owed <= 0:
                continue

            allocated = min(remaining, owed)
            old_values = {"paid_amount_cents": item.paid_amount_cents, "status": item.status}
            item.paid_amount_cents = (item.paid_amount_cents or 0) + allocated
            # Status follows compute_status: a late item stays overdue until fully paid.
            item.status = item_status(item, today)
            new_values = {"paid_amount_cents": item.paid_amount_cents, "status": item.status}
            repo.upsert_item(item)

            record = repo.insert_record(
                PaymentRecord(
                    item_id=item.id,
                    amount_cents=allocated,
                    payment_date=payment_date,
                    method=method,
                    notes=notes or f"{method} for {scope.key}",
                    is_planned=False,
                )
            )
            audit.record(
                table_name=ITEMS_TABLE,
                record_id=item.id,
                action=AUDIT_UPDATE,
                old_values=old_values,
                new_values=new_values,
                changed_fields=diff_fields(old_values, new_values),
                actor=actor,
                reason=reason or f"{method}: {allocated} of {amount_cents} (record {record.id})",
            )

            result.lines.append(
                AllocationLine(
                    item_id=item.id,
                    item_name=item.name,
                    allocated_cents=allocated,
                    is_fully_paid=item.status == STATUS_PAID,
                )
            )
            remaining -= allocated

        result.leftover_cents = remaining

    log.info(
        "Allocated %s of %s across %s items in %s (leftover %s)",
        result.allocated_cents, amount_cents, len(result.lines), scope.key, result.leftover_cents,
    )
    return result
