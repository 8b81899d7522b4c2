# Overview: Item Store repository; typed session access for payment items and their records.

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from ..extensions import db
from ..models import (
    BudgetItem,
    Category,
    FixedCategory,
    FlexibleCategory,
    PaymentItem,
    PaymentRecord,
    PaymentSchedule,
)
from ..models.payments import STATUS_PAID
from ..services.concurrency import lock_for_update
from ..validation import NotFoundError
from paytrack.time_utils import utcnow


@dataclass(frozen=True)
class ItemScope:
    """
    Group of items paid together: a category, a project, or both.
    """
    category: Optional[Category] = None
    project_id: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return self.category is None and self.project_id is None

    @property
    def key(self) -> str:
        parts = []
        if self.category is not None:
            parts.append(self.category.key)
        if self.project_id is not None:
            parts.append(f"project:{self.project_id}")
        return "|".join(parts) or "all"


@dataclass(frozen=True)
class ItemFilters:
    category: Optional[Category] = None
    project_id: Optional[int] = None
    statuses: Optional[tuple[str, ...]] = None
    exclude_paid: bool = False
    include_deleted: bool = False
    deleted_only: bool = False

    @classmethod
    def for_scope(cls, scope: ItemScope, *, exclude_paid: bool = True) -> "ItemFilters":
        return cls(category=scope.category, project_id=scope.project_id, exclude_paid=exclude_paid)


def _apply_category(query, category: Optional[Category]):
    if isinstance(category, FixedCategory):
        return query.filter(
            PaymentItem.fixed_category_id == category.category_id,
            PaymentItem.fixed_sub_option_id == category.sub_option_id,
        )
    if isinstance(category, FlexibleCategory):
        return query.filter(PaymentItem.category_id == category.category_id)
    return query


class ItemRepository:
    """
    Session-bound access to payment items.

    Methods flush but never commit; the calling service owns the transaction.
    """

    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_item(self, item_id: int, *, include_deleted: bool = False, for_update: bool = False) -> PaymentItem:
        query = self.session.query(PaymentItem).filter(PaymentItem.id == item_id)
        if for_update:
            query = lock_for_update(query)
        item = query.first()
        if item is None or (item.is_deleted and not include_deleted):
            raise NotFoundError(f"Payment item {item_id} not found")
        return item

    def _filtered(self, filters: ItemFilters):
        query = self.session.query(PaymentItem)
        query = _apply_category(query, filters.category)
        if filters.project_id is not None:
            query = query.filter(PaymentItem.project_id == filters.project_id)
        if filters.statuses:
            query = query.filter(PaymentItem.status.in_(filters.statuses))
        if filters.exclude_paid:
            query = query.filter(PaymentItem.status != STATUS_PAID)
        if filters.deleted_only:
            query = query.filter(PaymentItem.is_deleted.is_(True))
        elif not filters.include_deleted:
            query = query.filter(PaymentItem.is_deleted.is_(False))
        return query

    def list_items_by_scope(self, filters: ItemFilters) -> list[PaymentItem]:
        return (
            self._filtered(filters)
            .order_by(PaymentItem.start_date.asc(), PaymentItem.id.asc())
            .all()
        )

    def list_deleted_items(self) -> list[PaymentItem]:
        return (
            self.session.query(PaymentItem)
            .filter(PaymentItem.is_deleted.is_(True))
            .order_by(PaymentItem.deleted_at.desc(), PaymentItem.id.desc())
            .all()
        )

    def lock_items_in_scope(self, scope: ItemScope) -> list[PaymentItem]:
        """
        Outstanding items of a scope with row locks held until commit.

        NOTE: SQLite ignores FOR UPDATE; allocation also holds a scope lock.
        """
        query = self._filtered(ItemFilters.for_scope(scope)).order_by(PaymentItem.id.asc())
        return lock_for_update(query).all()

    def get_items(self, item_ids: Iterable[int], *, for_update: bool = False) -> list[PaymentItem]:
        """Live items by id, in id order; any missing or deleted id is a NotFoundError."""
        wanted = sorted(set(item_ids))
        query = self.session.query(PaymentItem).filter(
            PaymentItem.id.in_(wanted), PaymentItem.is_deleted.is_(False)
        )
        if for_update:
            query = lock_for_update(query)
        items = query.order_by(PaymentItem.id.asc()).all()
        missing = sorted(set(wanted) - {item.id for item in items})
        if missing:
            raise NotFoundError(f"Payment items not found: {', '.join(str(i) for i in missing)}")
        return items

    def get_record(self, record_id: int, *, for_update: bool = False) -> PaymentRecord:
        query = self.session.query(PaymentRecord).filter(PaymentRecord.id == record_id)
        if for_update:
            query = lock_for_update(query)
        record = query.first()
        if record is None:
            raise NotFoundError(f"Payment record {record_id} not found")
        return record

    def actual_paid_cents(self, item_id: int) -> int:
        """Sum of actual (non-planned) records; the source of truth for paid_amount_cents."""
        total = (
            self.session.query(db.func.coalesce(db.func.sum(PaymentRecord.amount_cents), 0))
            .filter(PaymentRecord.item_id == item_id, PaymentRecord.is_planned.is_(False))
            .scalar()
        )
        return int(total or 0)

    def records_for_item(self, item_id: int, *, planned: Optional[bool] = None) -> list[PaymentRecord]:
        query = self.session.query(PaymentRecord).filter(PaymentRecord.item_id == item_id)
        if planned is not None:
            query = query.filter(PaymentRecord.is_planned.is_(planned))
        return query.order_by(PaymentRecord.payment_date.asc(), PaymentRecord.id.asc()).all()

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def upsert_item(self, item: PaymentItem) -> PaymentItem:
        self.session.add(item)
        self.session.flush()
        return item

    def insert_record(self, record: PaymentRecord) -> PaymentRecord:
        self.session.add(record)
        self.session.flush()
        return record

    def insert_records(self, records: Iterable[PaymentRecord]) -> list[PaymentRecord]:
        records = list(records)
        self.session.add_all(records)
        self.session.flush()
        return records

    def delete_record(self, record: PaymentRecord) -> None:
        self.session.delete(record)
        self.session.flush()

    def delete_planned_records(self, item: PaymentItem) -> int:
        removed = (
            self.session.query(PaymentRecord)
            .filter(PaymentRecord.item_id == item.id, PaymentRecord.is_planned.is_(True))
            .delete(synchronize_session="fetch")
        )
        self.session.expire(item, ["records"])
        self.session.flush()
        return removed

    def soft_delete(self, item: PaymentItem) -> PaymentItem:
        item.is_deleted = True
        item.deleted_at = utcnow()
        self.session.flush()
        return item

    def restore(self, item: PaymentItem) -> PaymentItem:
        item.is_deleted = False
        item.deleted_at = None
        self.session.flush()
        return item

    def purge(self, item: PaymentItem) -> int:
        """
        Remove the item with its records and schedules.

        Budget items that were converted into it keep their flag but lose the link.
        Returns the number of payment records removed.
        """
        item_id = item.id
        removed = (
            self.session.query(PaymentRecord)
            .filter(PaymentRecord.item_id == item_id)
            .delete(synchronize_session=False)
        )
        self.session.query(PaymentSchedule).filter(
            PaymentSchedule.payment_item_id == item_id
        ).delete(synchronize_session=False)
        self.session.query(BudgetItem).filter(
            BudgetItem.linked_payment_item_id == item_id
        ).update({BudgetItem.linked_payment_item_id: None}, synchronize_session=False)

        # Bulk deletes bypass the identity map; drop stale collections first.
        self.session.expire(item, ["records", "schedules"])
        self.session.delete(item)
        self.session.flush()
        return removed
