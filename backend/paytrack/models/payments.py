from __future__ import annotations

from datetime import date

from ..extensions import db
from paytrack.time_utils import to_utc_z, to_iso_date
from .categories import Category, FixedCategory, FlexibleCategory, category_to_dict


PAYMENT_TYPE_SINGLE = "single"
PAYMENT_TYPE_MONTHLY = "monthly"
PAYMENT_TYPE_INSTALLMENT = "installment"
VALID_PAYMENT_TYPES = (PAYMENT_TYPE_SINGLE, PAYMENT_TYPE_MONTHLY, PAYMENT_TYPE_INSTALLMENT)

STATUS_PENDING = "pending"
STATUS_PARTIAL = "partial"
STATUS_PAID = "paid"
STATUS_OVERDUE = "overdue"
VALID_ITEM_STATUSES = (STATUS_PENDING, STATUS_PARTIAL, STATUS_PAID, STATUS_OVERDUE)


class PaymentItem(db.Model):
    """
    An obligation to pay total_amount_cents, possibly spread over time.

    Scope: exactly one of (category_id) or (fixed_category_id + fixed_sub_option_id),
    exposed as the `category` sum type. Amounts are integer cents.
    """
    __tablename__ = "payment_items"
    __table_args__ = (
        db.CheckConstraint(
            "(category_id IS NULL) <> (fixed_category_id IS NULL)",
            name="ck_payment_items_one_category",
        ),
        db.CheckConstraint(
            "(fixed_category_id IS NULL) = (fixed_sub_option_id IS NULL)",
            name="ck_payment_items_fixed_sub_option",
        ),
        db.CheckConstraint("total_amount_cents > 0", name="ck_payment_items_total_positive"),
        db.CheckConstraint(
            "paid_amount_cents >= 0 AND paid_amount_cents <= total_amount_cents",
            name="ck_payment_items_paid_range",
        ),
        db.Index("ix_payment_items_status_not_deleted", "status", "is_deleted"),
        db.Index("ix_payment_items_project_status", "project_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    category_id = db.Column(db.Integer, db.ForeignKey("debt_categories.id"), nullable=True, index=True)
    fixed_category_id = db.Column(db.Integer, db.ForeignKey("fixed_categories.id"), nullable=True, index=True)
    fixed_sub_option_id = db.Column(db.Integer, db.ForeignKey("fixed_category_sub_options.id"), nullable=True)
    project_id = db.Column(db.Integer, db.ForeignKey("payment_projects.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)

    total_amount_cents = db.Column(db.Integer, nullable=False)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    # single | monthly | installment
    payment_type = db.Column(db.String(20), nullable=False, default=PAYMENT_TYPE_SINGLE)
    start_date = db.Column(db.Date, nullable=False, index=True)
    end_date = db.Column(db.Date, nullable=True)

    # pending | partial | paid | overdue (derived, see item_service.compute_status)
    status = db.Column(db.String(20), nullable=False, default=STATUS_PENDING, index=True)
    priority = db.Column(db.Integer, nullable=False, default=1)
    notes = db.Column(db.Text, nullable=True)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    project = db.relationship("PaymentProject", backref=db.backref("items", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PaymentItem id={self.id} name={self.name!r} status={self.status}>"

    @property
    def category(self) -> Category | None:
        if self.fixed_category_id is not None:
            return FixedCategory(self.fixed_category_id, self.fixed_sub_option_id)
        if self.category_id is not None:
            return FlexibleCategory(self.category_id)
        return None

    @category.setter
    def category(self, value: Category) -> None:
        if isinstance(value, FixedCategory):
            self.category_id = None
            self.fixed_category_id = value.category_id
            self.fixed_sub_option_id = value.sub_option_id
        elif isinstance(value, FlexibleCategory):
            self.category_id = value.category_id
            self.fixed_category_id = None
            self.fixed_sub_option_id = None
        else:
            raise TypeError(f"Unsupported category: {value!r}")

    @property
    def due_date(self) -> date | None:
        """Final due date: end_date when set, otherwise start_date."""
        return self.end_date or self.start_date

    @property
    def owed_cents(self) -> int:
        return self.total_amount_cents - (self.paid_amount_cents or 0)

    def snapshot(self) -> dict:
        """
        JSON-safe copy of the domain fields for audit rows.

        System columns (created_at, updated_at, version_id) are left out so a
        delete/restore round trip compares equal on everything but the flags.
        """
        return {
            "id": self.id,
            "name": self.name,
            "category_id": self.category_id,
            "fixed_category_id": self.fixed_category_id,
            "fixed_sub_option_id": self.fixed_sub_option_id,
            "project_id": self.project_id,
            "total_amount_cents": self.total_amount_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "payment_type": self.payment_type,
            "start_date": to_iso_date(self.start_date),
            "end_date": to_iso_date(self.end_date),
            "status": self.status,
            "priority": self.priority,
            "notes": self.notes,
            "is_deleted": self.is_deleted,
            "deleted_at": to_utc_z(self.deleted_at),
        }

    def to_dict(self) -> dict:
        data = self.snapshot()
        data.update({
            "category": category_to_dict(self.category),
            "owed_cents": self.owed_cents,
            "due_date": to_iso_date(self.due_date),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        })
        return data


class PaymentRecord(db.Model):
    """
    One planned or actual money movement tied to an item.

    Planned rows come from the schedule generator (is_planned=True, period_index set);
    actual rows come from direct payments and allocations.
    """
    __tablename__ = "payment_records"
    __table_args__ = (
        db.Index("ix_payment_records_item_date", "item_id", "payment_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("payment_items.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    payment_date = db.Column(db.Date, nullable=False, index=True)
    # cash | transfer | unified_payment | subcategory_allocation | scheduled ...
    method = db.Column(db.String(50), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    is_planned = db.Column(db.Boolean, nullable=False, default=False)
    period_index = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    item = db.relationship("PaymentItem", backref=db.backref("records", lazy=True))

    def snapshot(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "amount_cents": self.amount_cents,
            "payment_date": to_iso_date(self.payment_date),
            "method": self.method,
            "notes": self.notes,
            "is_planned": self.is_planned,
            "period_index": self.period_index,
        }

    def to_dict(self) -> dict:
        data = self.snapshot()
        data["created_at"] = to_utc_z(self.created_at)
        return data


SCHEDULE_STATUS_SCHEDULED = "scheduled"
SCHEDULE_STATUS_RESCHEDULED = "rescheduled"
SCHEDULE_STATUS_COMPLETED = "completed"
SCHEDULE_STATUS_CANCELLED = "cancelled"


class PaymentSchedule(db.Model):
    """A bookkeeper's plan to pay (part of) an item on a given date."""
    __tablename__ = "payment_schedules"
    __table_args__ = (
        db.Index("ix_payment_schedules_date_status", "scheduled_date", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    payment_item_id = db.Column(db.Integer, db.ForeignKey("payment_items.id"), nullable=False, index=True)

    scheduled_date = db.Column(db.Date, nullable=False, index=True)
    original_due_date = db.Column(db.Date, nullable=True)
    reschedule_count = db.Column(db.Integer, nullable=False, default=0)
    scheduled_amount_cents = db.Column(db.Integer, nullable=False)

    # scheduled | rescheduled | completed | cancelled
    status = db.Column(db.String(20), nullable=False, default=SCHEDULE_STATUS_SCHEDULED)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    item = db.relationship("PaymentItem", backref=db.backref("schedules", lazy=True))

    def snapshot(self) -> dict:
        return {
            "id": self.id,
            "payment_item_id": self.payment_item_id,
            "scheduled_date": to_iso_date(self.scheduled_date),
            "original_due_date": to_iso_date(self.original_due_date),
            "reschedule_count": self.reschedule_count,
            "scheduled_amount_cents": self.scheduled_amount_cents,
            "status": self.status,
            "notes": self.notes,
        }

    def to_dict(self) -> dict:
        data = self.snapshot()
        data["item_name"] = self.item.name if self.item else None
        data["created_at"] = to_utc_z(self.created_at)
        data["updated_at"] = to_utc_z(self.updated_at)
        return data
