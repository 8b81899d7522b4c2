from __future__ import annotations

from ..extensions import db
from paytrack.time_utils import to_utc_z, to_iso_date
from .categories import Category, FixedCategory, FlexibleCategory, category_to_dict


class BudgetPlan(db.Model):
    """
    Forecast-only plan grouping budget items that are not yet real obligations.
    """
    __tablename__ = "budget_plans"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    project_id = db.Column(db.Integer, db.ForeignKey("payment_projects.id"), nullable=True, index=True)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    total_budget_cents = db.Column(db.Integer, nullable=False, default=0)
    # active | closed
    status = db.Column(db.String(20), nullable=False, default="active", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship(
        "BudgetItem",
        backref="plan",
        lazy=True,
        order_by="BudgetItem.id",
    )

    def snapshot(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "project_id": self.project_id,
            "start_date": to_iso_date(self.start_date),
            "end_date": to_iso_date(self.end_date),
            "total_budget_cents": self.total_budget_cents,
            "status": self.status,
        }

    def to_dict(self, include_items: bool = False) -> dict:
        data = self.snapshot()
        data["created_at"] = to_utc_z(self.created_at)
        data["updated_at"] = to_utc_z(self.updated_at)
        if include_items:
            data["items"] = [item.to_dict() for item in self.items if not item.is_deleted]
        return data


class BudgetItem(db.Model):
    """
    One planned expense inside a BudgetPlan.

    Shapes mirror PaymentItem:
    - single: planned_amount_cents due on end_date or start_date
    - monthly: monthly_amount_cents for month_count months
    - installment: planned_amount_cents over installment_count months
    """
    __tablename__ = "budget_items"
    __table_args__ = (
        db.CheckConstraint(
            "NOT (category_id IS NOT NULL AND fixed_category_id IS NOT NULL)",
            name="ck_budget_items_one_category",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    budget_plan_id = db.Column(db.Integer, db.ForeignKey("budget_plans.id"), nullable=False, index=True)

    category_id = db.Column(db.Integer, db.ForeignKey("debt_categories.id"), nullable=True)
    fixed_category_id = db.Column(db.Integer, db.ForeignKey("fixed_categories.id"), nullable=True)
    fixed_sub_option_id = db.Column(db.Integer, db.ForeignKey("fixed_category_sub_options.id"), nullable=True)

    name = db.Column(db.String(255), nullable=False)
    payment_type = db.Column(db.String(20), nullable=False, default="single", index=True)

    planned_amount_cents = db.Column(db.Integer, nullable=False)
    monthly_amount_cents = db.Column(db.Integer, nullable=True)
    month_count = db.Column(db.Integer, nullable=True)
    installment_count = db.Column(db.Integer, nullable=True)
    installment_amount_cents = db.Column(db.Integer, nullable=True)

    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    priority = db.Column(db.Integer, nullable=False, default=1)
    notes = db.Column(db.Text, nullable=True)

    converted_to_payment = db.Column(db.Boolean, nullable=False, default=False, index=True)
    linked_payment_item_id = db.Column(db.Integer, db.ForeignKey("payment_items.id"), nullable=True, index=True)
    conversion_date = db.Column(db.DateTime(timezone=True), nullable=True)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def category(self) -> Category | None:
        if self.fixed_category_id is not None and self.fixed_sub_option_id is not None:
            return FixedCategory(self.fixed_category_id, self.fixed_sub_option_id)
        if self.category_id is not None:
            return FlexibleCategory(self.category_id)
        return None

    def snapshot(self) -> dict:
        return {
            "id": self.id,
            "budget_plan_id": self.budget_plan_id,
            "name": self.name,
            "payment_type": self.payment_type,
            "planned_amount_cents": self.planned_amount_cents,
            "monthly_amount_cents": self.monthly_amount_cents,
            "month_count": self.month_count,
            "installment_count": self.installment_count,
            "installment_amount_cents": self.installment_amount_cents,
            "start_date": to_iso_date(self.start_date),
            "end_date": to_iso_date(self.end_date),
            "priority": self.priority,
            "converted_to_payment": self.converted_to_payment,
            "linked_payment_item_id": self.linked_payment_item_id,
            "is_deleted": self.is_deleted,
        }

    def to_dict(self) -> dict:
        data = self.snapshot()
        data["category"] = category_to_dict(self.category)
        data["notes"] = self.notes
        data["conversion_date"] = to_utc_z(self.conversion_date)
        return data
