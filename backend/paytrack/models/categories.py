from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from ..extensions import db
from paytrack.time_utils import to_utc_z


@dataclass(frozen=True)
class FlexibleCategory:
    """User-defined category (debt_categories row)."""
    category_id: int

    @property
    def key(self) -> str:
        return f"flex:{self.category_id}"


@dataclass(frozen=True)
class FixedCategory:
    """Fixed category narrowed to one of its sub-options."""
    category_id: int
    sub_option_id: int

    @property
    def key(self) -> str:
        return f"fixed:{self.category_id}:{self.sub_option_id}"


# An item belongs to exactly one of these.
Category = Union[FlexibleCategory, FixedCategory]


def category_to_dict(category: Category | None) -> dict | None:
    if category is None:
        return None
    if isinstance(category, FixedCategory):
        return {
            "kind": "fixed",
            "fixed_category_id": category.category_id,
            "fixed_sub_option_id": category.sub_option_id,
        }
    return {"kind": "flexible", "category_id": category.category_id}


class DebtCategory(db.Model):
    """Flexible category a bookkeeper creates freely (e.g. 'Contractors')."""
    __tablename__ = "debt_categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    # "project" | "household"
    category_type = db.Column(db.String(20), nullable=False, default="project")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category_type": self.category_type,
            "created_at": to_utc_z(self.created_at),
        }


class FixedExpenseCategory(db.Model):
    """Fixed categories (rent, utilities, insurance ...) with per-project sub-options."""
    __tablename__ = "fixed_categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "created_at": to_utc_z(self.created_at)}


class FixedCategorySubOption(db.Model):
    __tablename__ = "fixed_category_sub_options"
    __table_args__ = (
        db.UniqueConstraint("fixed_category_id", "project_id", "name", name="uq_fixed_sub_options_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    fixed_category_id = db.Column(db.Integer, db.ForeignKey("fixed_categories.id"), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("payment_projects.id"), nullable=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    fixed_category = db.relationship("FixedExpenseCategory", backref=db.backref("sub_options", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "fixed_category_id": self.fixed_category_id,
            "project_id": self.project_id,
            "name": self.name,
            "is_active": self.is_active,
        }


class PaymentProject(db.Model):
    """Project grouping (a rental property, a renovation, a payroll unit)."""
    __tablename__ = "payment_projects"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    project_type = db.Column(db.String(50), nullable=False, default="general")
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "project_type": self.project_type,
            "is_deleted": self.is_deleted,
            "created_at": to_utc_z(self.created_at),
        }
