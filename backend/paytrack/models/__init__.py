from .categories import (
    Category, FlexibleCategory, FixedCategory, category_to_dict,
    DebtCategory, FixedExpenseCategory, FixedCategorySubOption, PaymentProject,
)
from .payments import PaymentItem, PaymentRecord, PaymentSchedule
from .budget import BudgetPlan, BudgetItem
from .audit import AuditLog, AuditImmutableError

__all__ = [
    'Category', 'FlexibleCategory', 'FixedCategory', 'category_to_dict',
    'DebtCategory', 'FixedExpenseCategory', 'FixedCategorySubOption', 'PaymentProject',
    'PaymentItem', 'PaymentRecord', 'PaymentSchedule',
    'BudgetPlan', 'BudgetItem',
    'AuditLog', 'AuditImmutableError',
]
