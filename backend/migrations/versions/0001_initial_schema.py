"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-01 00:00:00.000000

This migration creates the complete paytrack schema from scratch, including:
- debt_categories / fixed_categories / fixed_category_sub_options: item scopes
- payment_projects: project grouping
- payment_items: obligations (integer cents, optimistic version column)
- payment_records: planned and actual money movements
- payment_schedules: manual planned pay dates
- budget_plans / budget_items: forecast-only entries
- audit_logs: append-only field-level history
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # Scopes: categories and projects
    # ============================================================================
    op.create_table(
        'debt_categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category_type', sa.String(length=20), nullable=False, server_default='project'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'fixed_categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'payment_projects',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('project_type', sa.String(length=50), nullable=False, server_default='general'),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'fixed_category_sub_options',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('fixed_category_id', sa.Integer(), nullable=False),
        sa.Column('project_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['fixed_category_id'], ['fixed_categories.id'], ),
        sa.ForeignKeyConstraint(['project_id'], ['payment_projects.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('fixed_category_id', 'project_id', 'name', name='uq_fixed_sub_options_name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_fixed_category_sub_options_fixed_category_id', 'fixed_category_sub_options', ['fixed_category_id'])
    op.create_index('ix_fixed_category_sub_options_project_id', 'fixed_category_sub_options', ['project_id'])

    # ============================================================================
    # payment_items: obligations
    # ============================================================================
    # WHY the CHECKs: the scope is exactly one flexible category or one fixed
    # category + sub-option, and paid never leaves [0, total].
    op.create_table(
        'payment_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('fixed_category_id', sa.Integer(), nullable=True),
        sa.Column('fixed_sub_option_id', sa.Integer(), nullable=True),
        sa.Column('project_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False),
        sa.Column('paid_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payment_type', sa.String(length=20), nullable=False, server_default='single'),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('(category_id IS NULL) <> (fixed_category_id IS NULL)',
                           name='ck_payment_items_one_category'),
        sa.CheckConstraint('(fixed_category_id IS NULL) = (fixed_sub_option_id IS NULL)',
                           name='ck_payment_items_fixed_sub_option'),
        sa.CheckConstraint('total_amount_cents > 0', name='ck_payment_items_total_positive'),
        sa.CheckConstraint('paid_amount_cents >= 0 AND paid_amount_cents <= total_amount_cents',
                           name='ck_payment_items_paid_range'),
        sa.ForeignKeyConstraint(['category_id'], ['debt_categories.id'], ),
        sa.ForeignKeyConstraint(['fixed_category_id'], ['fixed_categories.id'], ),
        sa.ForeignKeyConstraint(['fixed_sub_option_id'], ['fixed_category_sub_options.id'], ),
        sa.ForeignKeyConstraint(['project_id'], ['payment_projects.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_payment_items_category_id', 'payment_items', ['category_id'])
    op.create_index('ix_payment_items_fixed_category_id', 'payment_items', ['fixed_category_id'])
    op.create_index('ix_payment_items_project_id', 'payment_items', ['project_id'])
    op.create_index('ix_payment_items_start_date', 'payment_items', ['start_date'])
    op.create_index('ix_payment_items_status', 'payment_items', ['status'])
    op.create_index('ix_payment_items_is_deleted', 'payment_items', ['is_deleted'])
    op.create_index('ix_payment_items_status_not_deleted', 'payment_items', ['status', 'is_deleted'])
    op.create_index('ix_payment_items_project_status', 'payment_items', ['project_id', 'status'])

    # ============================================================================
    # payment_records: planned (generated) and actual money movements
    # ============================================================================
    op.create_table(
        'payment_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('method', sa.String(length=50), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_planned', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('period_index', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['item_id'], ['payment_items.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_payment_records_item_id', 'payment_records', ['item_id'])
    op.create_index('ix_payment_records_payment_date', 'payment_records', ['payment_date'])
    op.create_index('ix_payment_records_method', 'payment_records', ['method'])
    op.create_index('ix_payment_records_item_date', 'payment_records', ['item_id', 'payment_date'])

    # ============================================================================
    # payment_schedules: manual planned pay dates
    # ============================================================================
    op.create_table(
        'payment_schedules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('payment_item_id', sa.Integer(), nullable=False),
        sa.Column('scheduled_date', sa.Date(), nullable=False),
        sa.Column('original_due_date', sa.Date(), nullable=True),
        sa.Column('reschedule_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('scheduled_amount_cents', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='scheduled'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['payment_item_id'], ['payment_items.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_payment_schedules_payment_item_id', 'payment_schedules', ['payment_item_id'])
    op.create_index('ix_payment_schedules_scheduled_date', 'payment_schedules', ['scheduled_date'])
    op.create_index('ix_payment_schedules_date_status', 'payment_schedules', ['scheduled_date', 'status'])

    # ============================================================================
    # budget_plans / budget_items: forecast-only entries
    # ============================================================================
    op.create_table(
        'budget_plans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('project_id', sa.Integer(), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('total_budget_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['project_id'], ['payment_projects.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_budget_plans_project_id', 'budget_plans', ['project_id'])
    op.create_index('ix_budget_plans_status', 'budget_plans', ['status'])

    op.create_table(
        'budget_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('budget_plan_id', sa.Integer(), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('fixed_category_id', sa.Integer(), nullable=True),
        sa.Column('fixed_sub_option_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('payment_type', sa.String(length=20), nullable=False, server_default='single'),
        sa.Column('planned_amount_cents', sa.Integer(), nullable=False),
        sa.Column('monthly_amount_cents', sa.Integer(), nullable=True),
        sa.Column('month_count', sa.Integer(), nullable=True),
        sa.Column('installment_count', sa.Integer(), nullable=True),
        sa.Column('installment_amount_cents', sa.Integer(), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('converted_to_payment', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('linked_payment_item_id', sa.Integer(), nullable=True),
        sa.Column('conversion_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('NOT (category_id IS NOT NULL AND fixed_category_id IS NOT NULL)',
                           name='ck_budget_items_one_category'),
        sa.ForeignKeyConstraint(['budget_plan_id'], ['budget_plans.id'], ),
        sa.ForeignKeyConstraint(['category_id'], ['debt_categories.id'], ),
        sa.ForeignKeyConstraint(['fixed_category_id'], ['fixed_categories.id'], ),
        sa.ForeignKeyConstraint(['fixed_sub_option_id'], ['fixed_category_sub_options.id'], ),
        sa.ForeignKeyConstraint(['linked_payment_item_id'], ['payment_items.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_budget_items_budget_plan_id', 'budget_items', ['budget_plan_id'])
    op.create_index('ix_budget_items_payment_type', 'budget_items', ['payment_type'])
    op.create_index('ix_budget_items_converted_to_payment', 'budget_items', ['converted_to_payment'])
    op.create_index('ix_budget_items_linked_payment_item_id', 'budget_items', ['linked_payment_item_id'])

    # ============================================================================
    # audit_logs: append-only history
    # ============================================================================
    # WHY no FK on record_id: history must outlive a permanently purged record.
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('table_name', sa.String(length=64), nullable=False),
        sa.Column('record_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('old_values', sa.JSON(), nullable=True),
        sa.Column('new_values', sa.JSON(), nullable=True),
        sa.Column('changed_fields', sa.JSON(), nullable=False),
        sa.Column('actor', sa.String(length=255), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_table_record', 'audit_logs', ['table_name', 'record_id'])
    op.create_index('ix_audit_logs_created', 'audit_logs', ['created_at'])


def downgrade():
    op.drop_table('audit_logs')
    op.drop_table('budget_items')
    op.drop_table('budget_plans')
    op.drop_table('payment_schedules')
    op.drop_table('payment_records')
    op.drop_table('payment_items')
    op.drop_table('fixed_category_sub_options')
    op.drop_table('payment_projects')
    op.drop_table('fixed_categories')
    op.drop_table('debt_categories')
