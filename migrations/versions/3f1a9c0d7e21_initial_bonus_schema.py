"""initial schema: branches, employees, revenue sheets, weekly bonuses

Revision ID: 3f1a9c0d7e21
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c0d7e21'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- identity / RBAC ---
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=50), nullable=False, unique=True),
    )
    op.create_table(
        'permissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=120), nullable=False, unique=True),
        sa.Column('name', sa.String(length=150), nullable=True),
    )
    op.create_table(
        'user_roles',
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True),
    )
    op.create_table(
        'role_permissions',
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('permission_id', sa.Integer(), sa.ForeignKey('permissions.id', ondelete='CASCADE'), primary_key=True),
    )

    # --- masters ---
    op.create_table(
        'branches',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=32), nullable=False, unique=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_table(
        'employees',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('branch_id', sa.Integer(), sa.ForeignKey('branches.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, unique=True),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=160), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('branch_id', 'code', name='uq_employee_branch_code'),
    )
    op.create_index('ix_emp_branch_active', 'employees', ['branch_id', 'is_active'], unique=False)

    # --- revenue sheets ---
    op.create_table(
        'daily_revenues',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('branch_id', sa.Integer(), sa.ForeignKey('branches.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('cash', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('network', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('branch_id', 'date', name='uq_daily_revenue_branch_date'),
    )
    op.create_index('ix_daily_revenue_date', 'daily_revenues', ['date'], unique=False)

    op.create_table(
        'employee_revenues',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('daily_revenue_id', sa.Integer(), sa.ForeignKey('daily_revenues.id', ondelete='CASCADE'), nullable=False),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('cash', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('network', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_employee_revenues_daily_revenue_id', 'employee_revenues', ['daily_revenue_id'], unique=False)
    op.create_index('ix_employee_revenues_employee_id', 'employee_revenues', ['employee_id'], unique=False)

    # --- bonuses ---
    op.create_table(
        'weekly_bonuses',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('branch_id', sa.Integer(), sa.ForeignKey('branches.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('week_number', sa.Integer(), nullable=False),
        sa.Column('week_start', sa.Date(), nullable=False),
        sa.Column('week_end', sa.Date(), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('requested_at', sa.DateTime(), nullable=True),
        sa.Column('requested_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('approved_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('rejected_at', sa.DateTime(), nullable=True),
        sa.Column('rejected_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('paid_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('branch_id', 'year', 'month', 'week_number', name='uq_weekly_bonus_branch_week'),
        sa.CheckConstraint('week_number BETWEEN 1 AND 5', name='ck_weekly_bonus_week_number'),
    )
    op.create_index('ix_weekly_bonus_status', 'weekly_bonuses', ['status'], unique=False)

    op.create_table(
        'bonus_details',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('weekly_bonus_id', sa.Integer(), sa.ForeignKey('weekly_bonuses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('weekly_revenue', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('bonus_tier', sa.String(length=16), nullable=False, server_default='none'),
        sa.Column('bonus_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('is_eligible', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('weekly_bonus_id', 'employee_id', name='uq_bonus_detail_bonus_employee'),
    )
    op.create_index('ix_bonus_details_weekly_bonus_id', 'bonus_details', ['weekly_bonus_id'], unique=False)
    op.create_index('ix_bonus_details_employee_id', 'bonus_details', ['employee_id'], unique=False)

    # no FK on weekly_bonus_id: audit rows outlive the bonus they describe
    op.create_table(
        'bonus_audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('weekly_bonus_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('old_status', sa.String(length=16), nullable=True),
        sa.Column('new_status', sa.String(length=16), nullable=True),
        sa.Column('performed_by', sa.Integer(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('performed_at', sa.DateTime(), nullable=False),
        sa.Column('details', sa.Text(), nullable=True),
    )
    op.create_index('ix_bonus_audit_logs_weekly_bonus_id', 'bonus_audit_logs', ['weekly_bonus_id'], unique=False)
    op.create_index('ix_bonus_audit_logs_performed_at', 'bonus_audit_logs', ['performed_at'], unique=False)


def downgrade() -> None:
    for ix, table in (
        ('ix_bonus_audit_logs_performed_at', 'bonus_audit_logs'),
        ('ix_bonus_audit_logs_weekly_bonus_id', 'bonus_audit_logs'),
        ('ix_bonus_details_employee_id', 'bonus_details'),
        ('ix_bonus_details_weekly_bonus_id', 'bonus_details'),
        ('ix_weekly_bonus_status', 'weekly_bonuses'),
        ('ix_employee_revenues_employee_id', 'employee_revenues'),
        ('ix_employee_revenues_daily_revenue_id', 'employee_revenues'),
        ('ix_daily_revenue_date', 'daily_revenues'),
        ('ix_emp_branch_active', 'employees'),
        ('ix_users_email', 'users'),
    ):
        op.drop_index(ix, table_name=table)
    for table in (
        'bonus_audit_logs', 'bonus_details', 'weekly_bonuses',
        'employee_revenues', 'daily_revenues', 'employees', 'branches',
        'role_permissions', 'user_roles', 'permissions', 'roles', 'users',
    ):
        op.drop_table(table)
