"""Seed default data

Revision ID: 002
Revises: 001
Create Date: 2025-01-01 00:01:00.000000

This migration seeds:
- Admin employee (for bootstrap)
- Default leave types (including Replacement Leave)
- Default TOIL rules
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.sql import table, column
from datetime import date, datetime
from decimal import Decimal

from leavecore.config import get_settings
from leavecore.models.leave_type import DEFAULT_LEAVE_TYPES
from leavecore.models.toil_rule import DEFAULT_TOIL_RULES

# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Get schema from config
settings = get_settings()
SCHEMA = settings.db_schema

RULES_EFFECTIVE_FROM = date(2025, 1, 1)


# Define tables for data operations
employees = table(
    'employees',
    column('employee_id', sa.Integer),
    column('employee_code', sa.String),
    column('first_name', sa.String),
    column('last_name', sa.String),
    column('email', sa.String),
    column('employment_type', sa.String),
    column('role', sa.String),
    column('is_active', sa.Boolean),
    column('created_at', sa.DateTime),
    schema=SCHEMA,
)

leave_types = table(
    'leave_types',
    column('code', sa.String),
    column('name', sa.String),
    column('description', sa.Text),
    column('is_paid', sa.Boolean),
    column('requires_approval', sa.Boolean),
    column('requires_document', sa.Boolean),
    column('max_days_per_year', sa.Numeric),
    column('min_notice_days', sa.Integer),
    column('carry_forward_allowed', sa.Boolean),
    column('max_carry_forward_days', sa.Numeric),
    column('sort_order', sa.Integer),
    column('is_active', sa.Boolean),
    column('created_at', sa.DateTime),
    column('created_by', sa.Integer),
    schema=SCHEMA,
)

toil_rules = table(
    'toil_rules',
    column('rule_code', sa.String),
    column('rule_name', sa.String),
    column('description', sa.Text),
    column('trigger_type', sa.String),
    column('credit_type', sa.String),
    column('credit_days', sa.Numeric),
    column('expiry_days', sa.Integer),
    column('carry_forward_allowed', sa.Boolean),
    column('requires_approval', sa.Boolean),
    column('is_active', sa.Boolean),
    column('effective_from', sa.Date),
    column('created_at', sa.DateTime),
    column('created_by', sa.Integer),
    schema=SCHEMA,
)

LEAVE_TYPE_DEFAULTS = {
    'description': None,
    'is_paid': True,
    'requires_approval': True,
    'requires_document': False,
    'max_days_per_year': None,
    'min_notice_days': 0,
    'carry_forward_allowed': False,
    'max_carry_forward_days': None,
    'sort_order': 0,
}

TOIL_RULE_DEFAULTS = {
    'description': None,
    'credit_days': Decimal('1'),
    'expiry_days': None,
    'carry_forward_allowed': False,
    'requires_approval': True,
}


def upgrade() -> None:
    now = datetime.now()

    # Insert admin employee first (ID will be 1)
    op.bulk_insert(
        employees,
        [
            {
                'employee_code': 'ADMIN',
                'first_name': 'System',
                'last_name': 'Administrator',
                'email': None,
                'employment_type': 'PERMANENT',
                'role': 'admin',
                'is_active': True,
                'created_at': now,
            }
        ]
    )

    # Insert default leave types (created_by = 1, the admin)
    op.bulk_insert(
        leave_types,
        [
            {**LEAVE_TYPE_DEFAULTS, **row, 'is_active': True, 'created_at': now, 'created_by': 1}
            for row in DEFAULT_LEAVE_TYPES
        ]
    )

    # Insert default TOIL rules
    op.bulk_insert(
        toil_rules,
        [
            {
                **TOIL_RULE_DEFAULTS,
                **row,
                'is_active': True,
                'effective_from': RULES_EFFECTIVE_FROM,
                'created_at': now,
                'created_by': 1,
            }
            for row in DEFAULT_TOIL_RULES
        ]
    )


def downgrade() -> None:
    # Delete in reverse order of foreign key dependencies
    table_prefix = f"{SCHEMA}." if SCHEMA else ""
    op.execute(f"DELETE FROM {table_prefix}toil_rules")
    op.execute(f"DELETE FROM {table_prefix}leave_types")
    op.execute(f"DELETE FROM {table_prefix}employees WHERE employee_code = 'ADMIN'")
