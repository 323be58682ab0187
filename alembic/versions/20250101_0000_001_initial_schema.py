"""Initial schema - all tables

Revision ID: 001
Revises:
Create Date: 2025-01-01 00:00:00.000000

This migration creates all initial tables for LeaveCore:
- employees: Directory records (eligibility attributes, role, manager)
- leave_types: Leave type master
- toil_rules: Replacement leave (TOIL) rules
- training_courses / training_events: Training catalogue and schedule
- training_allocations: Employee-to-event allocations
- leave_requests / leave_balances: Leave lifecycle and entitlement ledger
- rl_credits: Replacement leave credits (training-issued and claimed)
- audit_log: Append-only change tracking
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from leavecore.config import get_settings

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Get schema from config
settings = get_settings()
SCHEMA = settings.db_schema  # None for the server default schema

NOW = sa.text('CURRENT_TIMESTAMP')


def _ref(target: str) -> str:
    """Schema-qualified FK target."""
    return f'{SCHEMA}.{target}' if SCHEMA else target


def _audit_columns(table: str) -> list:
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=NOW),
        sa.Column('created_by', sa.Integer(), nullable=False),
        sa.Column('modified_at', sa.DateTime(), nullable=True),
        sa.Column('modified_by', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['created_by'], [_ref('employees.employee_id')], name=f'fk_{table}_created_by'),
        sa.ForeignKeyConstraint(['modified_by'], [_ref('employees.employee_id')], name=f'fk_{table}_modified_by'),
    ]


def upgrade() -> None:
    # Create schema if specified and doesn't exist
    if SCHEMA and op.get_bind().dialect.name == 'mssql':
        op.execute(f"IF NOT EXISTS (SELECT * FROM sys.schemas WHERE name = '{SCHEMA}') EXEC('CREATE SCHEMA {SCHEMA}')")

    # Employees table
    op.create_table(
        'employees',
        sa.Column('employee_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('employee_code', sa.String(length=50), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('department', sa.String(length=100), nullable=True),
        sa.Column('grade', sa.String(length=50), nullable=True),
        sa.Column('employment_type', sa.String(length=20), nullable=False, server_default='PERMANENT'),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='employee'),
        sa.Column('manager_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=NOW),
        sa.ForeignKeyConstraint(['manager_id'], [_ref('employees.employee_id')], name='fk_employees_manager'),
        sa.PrimaryKeyConstraint('employee_id'),
        schema=SCHEMA,
    )
    op.create_index('ix_employees_employee_code', 'employees', ['employee_code'], unique=True, schema=SCHEMA)
    op.create_index('ix_employees_department', 'employees', ['department'], schema=SCHEMA)

    # Leave types table
    op.create_table(
        'leave_types',
        sa.Column('leave_type_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('code', sa.String(length=20), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_paid', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('requires_approval', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('requires_document', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('max_days_per_year', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('max_consecutive_days', sa.Integer(), nullable=True),
        sa.Column('min_notice_days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('carry_forward_allowed', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('max_carry_forward_days', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('carry_forward_expiry_months', sa.Integer(), nullable=True),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_audit_columns('leave_types'),
        sa.PrimaryKeyConstraint('leave_type_id'),
        schema=SCHEMA,
    )
    op.create_index('ix_leave_types_code', 'leave_types', ['code'], unique=True, schema=SCHEMA)

    # TOIL rules table
    op.create_table(
        'toil_rules',
        sa.Column('rule_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('rule_code', sa.String(length=50), nullable=False),
        sa.Column('rule_name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('trigger_type', sa.String(length=30), nullable=False),
        sa.Column('credit_type', sa.String(length=10), nullable=False, server_default='FIXED'),
        sa.Column('credit_days', sa.Numeric(precision=5, scale=2), nullable=False, server_default='1'),
        sa.Column('min_hours_required', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('max_days_per_event', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('max_days_per_month', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('max_days_per_year', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('expiry_days', sa.Integer(), nullable=True),
        sa.Column('carry_forward_allowed', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('max_carry_forward_days', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('eligible_departments', sa.JSON(), nullable=True),
        sa.Column('eligible_grades', sa.JSON(), nullable=True),
        sa.Column('eligible_employment_types', sa.JSON(), nullable=True),
        sa.Column('requires_approval', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('effective_from', sa.Date(), nullable=False),
        sa.Column('effective_to', sa.Date(), nullable=True),
        *_audit_columns('toil_rules'),
        sa.PrimaryKeyConstraint('rule_id'),
        schema=SCHEMA,
    )
    op.create_index('ix_toil_rules_rule_code', 'toil_rules', ['rule_code'], unique=True, schema=SCHEMA)
    op.create_index('ix_toil_rules_trigger_active', 'toil_rules', ['trigger_type', 'is_active'], schema=SCHEMA)

    # Training courses table
    op.create_table(
        'training_courses',
        sa.Column('course_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('code', sa.String(length=50), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('category', sa.String(length=100), nullable=True),
        sa.Column('duration_hours', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('is_mandatory', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('rl_eligible', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('rl_rule_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_audit_columns('training_courses'),
        sa.ForeignKeyConstraint(['rl_rule_id'], [_ref('toil_rules.rule_id')], name='fk_training_courses_rule'),
        sa.PrimaryKeyConstraint('course_id'),
        schema=SCHEMA,
    )
    op.create_index('ix_training_courses_code', 'training_courses', ['code'], unique=True, schema=SCHEMA)

    # Training events table
    op.create_table(
        'training_events',
        sa.Column('event_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('course_id', sa.Integer(), nullable=False),
        sa.Column('event_date', sa.Date(), nullable=False),
        sa.Column('event_end_date', sa.Date(), nullable=True),
        sa.Column('location', sa.String(length=200), nullable=True),
        sa.Column('day_type', sa.String(length=20), nullable=False),
        sa.Column('rl_eligible', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='SCHEDULED'),
        sa.Column('max_participants', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_audit_columns('training_events'),
        sa.ForeignKeyConstraint(['course_id'], [_ref('training_courses.course_id')], name='fk_training_events_course'),
        sa.CheckConstraint("rl_eligible = 0 OR day_type <> 'WORKING_DAY'", name='ck_training_events_rl_day_type'),
        sa.PrimaryKeyConstraint('event_id'),
        schema=SCHEMA,
    )
    op.create_index('ix_training_events_date', 'training_events', ['event_date'], schema=SCHEMA)
    op.create_index('ix_training_events_course_id', 'training_events', ['course_id'], schema=SCHEMA)

    # Training allocations table
    op.create_table(
        'training_allocations',
        sa.Column('allocation_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('event_id', sa.Integer(), nullable=False),
        sa.Column('employee_id', sa.Integer(), nullable=False),
        sa.Column('allocated_by', sa.Integer(), nullable=False),
        sa.Column('allocated_at', sa.DateTime(), nullable=False, server_default=NOW),
        sa.Column('rl_eligible', sa.Boolean(), nullable=False),
        sa.Column('attendance_status', sa.String(length=20), nullable=False, server_default='PENDING'),
        sa.Column('hours_attended', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('attendance_marked_by', sa.Integer(), nullable=True),
        sa.Column('attendance_marked_at', sa.DateTime(), nullable=True),
        sa.Column('completion_status', sa.String(length=20), nullable=False, server_default='PENDING'),
        sa.Column('completion_confirmed_by', sa.Integer(), nullable=True),
        sa.Column('completion_confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('completion_notes', sa.Text(), nullable=True),
        sa.Column('rl_credit_id', sa.Integer(), nullable=True),
        sa.Column('rl_credited_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['event_id'], [_ref('training_events.event_id')], name='fk_training_allocations_event'),
        sa.ForeignKeyConstraint(['employee_id'], [_ref('employees.employee_id')], name='fk_training_allocations_employee'),
        sa.ForeignKeyConstraint(['allocated_by'], [_ref('employees.employee_id')], name='fk_training_allocations_allocated_by'),
        sa.ForeignKeyConstraint(['attendance_marked_by'], [_ref('employees.employee_id')], name='fk_training_allocations_marked_by'),
        sa.ForeignKeyConstraint(['completion_confirmed_by'], [_ref('employees.employee_id')], name='fk_training_allocations_confirmed_by'),
        sa.UniqueConstraint('event_id', 'employee_id', name='uq_allocation_event_employee'),
        sa.PrimaryKeyConstraint('allocation_id'),
        schema=SCHEMA,
    )
    op.create_index('ix_training_allocations_employee', 'training_allocations', ['employee_id'], schema=SCHEMA)
    op.create_index('ix_training_allocations_event_id', 'training_allocations', ['event_id'], schema=SCHEMA)

    # Leave requests table
    op.create_table(
        'leave_requests',
        sa.Column('request_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('employee_id', sa.Integer(), nullable=False),
        sa.Column('leave_type_id', sa.Integer(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('half_day_start', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('half_day_end', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('days_requested', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('document_reference', sa.String(length=500), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING'),
        sa.Column('current_approver_id', sa.Integer(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(), nullable=False, server_default=NOW),
        sa.Column('decided_by', sa.Integer(), nullable=True),
        sa.Column('decided_at', sa.DateTime(), nullable=True),
        sa.Column('decision_notes', sa.Text(), nullable=True),
        sa.Column('is_override', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['employee_id'], [_ref('employees.employee_id')], name='fk_leave_requests_employee'),
        sa.ForeignKeyConstraint(['leave_type_id'], [_ref('leave_types.leave_type_id')], name='fk_leave_requests_leave_type'),
        sa.ForeignKeyConstraint(['current_approver_id'], [_ref('employees.employee_id')], name='fk_leave_requests_approver'),
        sa.ForeignKeyConstraint(['decided_by'], [_ref('employees.employee_id')], name='fk_leave_requests_decided_by'),
        sa.CheckConstraint('start_date <= end_date', name='ck_leave_requests_dates'),
        sa.PrimaryKeyConstraint('request_id'),
        schema=SCHEMA,
    )
    op.create_index('ix_leave_requests_employee_dates', 'leave_requests', ['employee_id', 'start_date', 'end_date'], schema=SCHEMA)
    op.create_index('ix_leave_requests_status_submitted', 'leave_requests', ['status', 'submitted_at'], schema=SCHEMA)
    op.create_index('ix_leave_requests_employee_id', 'leave_requests', ['employee_id'], schema=SCHEMA)

    # Leave balances table
    op.create_table(
        'leave_balances',
        sa.Column('balance_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('employee_id', sa.Integer(), nullable=False),
        sa.Column('leave_type_id', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('allocated_days', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        sa.Column('carry_forward_days', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        sa.Column('taken_days', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=NOW),
        sa.Column('modified_at', sa.DateTime(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['employee_id'], [_ref('employees.employee_id')], name='fk_leave_balances_employee'),
        sa.ForeignKeyConstraint(['leave_type_id'], [_ref('leave_types.leave_type_id')], name='fk_leave_balances_leave_type'),
        sa.UniqueConstraint('employee_id', 'leave_type_id', 'year', name='uq_leave_balance_employee_type_year'),
        sa.PrimaryKeyConstraint('balance_id'),
        schema=SCHEMA,
    )
    op.create_index('ix_leave_balances_employee_id', 'leave_balances', ['employee_id'], schema=SCHEMA)

    # RL credits table
    op.create_table(
        'rl_credits',
        sa.Column('credit_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('employee_id', sa.Integer(), nullable=False),
        sa.Column('source_allocation_id', sa.Integer(), nullable=True),
        sa.Column('claim_reference', sa.String(length=100), nullable=True),
        sa.Column('rule_id', sa.Integer(), nullable=False),
        sa.Column('trigger_type', sa.String(length=30), nullable=False),
        sa.Column('trigger_date', sa.Date(), nullable=False),
        sa.Column('trigger_description', sa.Text(), nullable=True),
        sa.Column('hours_worked', sa.Numeric(precision=5, scale=2), nullable=True),
        sa.Column('days_credited', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('days_used', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        sa.Column('calculation_notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='APPROVED'),
        sa.Column('issued_at', sa.DateTime(), nullable=False, server_default=NOW),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('issued_by', sa.Integer(), nullable=False),
        sa.Column('decided_by', sa.Integer(), nullable=True),
        sa.Column('decided_at', sa.DateTime(), nullable=True),
        sa.Column('decision_notes', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['employee_id'], [_ref('employees.employee_id')], name='fk_rl_credits_employee'),
        sa.ForeignKeyConstraint(['source_allocation_id'], [_ref('training_allocations.allocation_id')], name='fk_rl_credits_allocation'),
        sa.ForeignKeyConstraint(['rule_id'], [_ref('toil_rules.rule_id')], name='fk_rl_credits_rule'),
        sa.ForeignKeyConstraint(['issued_by'], [_ref('employees.employee_id')], name='fk_rl_credits_issued_by'),
        sa.ForeignKeyConstraint(['decided_by'], [_ref('employees.employee_id')], name='fk_rl_credits_decided_by'),
        sa.CheckConstraint('days_used <= days_credited', name='ck_rl_credits_days_used'),
        sa.CheckConstraint('source_allocation_id IS NOT NULL OR claim_reference IS NOT NULL', name='ck_rl_credits_source'),
        sa.PrimaryKeyConstraint('credit_id'),
        schema=SCHEMA,
    )
    op.create_index('ix_rl_credits_employee_expiry', 'rl_credits', ['employee_id', 'expires_at'], schema=SCHEMA)
    op.create_index('ix_rl_credits_rule_trigger_date', 'rl_credits', ['rule_id', 'trigger_date'], schema=SCHEMA)
    op.create_index('ix_rl_credits_employee_id', 'rl_credits', ['employee_id'], schema=SCHEMA)
    # Filtered unique indexes: SQL Server treats NULLs as equal in plain UNIQUE constraints
    op.create_index(
        'uq_rl_credits_source_allocation', 'rl_credits', ['source_allocation_id'],
        unique=True, mssql_where=sa.text('source_allocation_id IS NOT NULL'), schema=SCHEMA,
    )
    op.create_index(
        'uq_rl_credits_employee_claim', 'rl_credits', ['employee_id', 'claim_reference'],
        unique=True, mssql_where=sa.text('claim_reference IS NOT NULL'), schema=SCHEMA,
    )

    # Audit log table
    op.create_table(
        'audit_log',
        sa.Column('audit_id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('action', sa.String(length=20), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('record_id', sa.Integer(), nullable=False),
        sa.Column('performed_by', sa.Integer(), nullable=False),
        sa.Column('target_employee_id', sa.Integer(), nullable=True),
        sa.Column('leave_request_id', sa.Integer(), nullable=True),
        sa.Column('allocation_id', sa.Integer(), nullable=True),
        sa.Column('leave_type_code', sa.String(length=20), nullable=True),
        sa.Column('rule_code', sa.String(length=50), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('changed_fields', sa.String(length=500), nullable=True),
        sa.Column('old_values', sa.Text(), nullable=True),
        sa.Column('new_values', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('performed_at', sa.DateTime(), nullable=False, server_default=NOW),
        sa.ForeignKeyConstraint(['performed_by'], [_ref('employees.employee_id')], name='fk_audit_log_performed_by'),
        sa.ForeignKeyConstraint(['target_employee_id'], [_ref('employees.employee_id')], name='fk_audit_log_target_employee'),
        sa.PrimaryKeyConstraint('audit_id'),
        schema=SCHEMA,
    )
    op.create_index('ix_audit_log_action', 'audit_log', ['action'], schema=SCHEMA)
    op.create_index('ix_audit_log_record_id', 'audit_log', ['record_id'], schema=SCHEMA)
    op.create_index('ix_audit_log_performed_by', 'audit_log', ['performed_by'], schema=SCHEMA)
    op.create_index('ix_audit_log_target_employee_id', 'audit_log', ['target_employee_id'], schema=SCHEMA)
    op.create_index('ix_audit_log_performed_at', 'audit_log', ['performed_at'], schema=SCHEMA)


def downgrade() -> None:
    op.drop_table('audit_log', schema=SCHEMA)
    op.drop_table('rl_credits', schema=SCHEMA)
    op.drop_table('leave_balances', schema=SCHEMA)
    op.drop_table('leave_requests', schema=SCHEMA)
    op.drop_table('training_allocations', schema=SCHEMA)
    op.drop_table('training_events', schema=SCHEMA)
    op.drop_table('training_courses', schema=SCHEMA)
    op.drop_table('toil_rules', schema=SCHEMA)
    op.drop_table('leave_types', schema=SCHEMA)
    op.drop_table('employees', schema=SCHEMA)
