"""initial_billing_schema

Revision ID: 0b6f2c9d4e1a
Revises:
Create Date: 2026-01-02 09:14:05.311842

Creates the enrolment billing schema:
- Families, students and staff/parent users
- Levels, class templates, holidays and single-class cancellations
- Plans, enrolments, extra class assignments and coverage audits
- Invoices, payments and allocations
- Credit ledger and away periods with their impacts
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0b6f2c9d4e1a'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create the billing tables."""
    op.create_table(
        'families',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(20), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'students',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('family_id', sa.String(36), sa.ForeignKey('families.id', ondelete='CASCADE'), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_students_family_id', 'students', ['family_id'])

    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('role', sa.Enum('owner', 'admin', 'parent', name='role'), nullable=False),
        sa.Column('family_id', sa.String(36), sa.ForeignKey('families.id', ondelete='SET NULL'), nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'levels',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        'class_templates',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('level_id', sa.String(36), sa.ForeignKey('levels.id', ondelete='SET NULL'), nullable=True),
        sa.Column('day_of_week', sa.Integer, nullable=True),
        sa.Column('start_date', sa.Date, nullable=True),
        sa.Column('end_date', sa.Date, nullable=True),
        sa.Column('start_minutes', sa.Integer, nullable=True),
        sa.Column('end_minutes', sa.Integer, nullable=True),
        sa.Column('capacity', sa.Integer, nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_class_templates_level_id', 'class_templates', ['level_id'])

    op.create_table(
        'holidays',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('start_date', sa.Date, nullable=False),
        sa.Column('end_date', sa.Date, nullable=False),
        sa.Column('template_id', sa.String(36), sa.ForeignKey('class_templates.id', ondelete='CASCADE'), nullable=True),
        sa.Column('level_id', sa.String(36), sa.ForeignKey('levels.id', ondelete='CASCADE'), nullable=True),
        sa.Column('note', sa.Text, nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_holidays_start_date', 'holidays', ['start_date'])
    op.create_index('ix_holidays_end_date', 'holidays', ['end_date'])

    op.create_table(
        'class_cancellations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('template_id', sa.String(36), sa.ForeignKey('class_templates.id', ondelete='CASCADE'), nullable=False),
        sa.Column('cancelled_on', sa.Date, nullable=False),
        sa.Column('reason', sa.Text, nullable=True),
        sa.Column('created_by_id', sa.String(36), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('template_id', 'cancelled_on', name='uq_class_cancellations_template_day'),
    )

    op.create_table(
        'enrolment_plans',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('billing_type', sa.Enum('PER_WEEK', 'PER_CLASS', name='billingtype'), nullable=False),
        sa.Column('price_cents', sa.Integer, nullable=False),
        sa.Column('duration_weeks', sa.Integer, nullable=True),
        sa.Column('block_class_count', sa.Integer, nullable=True),
        sa.Column('sessions_per_week', sa.Integer, nullable=True),
        sa.Column('level_id', sa.String(36), sa.ForeignKey('levels.id', ondelete='SET NULL'), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        'enrolments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('student_id', sa.String(36), sa.ForeignKey('students.id', ondelete='CASCADE'), nullable=False),
        sa.Column('plan_id', sa.String(36), sa.ForeignKey('enrolment_plans.id'), nullable=True),
        sa.Column('template_id', sa.String(36), sa.ForeignKey('class_templates.id'), nullable=True),
        sa.Column(
            'status',
            sa.Enum('ACTIVE', 'PAUSED', 'CHANGEOVER', 'CANCELLED', name='enrolmentstatus'),
            nullable=False,
        ),
        sa.Column('start_date', sa.Date, nullable=False),
        sa.Column('end_date', sa.Date, nullable=True),
        sa.Column('paid_through_date', sa.Date, nullable=True),
        sa.Column('credits_remaining', sa.Integer, nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_enrolments_student_id', 'enrolments', ['student_id'])
    op.create_index('ix_enrolments_plan_id', 'enrolments', ['plan_id'])
    op.create_index('ix_enrolments_template_id', 'enrolments', ['template_id'])

    op.create_table(
        'enrolment_class_assignments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('enrolment_id', sa.String(36), sa.ForeignKey('enrolments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('template_id', sa.String(36), sa.ForeignKey('class_templates.id'), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('enrolment_id', 'template_id', name='uq_enrolment_class_assignments_pair'),
    )
    op.create_index('ix_enrolment_class_assignments_enrolment_id', 'enrolment_class_assignments', ['enrolment_id'])

    op.create_table(
        'enrolment_coverage_audits',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('enrolment_id', sa.String(36), sa.ForeignKey('enrolments.id', ondelete='CASCADE'), nullable=False),
        sa.Column(
            'reason',
            sa.Enum(
                'HOLIDAY_ADDED', 'HOLIDAY_REMOVED', 'HOLIDAY_UPDATED', 'CLASS_CHANGED',
                'CLASS_CANCELLED', 'CLASS_RESTORED', 'AWAY_APPLIED', 'AWAY_REVERTED',
                'PAIDTHROUGH_MANUAL_EDIT', 'INVOICE_APPLIED', 'PAYMENT_UNDONE',
                name='coverageauditreason'
            ),
            nullable=False,
        ),
        sa.Column('previous_paid_through_date', sa.Date, nullable=True),
        sa.Column('next_paid_through_date', sa.Date, nullable=True),
        sa.Column('actor_id', sa.String(36), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_enrolment_coverage_audits_enrolment_id', 'enrolment_coverage_audits', ['enrolment_id'])

    op.create_table(
        'invoices',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('family_id', sa.String(36), sa.ForeignKey('families.id', ondelete='CASCADE'), nullable=False),
        sa.Column('enrolment_id', sa.String(36), sa.ForeignKey('enrolments.id', ondelete='SET NULL'), nullable=True),
        sa.Column(
            'status',
            sa.Enum('DRAFT', 'SENT', 'PARTIALLY_PAID', 'PAID', 'OVERDUE', 'VOID', name='invoicestatus'),
            nullable=False,
        ),
        sa.Column('amount_cents', sa.Integer, nullable=False),
        sa.Column('amount_paid_cents', sa.Integer, nullable=False),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('due_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('coverage_start', sa.Date, nullable=True),
        sa.Column('coverage_end', sa.Date, nullable=True),
        sa.Column('credits_purchased', sa.Integer, nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_invoices_family_id', 'invoices', ['family_id'])
    op.create_index('ix_invoices_enrolment_id', 'invoices', ['enrolment_id'])

    op.create_table(
        'invoice_line_items',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('invoice_id', sa.String(36), sa.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False),
        sa.Column('kind', sa.Enum('ENROLMENT', 'PRODUCT', 'ADJUSTMENT', name='invoicelineitemkind'), nullable=False),
        sa.Column('description', sa.String(500), nullable=False),
        sa.Column('quantity', sa.Integer, nullable=False),
        sa.Column('unit_price_cents', sa.Integer, nullable=False),
        sa.Column('amount_cents', sa.Integer, nullable=False),
        sa.Column('enrolment_id', sa.String(36), sa.ForeignKey('enrolments.id', ondelete='SET NULL'), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_invoice_line_items_invoice_id', 'invoice_line_items', ['invoice_id'])

    op.create_table(
        'payments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('family_id', sa.String(36), sa.ForeignKey('families.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount_cents', sa.Integer, nullable=False),
        sa.Column('status', sa.Enum('COMPLETED', 'VOID', name='paymentstatus'), nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('method', sa.String(50), nullable=True),
        sa.Column('note', sa.Text, nullable=True),
        sa.Column('idempotency_key', sa.String(255), nullable=True),
        sa.Column('reversed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reversal_reason', sa.Text, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('family_id', 'idempotency_key', name='uq_payments_family_idempotency_key'),
    )
    op.create_index('ix_payments_family_id', 'payments', ['family_id'])

    op.create_table(
        'payment_allocations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('payment_id', sa.String(36), sa.ForeignKey('payments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('invoice_id', sa.String(36), sa.ForeignKey('invoices.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount_cents', sa.Integer, nullable=False),
        *_timestamps(),
    )
    op.create_index('ix_payment_allocations_payment_id', 'payment_allocations', ['payment_id'])
    op.create_index('ix_payment_allocations_invoice_id', 'payment_allocations', ['invoice_id'])

    op.create_table(
        'enrolment_credit_events',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('enrolment_id', sa.String(36), sa.ForeignKey('enrolments.id', ondelete='CASCADE'), nullable=False),
        sa.Column(
            'type',
            sa.Enum('PURCHASE', 'CONSUME', 'CANCELLATION_CREDIT', 'MANUAL_ADJUST', name='enrolmentcrediteventtype'),
            nullable=False,
        ),
        sa.Column('credits_delta', sa.Integer, nullable=False),
        sa.Column('occurred_on', sa.Date, nullable=False),
        sa.Column('note', sa.Text, nullable=True),
        sa.Column('invoice_id', sa.String(36), sa.ForeignKey('invoices.id', ondelete='SET NULL'), nullable=True),
        sa.Column('template_id', sa.String(36), sa.ForeignKey('class_templates.id', ondelete='SET NULL'), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_enrolment_credit_events_enrolment_day', 'enrolment_credit_events', ['enrolment_id', 'occurred_on'])
    op.create_index('ix_enrolment_credit_events_invoice_id', 'enrolment_credit_events', ['invoice_id'])

    op.create_table(
        'away_periods',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('family_id', sa.String(36), sa.ForeignKey('families.id', ondelete='CASCADE'), nullable=False),
        sa.Column('student_id', sa.String(36), sa.ForeignKey('students.id', ondelete='CASCADE'), nullable=True),
        sa.Column('start_date', sa.Date, nullable=False),
        sa.Column('end_date', sa.Date, nullable=False),
        sa.Column('note', sa.Text, nullable=True),
        sa.Column('created_by_id', sa.String(36), nullable=True),
        sa.Column('is_deleted', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_away_periods_family_id', 'away_periods', ['family_id'])
    op.create_index('ix_away_periods_is_deleted', 'away_periods', ['is_deleted'])

    op.create_table(
        'away_period_impacts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('away_period_id', sa.String(36), sa.ForeignKey('away_periods.id', ondelete='CASCADE'), nullable=False),
        sa.Column('enrolment_id', sa.String(36), sa.ForeignKey('enrolments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('missed_occurrences', sa.Integer, nullable=False),
        sa.Column('paid_through_delta_days', sa.Integer, nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('away_period_id', 'enrolment_id', name='uq_away_period_impacts_pair'),
    )
    op.create_index('ix_away_period_impacts_enrolment_id', 'away_period_impacts', ['enrolment_id'])


def downgrade() -> None:
    """Drop the billing tables."""
    for table in (
        'away_period_impacts',
        'away_periods',
        'enrolment_credit_events',
        'payment_allocations',
        'payments',
        'invoice_line_items',
        'invoices',
        'enrolment_coverage_audits',
        'enrolment_class_assignments',
        'enrolments',
        'enrolment_plans',
        'class_cancellations',
        'holidays',
        'class_templates',
        'levels',
        'users',
        'students',
        'families',
    ):
        op.drop_table(table)

    for enum_name in (
        'enrolmentcrediteventtype',
        'paymentstatus',
        'invoicelineitemkind',
        'invoicestatus',
        'coverageauditreason',
        'enrolmentstatus',
        'billingtype',
        'role',
    ):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
