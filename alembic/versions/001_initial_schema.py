"""Initial schema for verification cycles, invoicing and payouts

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-09-07 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(*names: str, nullable: bool = True) -> list[sa.Column]:
    return [sa.Column(name, sa.DateTime(timezone=True), nullable=nullable) for name in names]


def upgrade() -> None:
    op.create_table(
        'businesses',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('role', sa.String(20), nullable=False, server_default='BUSINESS'),
        sa.Column('business_id', sa.String(36), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        *_timestamps('updated_at', 'last_login_at'),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_id', 'users', ['id'], unique=False)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_business_id', 'users', ['business_id'], unique=False)

    op.create_table(
        'transactions',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('business_id', sa.String(36), nullable=False),
        sa.Column('phone_number', sa.String(32), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('reward_percentage', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('transaction_date', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_transactions_business_id', 'transactions', ['business_id'], unique=False)
    op.create_index('ix_transactions_transaction_date', 'transactions', ['transaction_date'], unique=False)

    op.create_table(
        'verification_cycles',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('cycle_week', sa.Date(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='preparing'),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('total_businesses', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('prepared_businesses', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        *_timestamps('updated_at', 'completed_at'),
        sa.ForeignKeyConstraint(['created_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_verification_cycles_cycle_week', 'verification_cycles', ['cycle_week'], unique=True)
    op.create_index('ix_verification_cycles_status', 'verification_cycles', ['status'], unique=False)

    op.create_table(
        'preparation_jobs',
        sa.Column('id', sa.String(80), nullable=False),
        sa.Column('cycle_id', sa.String(36), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('databases_created', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        *_timestamps('started_at', 'completed_at'),
        sa.ForeignKeyConstraint(['cycle_id'], ['verification_cycles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_preparation_jobs_cycle_id', 'preparation_jobs', ['cycle_id'], unique=False)

    op.create_table(
        'verification_databases',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('cycle_id', sa.String(36), nullable=False),
        sa.Column('business_id', sa.String(36), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='preparing'),
        sa.Column('transaction_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('verified_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('deadline_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['cycle_id'], ['verification_cycles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('cycle_id', 'business_id', name='uq_verification_database_cycle_business')
    )
    op.create_index('ix_verification_databases_cycle_id', 'verification_databases', ['cycle_id'], unique=False)
    op.create_index('ix_verification_databases_business_id', 'verification_databases', ['business_id'], unique=False)

    op.create_table(
        'verification_records',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('database_id', sa.String(36), nullable=False),
        sa.Column('transaction_id', sa.String(36), nullable=True),
        sa.Column('phone_number', sa.String(32), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('reward_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('transaction_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('verification_status', sa.String(20), nullable=False, server_default='pending'),
        sa.ForeignKeyConstraint(['database_id'], ['verification_databases.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_verification_records_database_id', 'verification_records', ['database_id'], unique=False)

    op.create_table(
        'payment_invoices',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('cycle_id', sa.String(36), nullable=False),
        sa.Column('business_id', sa.String(36), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('total_rewards', sa.Numeric(12, 2), nullable=False),
        sa.Column('admin_fee', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('transaction_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('payment_date', sa.Date(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('feedback_database_delivered', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notification_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_notified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['cycle_id'], ['verification_cycles.id']),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('cycle_id', 'business_id', name='uq_payment_invoice_cycle_business')
    )
    op.create_index('ix_payment_invoices_cycle_id', 'payment_invoices', ['cycle_id'], unique=False)
    op.create_index('ix_payment_invoices_business_id', 'payment_invoices', ['business_id'], unique=False)
    op.create_index('ix_payment_invoices_status', 'payment_invoices', ['status'], unique=False)

    op.create_table(
        'payment_batches',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('cycle_id', sa.String(36), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('reward_batch_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('job_lock_key', sa.String(64), nullable=True),
        sa.Column('lock_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['cycle_id'], ['verification_cycles.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_payment_batches_cycle_id', 'payment_batches', ['cycle_id'], unique=False)

    op.create_table(
        'customer_reward_batches',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('cycle_id', sa.String(36), nullable=False),
        sa.Column('invoice_id', sa.String(36), nullable=False),
        sa.Column('business_id', sa.String(36), nullable=False),
        sa.Column('payment_batch_id', sa.String(36), nullable=True),
        sa.Column('phone_number', sa.String(32), nullable=False),
        sa.Column('total_reward_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('transaction_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('payout_status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('payout_reference', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['cycle_id'], ['verification_cycles.id']),
        sa.ForeignKeyConstraint(['invoice_id'], ['payment_invoices.id']),
        sa.ForeignKeyConstraint(['business_id'], ['businesses.id']),
        sa.ForeignKeyConstraint(['payment_batch_id'], ['payment_batches.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('invoice_id', 'phone_number', name='uq_reward_batch_invoice_phone')
    )
    op.create_index('ix_customer_reward_batches_cycle_id', 'customer_reward_batches', ['cycle_id'], unique=False)
    op.create_index('ix_customer_reward_batches_invoice_id', 'customer_reward_batches', ['invoice_id'], unique=False)
    op.create_index(
        'ix_customer_reward_batches_payment_batch_id', 'customer_reward_batches', ['payment_batch_id'], unique=False
    )

    op.create_table(
        'payment_side_effects',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('invoice_id', sa.String(36), nullable=False),
        sa.Column('kind', sa.String(40), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['invoice_id'], ['payment_invoices.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_payment_side_effects_invoice_id', 'payment_side_effects', ['invoice_id'], unique=False)
    op.create_index('ix_payment_side_effects_status', 'payment_side_effects', ['status'], unique=False)

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('entity_type', sa.String(100), nullable=False),
        sa.Column('entity_id', sa.String(80), nullable=True),
        sa.Column('admin_id', sa.Integer(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'], unique=False)
    op.create_index('ix_audit_logs_entity_type', 'audit_logs', ['entity_type'], unique=False)
    op.create_index('ix_audit_logs_entity_id', 'audit_logs', ['entity_id'], unique=False)
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'], unique=False)

    op.create_table(
        'intrusion_events',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('event_type', sa.String(40), nullable=False),
        sa.Column('source_ip', sa.String(45), nullable=False),
        sa.Column('target_resource', sa.String(255), nullable=True),
        sa.Column('severity_level', sa.Integer(), nullable=False),
        sa.Column('detection_method', sa.String(100), nullable=False),
        sa.Column('incident_status', sa.String(20), nullable=False, server_default='detected'),
        sa.Column('resolution_notes', sa.Text(), nullable=True),
        sa.Column('first_detected_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_intrusion_events_event_type', 'intrusion_events', ['event_type'], unique=False)
    op.create_index('ix_intrusion_events_source_ip', 'intrusion_events', ['source_ip'], unique=False)
    op.create_index('ix_intrusion_events_incident_status', 'intrusion_events', ['incident_status'], unique=False)
    op.create_index('ix_intrusion_events_first_detected_at', 'intrusion_events', ['first_detected_at'], unique=False)


def downgrade() -> None:
    # Indexes go with their tables
    for table in (
        'intrusion_events',
        'audit_logs',
        'payment_side_effects',
        'customer_reward_batches',
        'payment_batches',
        'payment_invoices',
        'verification_records',
        'verification_databases',
        'preparation_jobs',
        'verification_cycles',
        'transactions',
        'users',
        'businesses',
    ):
        op.drop_table(table)
