"""Initial schema - tenants, contacts, appointments, reminders, jobs, conversations, KPIs

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18

Portable across PostgreSQL and SQLite (Uuid / JSON types, no extensions).
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TIMESTAMP = sa.DateTime(timezone=True)
JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _org_fk() -> sa.Column:
    return sa.Column(
        'organization_id',
        sa.Uuid(),
        sa.ForeignKey('organizations.id', ondelete='CASCADE'),
        nullable=False,
    )


def _contact_fk() -> sa.Column:
    return sa.Column(
        'contact_id',
        sa.Uuid(),
        sa.ForeignKey('contacts.id', ondelete='SET NULL'),
        nullable=True,
    )


def upgrade() -> None:
    """Create all tables and indexes."""

    # ==========================================================================
    # Organizations & contacts
    # ==========================================================================
    op.create_table(
        'organizations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(100), nullable=False, unique=True),
        sa.Column('timezone', sa.String(64), nullable=False, server_default=sa.text("'UTC'")),
        sa.Column('created_at', TIMESTAMP, nullable=False),
    )

    op.create_table(
        'contacts',
        sa.Column('id', sa.Uuid(), primary_key=True),
        _org_fk(),
        sa.Column('first_name', sa.String(100)),
        sa.Column('last_name', sa.String(100)),
        sa.Column('phone', sa.String(32)),
        sa.Column('email', sa.String(255)),
        sa.Column('created_at', TIMESTAMP, nullable=False),
    )
    op.create_index('idx_contacts_org_created', 'contacts', ['organization_id', 'created_at'])
    op.create_index('idx_contacts_org_phone', 'contacts', ['organization_id', 'phone'])

    # ==========================================================================
    # Appointments & reminder markers
    # ==========================================================================
    op.create_table(
        'appointments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        _org_fk(),
        _contact_fk(),
        sa.Column('starts_at', TIMESTAMP, nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False, server_default=sa.text('30')),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('location', sa.String(255)),
        sa.Column('created_at', TIMESTAMP, nullable=False),
        sa.Column('updated_at', TIMESTAMP, nullable=False),
    )
    op.create_index('idx_appointments_org_starts', 'appointments', ['organization_id', 'starts_at'])
    op.create_index('idx_appointments_status_starts', 'appointments', ['status', 'starts_at'])

    op.create_table(
        'reminder_records',
        sa.Column('id', sa.Uuid(), primary_key=True),
        _org_fk(),
        sa.Column(
            'appointment_id',
            sa.Uuid(),
            sa.ForeignKey('appointments.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('reminder_type', sa.String(10), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('job_id', sa.Uuid()),
        sa.Column('channel', sa.String(10)),
        sa.Column('provider_message_id', sa.String(255)),
        sa.Column('sent_at', TIMESTAMP),
        sa.Column('created_at', TIMESTAMP, nullable=False),
        sa.Column('updated_at', TIMESTAMP, nullable=False),
        sa.UniqueConstraint(
            'appointment_id', 'reminder_type', name='uq_reminder_appointment_type'
        ),
    )
    op.create_index('idx_reminder_records_org', 'reminder_records', ['organization_id', 'created_at'])

    # ==========================================================================
    # Jobs
    # ==========================================================================
    op.create_table(
        'jobs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        _org_fk(),
        sa.Column('job_type', sa.String(50), nullable=False),
        sa.Column('payload', JSON_TYPE, nullable=False),
        sa.Column('run_at', TIMESTAMP, nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('max_attempts', sa.Integer(), nullable=False),
        sa.Column('backoff_strategy', sa.String(20), nullable=False),
        sa.Column('backoff_base_seconds', sa.Float(), nullable=False),
        sa.Column('backoff_factor', sa.Float(), nullable=False),
        sa.Column('backoff_max_seconds', sa.Float(), nullable=False),
        sa.Column('locked_by', sa.String(100)),
        sa.Column('locked_until', TIMESTAMP),
        sa.Column('last_error', sa.Text()),
        sa.Column('last_error_code', sa.String(50)),
        sa.Column('created_at', TIMESTAMP, nullable=False),
        sa.Column('updated_at', TIMESTAMP, nullable=False),
        sa.Column('completed_at', TIMESTAMP),
        sa.Column('dead_at', TIMESTAMP),
        sa.Column('idempotency_key', sa.String(255)),
    )
    op.create_index('idx_jobs_ready', 'jobs', ['status', 'run_at'])
    op.create_index('idx_jobs_org', 'jobs', ['organization_id', 'created_at'])
    op.create_index(
        'uq_job_idempotency',
        'jobs',
        ['idempotency_key'],
        unique=True,
        postgresql_where=sa.text('idempotency_key IS NOT NULL'),
        sqlite_where=sa.text('idempotency_key IS NOT NULL'),
    )

    # ==========================================================================
    # Conversations
    # ==========================================================================
    op.create_table(
        'conversations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        _org_fk(),
        _contact_fk(),
        sa.Column('channel', sa.String(10), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('last_inbound_at', TIMESTAMP),
        sa.Column('last_responded_at', TIMESTAMP),
        sa.Column('created_at', TIMESTAMP, nullable=False),
        sa.Column('updated_at', TIMESTAMP, nullable=False),
    )
    op.create_index(
        'idx_conversations_org_inbound', 'conversations', ['organization_id', 'last_inbound_at']
    )

    op.create_table(
        'messages',
        sa.Column('id', sa.Uuid(), primary_key=True),
        _org_fk(),
        sa.Column(
            'conversation_id',
            sa.Uuid(),
            sa.ForeignKey('conversations.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('direction', sa.String(10), nullable=False),
        sa.Column('channel', sa.String(10), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('provider_message_id', sa.String(255)),
        sa.Column('created_at', TIMESTAMP, nullable=False),
    )
    op.create_index('idx_messages_conversation', 'messages', ['conversation_id', 'created_at'])

    # ==========================================================================
    # Calls, deals & daily snapshots
    # ==========================================================================
    op.create_table(
        'calls',
        sa.Column('id', sa.Uuid(), primary_key=True),
        _org_fk(),
        _contact_fk(),
        sa.Column('started_at', TIMESTAMP, nullable=False),
        sa.Column('duration_seconds', sa.Integer(), nullable=False),
        sa.Column('outcome', sa.String(50)),
    )
    op.create_index('idx_calls_org_started', 'calls', ['organization_id', 'started_at'])

    op.create_table(
        'deals',
        sa.Column('id', sa.Uuid(), primary_key=True),
        _org_fk(),
        _contact_fk(),
        sa.Column('stage', sa.String(20), nullable=False),
        sa.Column('value_cents', sa.BigInteger(), nullable=False),
        sa.Column('closed_at', TIMESTAMP),
        sa.Column('created_at', TIMESTAMP, nullable=False),
    )
    op.create_index('idx_deals_org_closed', 'deals', ['organization_id', 'closed_at'])

    op.create_table(
        'daily_snapshots',
        sa.Column('id', sa.Uuid(), primary_key=True),
        _org_fk(),
        sa.Column('snapshot_date', sa.Date(), nullable=False),
        sa.Column('calls', sa.Integer(), nullable=False),
        sa.Column('leads', sa.Integer(), nullable=False),
        sa.Column('bookings', sa.Integer(), nullable=False),
        sa.Column('appointments_held', sa.Integer(), nullable=False),
        sa.Column('no_shows', sa.Integer(), nullable=False),
        sa.Column('show_rate', sa.Float(), nullable=False),
        sa.Column('conversions', sa.Integer(), nullable=False),
        sa.Column('revenue_cents', sa.BigInteger(), nullable=False),
        sa.Column('created_at', TIMESTAMP, nullable=False),
        sa.Column('updated_at', TIMESTAMP, nullable=False),
        sa.UniqueConstraint(
            'organization_id', 'snapshot_date', name='uq_daily_snapshot_org_date'
        ),
    )


def downgrade() -> None:
    """Drop everything created in upgrade()."""
    for table in (
        'daily_snapshots',
        'deals',
        'calls',
        'messages',
        'conversations',
        'jobs',
        'reminder_records',
        'appointments',
        'contacts',
        'organizations',
    ):
        op.drop_table(table)
