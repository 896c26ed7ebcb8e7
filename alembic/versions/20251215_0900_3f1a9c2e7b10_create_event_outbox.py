"""create_event_outbox

Revision ID: 3f1a9c2e7b10
Revises:
Create Date: 2025-12-15 09:00:00.000000

"""
from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '3f1a9c2e7b10'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create event_outbox table for the transactional outbox."""
    op.create_table(
        'event_outbox',
        # Primary key (UUID v7 for time-ordering)
        sa.Column('id', sa.Uuid(), nullable=False),

        # Routing
        sa.Column('topic', sa.String(length=249), nullable=False),
        sa.Column('key', sa.String(length=255), nullable=True),

        # Event identification
        sa.Column('event_type', sa.String(length=255), nullable=False),
        sa.Column('event_version', sa.Integer(), nullable=False, server_default=sa.text('1')),
        sa.Column(
            'payload',
            sa.JSON().with_variant(postgresql.JSONB(), 'postgresql'),
            nullable=False,
        ),

        # Delivery state
        sa.Column(
            'status',
            sa.Enum(
                'PENDING', 'PROCESSING', 'SENT', 'FAILED',
                name='outbox_status',
                native_enum=False,
                length=20,
                create_constraint=True,
            ),
            nullable=False,
            server_default='PENDING',
        ),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column(
            'next_attempt_at',
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text('CURRENT_TIMESTAMP'),
        ),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),

        # Claim lease
        sa.Column('claimed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('claim_token', sa.String(length=64), nullable=True),

        # Timestamps
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),

        sa.PrimaryKeyConstraint('id', name=op.f('pk_event_outbox'))
    )

    op.create_index('ix_event_outbox_status', 'event_outbox', ['status'], unique=False)

    # Due scan: WHERE status = 'PENDING' AND next_attempt_at <= now ORDER BY created_at
    op.create_index(
        'ix_event_outbox_due',
        'event_outbox',
        ['next_attempt_at', 'created_at'],
        unique=False,
        postgresql_where=sa.text("status = 'PENDING'"),
        sqlite_where=sa.text("status = 'PENDING'"),
    )

    # Lease recovery: WHERE status = 'PROCESSING' AND claimed_at <= cutoff
    op.create_index(
        'ix_event_outbox_claimed',
        'event_outbox',
        ['claimed_at'],
        unique=False,
        postgresql_where=sa.text("status = 'PROCESSING'"),
        sqlite_where=sa.text("status = 'PROCESSING'"),
    )


def downgrade() -> None:
    """Drop event_outbox table."""
    op.drop_index('ix_event_outbox_claimed', table_name='event_outbox')
    op.drop_index('ix_event_outbox_due', table_name='event_outbox')
    op.drop_index('ix_event_outbox_status', table_name='event_outbox')
    op.drop_table('event_outbox')
