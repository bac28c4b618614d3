"""Create webhook_events table.

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create webhook_events table."""
    # Payment provider events, keyed by the provider's event id
    op.create_table(
        'webhook_events',
        sa.Column('event_id', sa.String(255), primary_key=True),
        sa.Column('event_type', sa.String(100), nullable=False, index=True),
        sa.Column('payload_hash', sa.String(64), nullable=False),
        sa.Column('payload', postgresql.JSONB, nullable=False),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='received'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('correlation_id', sa.String(36), nullable=True, index=True),
    )

    # Create index for status-based queries
    op.create_index(
        'ix_webhook_events_status_received_at',
        'webhook_events',
        ['status', 'received_at'],
    )


def downgrade() -> None:
    """Drop webhook_events table."""
    op.drop_table('webhook_events')
