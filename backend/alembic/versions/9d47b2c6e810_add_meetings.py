"""add_meetings

Revision ID: 9d47b2c6e810
Revises: 5a1c0e3f9b21
Create Date: 2024-09-29 15:45:42.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '9d47b2c6e810'
down_revision: Union[str, Sequence[str], None] = '5a1c0e3f9b21'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema: Create meetings table, one row per Zoom meeting instance."""
    op.create_table(
        'meetings',
        sa.Column('meeting_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('zoom_id', sa.String(length=255), nullable=False),
        sa.Column('zoom_uuid', sa.String(length=255), nullable=False),
        sa.Column('topic', sa.Text(), nullable=True),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('max_meeting_length_minutes', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.user_id']),
        sa.PrimaryKeyConstraint('meeting_id'),
        # Discovery inserts rely on this for ON CONFLICT DO NOTHING
        sa.UniqueConstraint('zoom_uuid', name='uq_meetings_zoom_uuid'),
    )

    op.create_index('ix_meetings_user_id', 'meetings', ['user_id'])
    # Partial index backing the termination sweep's open-meeting scan
    op.create_index(
        'idx_meetings_open',
        'meetings',
        ['start_time'],
        postgresql_where=sa.text('end_time IS NULL'),
    )


def downgrade() -> None:
    """Downgrade schema: Drop meetings table."""
    op.drop_index('idx_meetings_open', table_name='meetings')
    op.drop_index('ix_meetings_user_id', table_name='meetings')
    op.drop_table('meetings')
