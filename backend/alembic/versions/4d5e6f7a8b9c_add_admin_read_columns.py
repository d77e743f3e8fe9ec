"""add dedicated admin read flag to messages

Revision ID: 4d5e6f7a8b9c
Revises: 3c4d5e6f7a8b
Create Date: 2026-09-22 00:00:00.000000

Deployments that predate this revision keep working: the app probes the
messages table at startup and falls back to counselor_is_read.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '4d5e6f7a8b9c'
down_revision: Union[str, None] = '3c4d5e6f7a8b'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        'messages',
        sa.Column('admin_is_read', sa.Boolean(), nullable=True, server_default='false'),
    )
    op.add_column('messages', sa.Column('admin_read_at', sa.DateTime(timezone=True), nullable=True))
    # Messages admins already opened under the shared staff flag stay read.
    op.execute(
        "UPDATE messages SET admin_is_read = counselor_is_read, admin_read_at = counselor_read_at"
    )


def downgrade() -> None:
    op.drop_column('messages', 'admin_read_at')
    op.drop_column('messages', 'admin_is_read')
