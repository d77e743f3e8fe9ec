"""add message_conversation_deletions table

Revision ID: 2b3c4d5e6f7a
Revises: 1a2b3c4d5e6f
Create Date: 2026-09-08 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '2b3c4d5e6f7a'
down_revision: Union[str, None] = '1a2b3c4d5e6f'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'message_conversation_deletions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('conversation_id', sa.String(length=120), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'conversation_id', name='mcd_user_conversation_unique'),
    )
    op.create_index(
        'ix_message_conversation_deletions_conversation_id',
        'message_conversation_deletions',
        ['conversation_id'],
    )
    op.create_index(
        'mcd_user_deleted_at_idx', 'message_conversation_deletions', ['user_id', 'deleted_at']
    )


def downgrade() -> None:
    op.drop_index('mcd_user_deleted_at_idx', table_name='message_conversation_deletions')
    op.drop_index(
        'ix_message_conversation_deletions_conversation_id',
        table_name='message_conversation_deletions',
    )
    op.drop_table('message_conversation_deletions')
