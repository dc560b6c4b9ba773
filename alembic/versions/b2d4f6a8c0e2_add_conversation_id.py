"""add_conversation_id

Revision ID: b2d4f6a8c0e2
Revises: a1c3e5f7b9d1
Create Date: 2025-11-27 09:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'b2d4f6a8c0e2'
down_revision: Union[str, Sequence[str], None] = 'a1c3e5f7b9d1'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Group messages into conversations. Existing rows keep a NULL conversation."""
    op.add_column('chat_history', sa.Column('conversation_id', sa.Uuid(), nullable=True))
    op.create_index('idx_chat_history_conversation_id', 'chat_history', ['conversation_id'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_chat_history_conversation_id', table_name='chat_history')
    op.drop_column('chat_history', 'conversation_id')
