"""create_chat_history

Revision ID: a1c3e5f7b9d1
Revises:
Create Date: 2025-11-20 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'a1c3e5f7b9d1'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create chat_history; on PostgreSQL also the updated_at trigger."""
    op.create_table(
        'chat_history',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("role IN ('user', 'assistant')", name='chat_history_role_check'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_chat_history_user_id', 'chat_history', ['user_id'], unique=False)
    op.create_index('idx_chat_history_created_at', 'chat_history', ['created_at'], unique=False)

    if op.get_bind().dialect.name == 'postgresql':
        op.execute("""
            CREATE OR REPLACE FUNCTION update_chat_history_timestamp()
            RETURNS TRIGGER AS $$
            BEGIN
              NEW.updated_at = NOW();
              RETURN NEW;
            END;
            $$ LANGUAGE plpgsql;
        """)
        op.execute("""
            CREATE TRIGGER update_chat_history_timestamp
              BEFORE UPDATE ON chat_history
              FOR EACH ROW
              EXECUTE FUNCTION update_chat_history_timestamp();
        """)


def downgrade() -> None:
    if op.get_bind().dialect.name == 'postgresql':
        op.execute("DROP TRIGGER IF EXISTS update_chat_history_timestamp ON chat_history")
        op.execute("DROP FUNCTION IF EXISTS update_chat_history_timestamp()")
    op.drop_index('idx_chat_history_created_at', table_name='chat_history')
    op.drop_index('idx_chat_history_user_id', table_name='chat_history')
    op.drop_table('chat_history')
