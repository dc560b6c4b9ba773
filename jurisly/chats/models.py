from datetime import datetime, timezone
import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, Index, String, Text, Uuid

from ..database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatHistory(Base):
    __tablename__ = "chat_history"
    __table_args__ = (
        CheckConstraint("role IN ('user', 'assistant')", name="chat_history_role_check"),
        Index("idx_chat_history_user_id", "user_id"),
        Index("idx_chat_history_created_at", "created_at"),
        Index("idx_chat_history_conversation_id", "conversation_id"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String, nullable=False)  # identity-service user id; RLS compares it to auth.uid()
    message = Column(Text, nullable=False)
    role = Column(String(16), nullable=False)  # 'user' | 'assistant'
    conversation_id = Column(Uuid(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
