# jurisly/chats/database_store.py
"""
Chat history in the hosted relational table `chat_history`.

Rows are flat; conversations are derived by grouping on conversation_id.
Every statement filters on user_id, mirroring the row-level security
policy on the hosted table.
"""

import uuid
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..error_handlers import DatabaseException, ValidationException
from ..logging_config import get_logger
from ..monitoring import track_operation
from .models import ChatHistory
from .schemas import ChatMessage, Conversation, MessageRole
from .store import DEFAULT_TITLE, ChatStore, title_from_message

logger = get_logger(__name__)


def _parse_uuid(value: Optional[str]) -> Optional[uuid.UUID]:
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; stored values are UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_message(row: ChatHistory) -> ChatMessage:
    return ChatMessage(
        id=str(row.id),
        user_id=row.user_id,
        message=row.message,
        role=MessageRole(row.role),
        conversation_id=str(row.conversation_id) if row.conversation_id else None,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _conversation_from_messages(user_id: str, conversation_id: str, messages: List[ChatMessage]) -> Conversation:
    first_user = next((m for m in messages if m.role == MessageRole.USER), None)
    return Conversation(
        id=conversation_id,
        user_id=user_id,
        title=title_from_message(first_user.message) if first_user else DEFAULT_TITLE,
        messages=messages,
        created_at=messages[0].created_at,
        updated_at=max(m.updated_at or m.created_at for m in messages),
    )


class DatabaseChatStore(ChatStore):
    """
    Conversations created here exist only once they hold a message, so
    freshly created empty conversations and each user's active conversation
    are tracked in process memory.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory
        self._pending: Dict[str, Dict[str, Conversation]] = {}
        self._active: Dict[str, str] = {}

    def _conversation_uuid(self, conversation_id: Optional[str]) -> Optional[uuid.UUID]:
        if conversation_id is None:
            return None
        parsed = _parse_uuid(conversation_id)
        if parsed is None:
            raise ValidationException(
                "Invalid conversation id",
                details={"conversation_id": conversation_id}
            )
        return parsed

    async def list_messages(self, user_id: str, conversation_id: Optional[str] = None) -> List[ChatMessage]:
        stmt = select(ChatHistory).where(ChatHistory.user_id == user_id)
        if conversation_id is not None:
            stmt = stmt.where(ChatHistory.conversation_id == self._conversation_uuid(conversation_id))
        stmt = stmt.order_by(ChatHistory.created_at.asc())

        try:
            async with self.session_factory() as db:
                rows = (await db.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to load chat history",
                extra={"user_id": user_id, "extra_data": {"conversation_id": conversation_id}},
                exc_info=True
            )
            raise DatabaseException("Failed to load chat history", original_error=e)

        return [_to_message(row) for row in rows]

    async def add_message(
        self,
        user_id: str,
        body: str,
        role: MessageRole,
        conversation_id: Optional[str] = None,
    ) -> ChatMessage:
        conversation_uuid = self._conversation_uuid(conversation_id)
        row = ChatHistory(
            id=uuid.uuid4(),
            user_id=user_id,
            message=body,
            role=MessageRole(role).value,
            conversation_id=conversation_uuid,
        )

        with track_operation("db_add_message", user_id=user_id):
            try:
                async with self.session_factory() as db:
                    db.add(row)
                    await db.commit()
                    await db.refresh(row)
            except SQLAlchemyError as e:
                raise DatabaseException("Failed to save message", original_error=e)

        if conversation_id is not None:
            self._pending.get(user_id, {}).pop(conversation_id, None)
        return _to_message(row)

    async def get_message(self, user_id: str, message_id: str) -> Optional[ChatMessage]:
        parsed = _parse_uuid(message_id)
        if parsed is None:
            return None
        try:
            async with self.session_factory() as db:
                row = (await db.execute(
                    select(ChatHistory).where(ChatHistory.id == parsed, ChatHistory.user_id == user_id)
                )).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise DatabaseException("Failed to load message", original_error=e)
        return _to_message(row) if row else None

    async def delete_message(self, user_id: str, message_id: str) -> bool:
        parsed = _parse_uuid(message_id)
        if parsed is None:
            return False
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    delete(ChatHistory).where(ChatHistory.id == parsed, ChatHistory.user_id == user_id)
                )
                await db.commit()
        except SQLAlchemyError as e:
            logger.error(
                "Error deleting message",
                extra={"user_id": user_id, "extra_data": {"message_id": message_id}},
                exc_info=True
            )
            raise DatabaseException("Failed to delete message", original_error=e)
        return result.rowcount > 0

    async def clear_messages(self, user_id: str, conversation_id: Optional[str] = None) -> List[str]:
        conditions = [ChatHistory.user_id == user_id]
        if conversation_id is not None:
            conditions.append(ChatHistory.conversation_id == self._conversation_uuid(conversation_id))

        with track_operation("db_clear_messages", user_id=user_id):
            try:
                async with self.session_factory() as db:
                    ids = (await db.execute(select(ChatHistory.id).where(*conditions))).scalars().all()
                    if ids:
                        await db.execute(delete(ChatHistory).where(ChatHistory.id.in_(ids), *conditions))
                        await db.commit()
            except SQLAlchemyError as e:
                raise DatabaseException("Failed to clear chat history", original_error=e)

        if conversation_id is None:
            self._pending.pop(user_id, None)
            self._active.pop(user_id, None)
        return [str(i) for i in ids]

    async def list_conversations(self, user_id: str) -> List[Conversation]:
        grouped: "OrderedDict[str, List[ChatMessage]]" = OrderedDict()
        for message in await self.list_messages(user_id):
            if message.conversation_id:
                grouped.setdefault(message.conversation_id, []).append(message)

        conversations = [
            _conversation_from_messages(user_id, cid, messages) for cid, messages in grouped.items()
        ]
        conversations.extend(
            c for cid, c in self._pending.get(user_id, {}).items() if cid not in grouped
        )
        return sorted(conversations, key=lambda c: c.updated_at, reverse=True)

    async def get_conversation(self, user_id: str, conversation_id: str) -> Optional[Conversation]:
        if _parse_uuid(conversation_id) is None:
            return None
        messages = await self.list_messages(user_id, conversation_id)
        if messages:
            return _conversation_from_messages(user_id, conversation_id, messages)
        return self._pending.get(user_id, {}).get(conversation_id)

    async def create_conversation(self, user_id: str, title: str = DEFAULT_TITLE) -> Conversation:
        now = datetime.now(timezone.utc)
        conversation = Conversation(
            id=str(uuid.uuid4()), user_id=user_id, title=title, created_at=now, updated_at=now,
        )
        self._pending.setdefault(user_id, {})[conversation.id] = conversation
        self._active[user_id] = conversation.id
        return conversation

    async def delete_conversation(self, user_id: str, conversation_id: str) -> Optional[List[str]]:
        if _parse_uuid(conversation_id) is None:
            return None
        pending = self._pending.get(user_id, {}).pop(conversation_id, None)
        removed = await self.clear_messages(user_id, conversation_id)
        if not removed and pending is None:
            return None
        if self._active.get(user_id) == conversation_id:
            del self._active[user_id]
        return removed

    async def get_active_conversation(self, user_id: str) -> Optional[str]:
        return self._active.get(user_id)

    async def set_active_conversation(self, user_id: str, conversation_id: str) -> bool:
        if await self.get_conversation(user_id, conversation_id) is None:
            return False
        self._active[user_id] = conversation_id
        return True
