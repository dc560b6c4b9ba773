# jurisly/chats/local_store.py
"""
Conversation-structured chat history kept in one JSON document per user
("jurisly_chats_<user_id>"), for deployments without a hosted database.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..error_handlers import ErrorCode, NotFoundException
from ..local_storage import LocalStorage
from ..logging_config import get_logger
from ..monitoring import track_operation
from .schemas import ChatMessage, Conversation, MessageRole
from .store import DEFAULT_TITLE, ChatStore, title_from_message

logger = get_logger(__name__)

WELCOME_TITLE = "Welcome to Jurisly"


def chats_key(user_id: str) -> str:
    return f"jurisly_chats_{user_id}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_conversation(user_id: str, title: str) -> Dict[str, Any]:
    now = _now()
    return Conversation(
        id=str(uuid.uuid4()), user_id=user_id, title=title, created_at=now, updated_at=now,
    ).model_dump(mode="json")


def _initial_document(user_id: str) -> Dict[str, Any]:
    welcome = _new_conversation(user_id, WELCOME_TITLE)
    return {"conversations": [welcome], "active_conversation_id": welcome["id"]}


def _find(doc: Dict[str, Any], conversation_id: str) -> Optional[Dict[str, Any]]:
    return next((c for c in doc["conversations"] if c["id"] == conversation_id), None)


class LocalChatStore(ChatStore):

    def __init__(self, storage: LocalStorage):
        self.storage = storage

    async def _load(self, user_id: str) -> Dict[str, Any]:
        doc = await self.storage.get_item(chats_key(user_id))
        if doc is None:
            # Persist the welcome conversation so its id is stable across reads
            def init(current):
                current = current or _initial_document(user_id)
                return current, current
            doc = await self.storage.update_item(chats_key(user_id), init)
        return doc

    async def _update(self, user_id: str, mutate):
        def wrapped(doc):
            return mutate(doc or _initial_document(user_id))
        return await self.storage.update_item(chats_key(user_id), wrapped)

    async def list_messages(self, user_id: str, conversation_id: Optional[str] = None) -> List[ChatMessage]:
        doc = await self._load(user_id)
        conversations = doc["conversations"]
        if conversation_id is not None:
            conversations = [c for c in conversations if c["id"] == conversation_id]
        messages = [ChatMessage.model_validate(m) for c in conversations for m in c["messages"]]
        return sorted(messages, key=lambda m: m.created_at)

    async def add_message(
        self,
        user_id: str,
        body: str,
        role: MessageRole,
        conversation_id: Optional[str] = None,
    ) -> ChatMessage:
        def mutate(doc):
            target_id = conversation_id or doc.get("active_conversation_id")
            conversation = _find(doc, target_id) if target_id else None
            if conversation is None:
                if conversation_id:
                    return doc, None
                conversation = _new_conversation(user_id, DEFAULT_TITLE)
                doc["conversations"].insert(0, conversation)
                doc["active_conversation_id"] = conversation["id"]

            now = _now()
            message = ChatMessage(
                id=str(uuid.uuid4()),
                user_id=user_id,
                message=body,
                role=role,
                conversation_id=conversation["id"],
                created_at=now,
                updated_at=now,
            )
            if role == MessageRole.USER and not any(
                m["role"] == MessageRole.USER.value for m in conversation["messages"]
            ):
                conversation["title"] = title_from_message(body)
            conversation["messages"].append(message.model_dump(mode="json"))
            conversation["updated_at"] = now.isoformat()
            return doc, message

        with track_operation("local_add_message", user_id=user_id):
            message = await self._update(user_id, mutate)
        if message is None:
            raise NotFoundException("Conversation", conversation_id, ErrorCode.CONVERSATION_NOT_FOUND)
        return message

    async def get_message(self, user_id: str, message_id: str) -> Optional[ChatMessage]:
        doc = await self._load(user_id)
        for conversation in doc["conversations"]:
            for m in conversation["messages"]:
                if m["id"] == message_id:
                    return ChatMessage.model_validate(m)
        return None

    async def delete_message(self, user_id: str, message_id: str) -> bool:
        def mutate(doc):
            for conversation in doc["conversations"]:
                kept = [m for m in conversation["messages"] if m["id"] != message_id]
                if len(kept) != len(conversation["messages"]):
                    conversation["messages"] = kept
                    conversation["updated_at"] = _now().isoformat()
                    return doc, True
            return doc, False

        return await self._update(user_id, mutate)

    async def clear_messages(self, user_id: str, conversation_id: Optional[str] = None) -> List[str]:
        def mutate(doc):
            if conversation_id is None:
                removed = [m["id"] for c in doc["conversations"] for m in c["messages"]]
                return _initial_document(user_id), removed

            conversation = _find(doc, conversation_id)
            if conversation is None:
                return doc, []
            removed = [m["id"] for m in conversation["messages"]]
            conversation["messages"] = []
            conversation["updated_at"] = _now().isoformat()
            return doc, removed

        with track_operation("local_clear_messages", user_id=user_id):
            return await self._update(user_id, mutate)

    async def list_conversations(self, user_id: str) -> List[Conversation]:
        doc = await self._load(user_id)
        conversations = [Conversation.model_validate(c) for c in doc["conversations"]]
        return sorted(conversations, key=lambda c: c.updated_at, reverse=True)

    async def get_conversation(self, user_id: str, conversation_id: str) -> Optional[Conversation]:
        doc = await self._load(user_id)
        found = _find(doc, conversation_id)
        return Conversation.model_validate(found) if found else None

    async def create_conversation(self, user_id: str, title: str = DEFAULT_TITLE) -> Conversation:
        def mutate(doc):
            conversation = _new_conversation(user_id, title)
            doc["conversations"].insert(0, conversation)
            doc["active_conversation_id"] = conversation["id"]
            return doc, Conversation.model_validate(conversation)

        return await self._update(user_id, mutate)

    async def delete_conversation(self, user_id: str, conversation_id: str) -> Optional[List[str]]:
        def mutate(doc):
            conversation = _find(doc, conversation_id)
            if conversation is None:
                return doc, None

            removed = [m["id"] for m in conversation["messages"]]
            doc["conversations"] = [c for c in doc["conversations"] if c["id"] != conversation_id]
            if not doc["conversations"]:
                return _initial_document(user_id), removed
            if doc.get("active_conversation_id") == conversation_id:
                doc["active_conversation_id"] = doc["conversations"][0]["id"]
            return doc, removed

        return await self._update(user_id, mutate)

    async def get_active_conversation(self, user_id: str) -> Optional[str]:
        doc = await self._load(user_id)
        return doc.get("active_conversation_id")

    async def set_active_conversation(self, user_id: str, conversation_id: str) -> bool:
        def mutate(doc):
            if _find(doc, conversation_id) is None:
                return doc, False
            doc["active_conversation_id"] = conversation_id
            return doc, True

        return await self._update(user_id, mutate)
