# jurisly/chats/store.py
"""
Owner-scoped chat persistence. Two implementations exist: the hosted
relational table (DatabaseChatStore) and per-user JSON documents
(LocalChatStore). One of them is chosen at startup.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from .schemas import ChatMessage, Conversation, MessageRole

DEFAULT_TITLE = "New Chat"
TITLE_LENGTH = 50


def title_from_message(body: str) -> str:
    """First 50 characters of a message, with "..." when cut"""
    body = body.strip()
    if len(body) > TITLE_LENGTH:
        return body[:TITLE_LENGTH] + "..."
    return body or DEFAULT_TITLE


class ChatStore(ABC):

    @abstractmethod
    async def list_messages(self, user_id: str, conversation_id: Optional[str] = None) -> List[ChatMessage]:
        """All of the owner's messages (optionally one conversation), oldest first"""

    @abstractmethod
    async def add_message(
        self,
        user_id: str,
        body: str,
        role: MessageRole,
        conversation_id: Optional[str] = None,
    ) -> ChatMessage:
        pass

    @abstractmethod
    async def get_message(self, user_id: str, message_id: str) -> Optional[ChatMessage]:
        pass

    @abstractmethod
    async def delete_message(self, user_id: str, message_id: str) -> bool:
        """False when no such message belongs to the owner"""

    @abstractmethod
    async def clear_messages(self, user_id: str, conversation_id: Optional[str] = None) -> List[str]:
        """Remove messages and return the removed ids"""

    @abstractmethod
    async def list_conversations(self, user_id: str) -> List[Conversation]:
        """Newest first"""

    @abstractmethod
    async def get_conversation(self, user_id: str, conversation_id: str) -> Optional[Conversation]:
        pass

    @abstractmethod
    async def create_conversation(self, user_id: str, title: str = DEFAULT_TITLE) -> Conversation:
        pass

    @abstractmethod
    async def delete_conversation(self, user_id: str, conversation_id: str) -> Optional[List[str]]:
        """Removed message ids, or None when the conversation does not exist"""

    @abstractmethod
    async def get_active_conversation(self, user_id: str) -> Optional[str]:
        pass

    @abstractmethod
    async def set_active_conversation(self, user_id: str, conversation_id: str) -> bool:
        pass
