# jurisly/chats/service.py
"""
Chat operations over the store, the change feed and the reply webhook.

Every mutation publishes its change events after it is persisted, so
live subscribers see exactly what the store holds.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..auth.base import AuthUser
from ..error_handlers import ErrorCode, NotFoundException
from ..logging_config import get_logger, log_business_event
from ..users.schemas import Language
from ..users.service import read_preferences
from . import exports
from .feed import ChangeFeed, LiveMessageList, Subscription
from .replies import ReplyClient
from .schemas import ChangeEvent, ChatMessage, Conversation, MessageRole
from .store import DEFAULT_TITLE, ChatStore

logger = get_logger(__name__)


@dataclass
class AskResult:
    user_message: ChatMessage
    assistant_message: ChatMessage
    fallback: bool


class ChatService:
    def __init__(self, store: ChatStore, feed: ChangeFeed, replies: ReplyClient):
        self.store = store
        self.feed = feed
        self.replies = replies

    async def _resolve_conversation(self, user_id: str, conversation_id: Optional[str]) -> Optional[str]:
        return conversation_id or await self.store.get_active_conversation(user_id)

    async def history(self, user_id: str, conversation_id: Optional[str] = None) -> List[ChatMessage]:
        return await self.store.list_messages(user_id, conversation_id)

    async def send(
        self,
        user_id: str,
        body: str,
        role: MessageRole = MessageRole.USER,
        conversation_id: Optional[str] = None,
    ) -> ChatMessage:
        conversation_id = await self._resolve_conversation(user_id, conversation_id)
        message = await self.store.add_message(user_id, body, role, conversation_id)
        self.feed.publish_insert(message)

        log_business_event(
            "message_sent", user_id=user_id,
            message_id=message.id, role=message.role.value, conversation_id=message.conversation_id
        )
        return message

    async def ask(
        self,
        user: AuthUser,
        text: str,
        conversation_id: Optional[str] = None,
        language: Optional[Language] = None,
    ) -> AskResult:
        """
        Persist the question, ask the webhook, persist exactly one assistant
        message (the answer or the fallback text).
        """
        language = language or read_preferences(user).language
        user_message = await self.send(user.id, text, MessageRole.USER, conversation_id)

        reply = await self.replies.generate(text, user.id, language, user_message.conversation_id)
        assistant_message = await self.send(
            user.id, reply.text, MessageRole.ASSISTANT, user_message.conversation_id
        )

        log_business_event(
            "assistant_replied", user_id=user.id,
            message_id=assistant_message.id, fallback=reply.fallback, language=Language(language).value
        )
        return AskResult(user_message, assistant_message, reply.fallback)

    async def delete_message(self, user_id: str, message_id: str) -> bool:
        existing = await self.store.get_message(user_id, message_id)
        if not await self.store.delete_message(user_id, message_id):
            logger.info(
                "Delete requested for unknown message",
                extra={"user_id": user_id, "extra_data": {"message_id": message_id}}
            )
            return False
        self.feed.publish_delete(user_id, message_id, existing)
        return True

    def _publish_deletes(self, user_id: str, removed: List[str]) -> None:
        for message_id in removed:
            self.feed.publish_delete(user_id, message_id)

    async def clear_messages(self, user_id: str, conversation_id: Optional[str] = None) -> List[str]:
        removed = await self.store.clear_messages(user_id, conversation_id)
        self._publish_deletes(user_id, removed)
        log_business_event(
            "messages_cleared", user_id=user_id, conversation_id=conversation_id, deleted_count=len(removed)
        )
        return removed

    async def list_conversations(self, user_id: str) -> Tuple[List[Conversation], Optional[str]]:
        conversations = await self.store.list_conversations(user_id)
        return conversations, await self.store.get_active_conversation(user_id)

    async def get_conversation(self, user_id: str, conversation_id: str) -> Conversation:
        conversation = await self.store.get_conversation(user_id, conversation_id)
        if conversation is None:
            raise NotFoundException("Conversation", conversation_id, ErrorCode.CONVERSATION_NOT_FOUND)
        return conversation

    async def create_conversation(self, user_id: str, title: Optional[str] = None) -> Conversation:
        conversation = await self.store.create_conversation(user_id, title or DEFAULT_TITLE)
        logger.info("Conversation created", extra={"user_id": user_id, "extra_data": {"conversation_id": conversation.id}})
        return conversation

    async def switch_conversation(self, user_id: str, conversation_id: str) -> Conversation:
        if not await self.store.set_active_conversation(user_id, conversation_id):
            raise NotFoundException("Conversation", conversation_id, ErrorCode.CONVERSATION_NOT_FOUND)
        return await self.get_conversation(user_id, conversation_id)

    async def delete_conversation(self, user_id: str, conversation_id: str) -> List[str]:
        removed = await self.store.delete_conversation(user_id, conversation_id)
        if removed is None:
            raise NotFoundException("Conversation", conversation_id, ErrorCode.CONVERSATION_NOT_FOUND)
        self._publish_deletes(user_id, removed)
        log_business_event(
            "conversation_deleted", user_id=user_id, conversation_id=conversation_id, deleted_count=len(removed)
        )
        return removed

    async def export_conversation(self, user_id: str, conversation_id: str, fmt: str) -> exports.ExportFile:
        export_format = exports.parse_export_format(fmt)
        conversation = await self.get_conversation(user_id, conversation_id)
        return exports.render(
            exports.conversation_text(conversation), export_format, f"jurisly-chat-{conversation.id}"
        )

    async def export_all(self, user: AuthUser, fmt: str) -> exports.ExportFile:
        export_format = exports.parse_export_format(fmt)
        conversations = await self.store.list_conversations(user.id)
        content = exports.all_conversations_text(conversations, user.email)
        return exports.render(content, export_format, "jurisly-all-chats")


class LiveChatSession:
    """
    One live connection's view of the owner's messages: a snapshot plus
    the change feed, merged without duplicates.
    """

    def __init__(self, service: ChatService, user_id: str, conversation_id: Optional[str] = None):
        self.service = service
        self.user_id = user_id
        self.conversation_id = conversation_id
        self.messages = LiveMessageList()
        self.subscription: Optional[Subscription] = None

    async def open(self) -> List[ChatMessage]:
        # Subscribe before the fetch so nothing lands between the two
        self.subscription = self.service.feed.subscribe(self.user_id, self.conversation_id)
        snapshot = await self.service.history(self.user_id, self.conversation_id)
        self.messages = LiveMessageList(snapshot)
        return self.messages.messages

    async def next_change(self) -> Optional[ChangeEvent]:
        """Next feed event that changed the list; None once closed"""
        if self.subscription is None:
            return None
        while True:
            event = await self.subscription.get()
            if event is None:
                return None
            if self.messages.apply(event):
                return event

    async def send(self, body: str, role: MessageRole = MessageRole.USER) -> ChatMessage:
        message = await self.service.send(self.user_id, body, role, self.conversation_id)
        self.messages.apply(ChangeEvent(type="insert", id=message.id, user_id=self.user_id, message=message))
        return message

    async def delete_one(self, message_id: str) -> bool:
        deleted = await self.service.delete_message(self.user_id, message_id)
        if deleted:
            self.messages.apply(ChangeEvent(type="delete", id=message_id, user_id=self.user_id))
        return deleted

    async def clear_all(self) -> List[str]:
        removed = await self.service.clear_messages(self.user_id, self.conversation_id)
        for message_id in removed:
            self.messages.apply(ChangeEvent(type="delete", id=message_id, user_id=self.user_id))
        return removed

    def close(self) -> None:
        if self.subscription is not None:
            self.subscription.close()
            self.subscription = None
