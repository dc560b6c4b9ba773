from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from ..users.schemas import Language


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    id: str
    user_id: str
    message: str
    role: MessageRole
    conversation_id: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class Conversation(BaseModel):
    id: str
    user_id: str
    title: str
    messages: List[ChatMessage] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ConversationSummary(BaseModel):
    id: str
    title: str
    message_count: int
    created_at: datetime
    updated_at: datetime
    is_active: bool = False

    @classmethod
    def from_conversation(cls, conversation: Conversation, active_id: Optional[str] = None) -> "ConversationSummary":
        return cls(
            id=conversation.id,
            title=conversation.title,
            message_count=len(conversation.messages),
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
            is_active=conversation.id == active_id,
        )


class SendMessageRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=20000)
    role: MessageRole = MessageRole.USER
    conversation_id: Optional[str] = None


class AskRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=20000)
    conversation_id: Optional[str] = None
    language: Optional[Language] = None


class AskResponse(BaseModel):
    user_message: ChatMessage
    assistant_message: ChatMessage
    fallback: bool


class CreateConversationRequest(BaseModel):
    title: Optional[str] = Field(None, max_length=200)


class SwitchConversationRequest(BaseModel):
    conversation_id: str


class DeleteResponse(BaseModel):
    success: bool
    deleted_count: int


class ChangeEvent(BaseModel):
    """One change-notification event. Deletes may carry only the id."""
    type: Literal["insert", "update", "delete"]
    id: str
    user_id: str
    message: Optional[ChatMessage] = None

    def payload(self) -> dict:
        body = self.message.model_dump(mode="json") if self.message else {"id": self.id}
        return {"type": self.type, "message": body}
