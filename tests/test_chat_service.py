import httpx
import pytest

from jurisly.auth.base import AuthUser
from jurisly.chats.replies import FALLBACK_REPLIES, ReplyClient
from jurisly.chats.schemas import MessageRole
from jurisly.chats.service import ChatService, LiveChatSession
from jurisly.error_handlers import NotFoundException
from jurisly.users.schemas import Language

from conftest import WEBHOOK_URL, webhook_transport

USER = AuthUser(id="user-1", email="asha@example.com", email_verified=True, metadata={"name": "Asha"})


async def test_failed_webhook_appends_exactly_one_assistant_message(chat_service):
    result = await chat_service.ask(USER, "Is verbal contract valid?")

    history = await chat_service.history(USER.id)
    assistant = [m for m in history if m.role == MessageRole.ASSISTANT]
    assert len(history) == 2
    assert len(assistant) == 1
    assert result.fallback is True
    assert assistant[0].message == FALLBACK_REPLIES[Language.EN]
    assert assistant[0].conversation_id == result.user_message.conversation_id


async def test_ask_uses_preferred_language(local_store, feed):
    transport, calls = webhook_transport(reply="उत्तर")
    service = ChatService(local_store, feed, ReplyClient(WEBHOOK_URL, client=httpx.AsyncClient(transport=transport)))
    hindi_user = AuthUser(id="user-2", email="ravi@example.com", email_verified=True,
                          metadata={"preferences": {"language": "hi"}})

    result = await service.ask(hindi_user, "प्रश्न")

    assert result.fallback is False
    assert result.assistant_message.message == "उत्तर"
    assert calls[0]["language"] == "hi"


async def test_send_publishes_insert(chat_service, feed):
    subscription = feed.subscribe(USER.id)

    message = await chat_service.send(USER.id, "hello")

    event = await subscription.get()
    assert event.type == "insert"
    assert event.message == message


async def test_delete_missing_message_returns_false(chat_service, feed):
    subscription = feed.subscribe(USER.id)

    assert await chat_service.delete_message(USER.id, "missing") is False
    assert subscription.queue.empty()


async def test_clear_publishes_one_delete_per_message(chat_service, feed):
    for text in ("a", "b", "c"):
        await chat_service.send(USER.id, text)
    subscription = feed.subscribe(USER.id)

    removed = await chat_service.clear_messages(USER.id)

    assert len(removed) == 3
    events = [await subscription.get() for _ in range(3)]
    assert {e.id for e in events} == set(removed)
    assert all(e.type == "delete" for e in events)
    assert await chat_service.history(USER.id) == []


async def test_conversation_lifecycle(chat_service):
    created = await chat_service.create_conversation(USER.id)
    await chat_service.send(USER.id, "Question for new chat")

    conversations, active = await chat_service.list_conversations(USER.id)
    assert active == created.id
    assert conversations[0].title == "Question for new chat"

    await chat_service.delete_conversation(USER.id, created.id)
    with pytest.raises(NotFoundException):
        await chat_service.get_conversation(USER.id, created.id)
    with pytest.raises(NotFoundException):
        await chat_service.switch_conversation(USER.id, created.id)


async def test_export_conversation_as_text(chat_service):
    conversation = await chat_service.create_conversation(USER.id)
    await chat_service.ask(USER, "What is bail?")

    export = await chat_service.export_conversation(USER.id, conversation.id, "txt")

    assert export.filename == f"jurisly-chat-{conversation.id}.txt"
    assert "You:\nWhat is bail?" in export.content
    assert "Jurisly AI:" in export.content


async def test_live_session_never_duplicates_own_echo(chat_service):
    live = LiveChatSession(chat_service, USER.id)
    await chat_service.send(USER.id, "before open")
    snapshot = await live.open()
    assert [m.message for m in snapshot] == ["before open"]

    sent = await live.send("from this connection")
    other = await chat_service.send(USER.id, "from another connection")

    # The echo of our own send is swallowed; the other insert comes through
    change = await live.next_change()
    assert change.id == other.id
    assert live.messages.ids == [snapshot[0].id, sent.id, other.id]

    assert await live.delete_one(sent.id) is True
    assert sent.id not in live.messages

    removed = await live.clear_all()
    assert len(removed) == 2
    assert len(live.messages) == 0
    live.close()
    assert await live.next_change() is None
