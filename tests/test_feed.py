import asyncio
from datetime import datetime, timedelta, timezone

from jurisly.chats.feed import ChangeFeed, LiveMessageList
from jurisly.chats.schemas import ChangeEvent, ChatMessage, MessageRole

T0 = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


def make_message(message_id, text="hello", user_id="u1", conversation_id="c1", minutes=0):
    return ChatMessage(
        id=message_id,
        user_id=user_id,
        message=text,
        role=MessageRole.USER,
        conversation_id=conversation_id,
        created_at=T0 + timedelta(minutes=minutes),
    )


def insert(message):
    return ChangeEvent(type="insert", id=message.id, user_id=message.user_id, message=message)


def test_repeated_inserts_never_duplicate():
    live = LiveMessageList([make_message("a")])
    b = make_message("b", minutes=1)

    assert live.apply(insert(b)) is True
    for _ in range(5):
        assert live.apply(insert(b)) is False
    assert live.apply(insert(make_message("a"))) is False

    assert live.ids == ["a", "b"]


def test_snapshot_is_ordered_and_deduplicated():
    live = LiveMessageList([
        make_message("late", minutes=5),
        make_message("early", minutes=1),
        make_message("early", minutes=1),
    ])

    assert live.ids == ["early", "late"]


def test_update_replaces_and_delete_removes():
    live = LiveMessageList([make_message("a"), make_message("b", minutes=1)])
    edited = make_message("a", text="edited")

    assert live.apply(ChangeEvent(type="update", id="a", user_id="u1", message=edited))
    assert live.messages[0].message == "edited"

    assert live.apply(ChangeEvent(type="delete", id="b", user_id="u1"))
    assert live.ids == ["a"]

    assert live.apply(ChangeEvent(type="delete", id="missing", user_id="u1")) is False
    assert live.apply(ChangeEvent(type="update", id="missing", user_id="u1", message=make_message("missing"))) is False


async def test_events_only_reach_their_owner():
    feed = ChangeFeed()
    mine = feed.subscribe("u1")
    theirs = feed.subscribe("u2")

    assert feed.publish_insert(make_message("a", user_id="u1")) == 1

    assert (await mine.get()).id == "a"
    assert theirs.queue.empty()


async def test_conversation_filter_applies_to_inserts_only():
    feed = ChangeFeed()
    filtered = feed.subscribe("u1", conversation_id="c1")

    feed.publish_insert(make_message("other-conv", conversation_id="c2"))
    feed.publish_insert(make_message("same-conv", conversation_id="c1"))
    feed.publish_delete("u1", "other-conv")

    received = [(await filtered.get()).id for _ in range(2)]
    assert received == ["same-conv", "other-conv"]
    assert filtered.queue.empty()


async def test_full_queue_drops_events():
    feed = ChangeFeed(queue_size=2)
    subscription = feed.subscribe("u1")

    delivered = [feed.publish_insert(make_message(str(i))) for i in range(4)]

    assert delivered == [1, 1, 0, 0]
    assert subscription.queue.qsize() == 2


async def test_closing_subscription_ends_iteration():
    feed = ChangeFeed()
    subscription = feed.subscribe("u1")
    feed.publish_insert(make_message("a"))

    async def collect():
        return [event.id async for event in subscription]

    task = asyncio.create_task(collect())
    await asyncio.sleep(0)
    subscription.close()

    assert await asyncio.wait_for(task, timeout=1) == ["a"]
    assert feed.subscriber_count("u1") == 0
    assert feed.publish_insert(make_message("b")) == 0
