# jurisly/chats/feed.py
"""
In-process change notifications for chat messages.

Each subscription is keyed by (owner, conversation filter) and owns a
bounded queue. Inserts honour the conversation filter; updates and
deletes reach every subscription of the owner.
"""

import asyncio
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set

from ..logging_config import get_logger
from .schemas import ChangeEvent, ChatMessage

logger = get_logger(__name__)


class Subscription:
    def __init__(self, feed: "ChangeFeed", owner_id: str, conversation_id: Optional[str], maxsize: int):
        self.feed = feed
        self.owner_id = owner_id
        self.conversation_id = conversation_id
        self.queue: "asyncio.Queue[Optional[ChangeEvent]]" = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    def matches(self, event: ChangeEvent) -> bool:
        if event.user_id != self.owner_id:
            return False
        if event.type != "insert" or self.conversation_id is None:
            return True
        return event.message is not None and event.message.conversation_id == self.conversation_id

    def deliver(self, event: ChangeEvent) -> bool:
        try:
            self.queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            logger.warning(
                "Change feed queue full, dropping event",
                extra={"user_id": self.owner_id, "extra_data": {"event": event.type, "id": event.id}}
            )
            return False

    async def get(self) -> Optional[ChangeEvent]:
        """Next event, or None once the subscription is closed"""
        if self.closed and self.queue.empty():
            return None
        return await self.queue.get()

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChangeEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.feed._remove(self)
        # Wake a pending reader; a full queue ends on its own once drained
        try:
            self.queue.put_nowait(None)
        except asyncio.QueueFull:
            pass


class ChangeFeed:
    def __init__(self, queue_size: int = 256):
        self.queue_size = queue_size
        self._subscriptions: Dict[str, Set[Subscription]] = defaultdict(set)

    def subscribe(self, owner_id: str, conversation_id: Optional[str] = None) -> Subscription:
        subscription = Subscription(self, owner_id, conversation_id, self.queue_size)
        self._subscriptions[owner_id].add(subscription)
        logger.debug(
            "Change feed subscription opened",
            extra={"user_id": owner_id, "extra_data": {"conversation_id": conversation_id}}
        )
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        owned = self._subscriptions.get(subscription.owner_id)
        if owned is None:
            return
        owned.discard(subscription)
        if not owned:
            del self._subscriptions[subscription.owner_id]

    def publish(self, event: ChangeEvent) -> int:
        """Fan an event out to matching subscriptions; returns how many got it"""
        delivered = 0
        for subscription in list(self._subscriptions.get(event.user_id, ())):
            if subscription.matches(event) and subscription.deliver(event):
                delivered += 1
        return delivered

    def publish_insert(self, message: ChatMessage) -> int:
        return self.publish(ChangeEvent(type="insert", id=message.id, user_id=message.user_id, message=message))

    def publish_delete(self, user_id: str, message_id: str, message: Optional[ChatMessage] = None) -> int:
        return self.publish(ChangeEvent(type="delete", id=message_id, user_id=user_id, message=message))

    def subscriber_count(self, owner_id: Optional[str] = None) -> int:
        if owner_id is not None:
            return len(self._subscriptions.get(owner_id, ()))
        return sum(len(s) for s in self._subscriptions.values())

    def close(self) -> None:
        for owned in list(self._subscriptions.values()):
            for subscription in list(owned):
                subscription.close()


class LiveMessageList:
    """
    A client-side view of one owner's messages, merged from a snapshot
    and the change feed. Never holds two entries with the same id.
    """

    def __init__(self, messages: Iterable[ChatMessage] = ()):
        self._messages: List[ChatMessage] = []
        for message in sorted(messages, key=lambda m: m.created_at):
            self._append(message)

    def _append(self, message: ChatMessage) -> bool:
        if any(m.id == message.id for m in self._messages):
            return False
        self._messages.append(message)
        return True

    def apply(self, event: ChangeEvent) -> bool:
        """Fold one event into the list; returns whether anything changed"""
        if event.type == "insert":
            return event.message is not None and self._append(event.message)

        for position, existing in enumerate(self._messages):
            if existing.id != event.id:
                continue
            if event.type == "update":
                if event.message is None:
                    return False
                self._messages[position] = event.message
            else:
                del self._messages[position]
            return True
        return False

    def clear(self) -> List[str]:
        removed = [m.id for m in self._messages]
        self._messages = []
        return removed

    @property
    def messages(self) -> List[ChatMessage]:
        return list(self._messages)

    @property
    def ids(self) -> List[str]:
        return [m.id for m in self._messages]

    def __len__(self) -> int:
        return len(self._messages)

    def __contains__(self, message_id: str) -> bool:
        return any(m.id == message_id for m in self._messages)
