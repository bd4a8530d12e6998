"""
In-process change feed for message and conversation rows.

The persistence layer publishes an event after every commit that touches a
message row or a conversation row. Message events go to the subscribers of
their conversation; conversation events go to the subscribers of the owner's
conversation list. Publishing is thread-safe: the database service runs in
worker threads while subscribers consume on the event loop.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Literal


logger = logging.getLogger(__name__)


ChangeKind = Literal["insert", "update", "delete"]
ChangeTable = Literal["messages", "conversations"]

# (table, key): a conversation id for messages, an owner id for conversations
Channel = tuple[str, str]


def message_channel(conversation_id: str) -> Channel:
    return ("messages", conversation_id)


def conversation_list_channel(user_id: str) -> Channel:
    return ("conversations", user_id)


@dataclass(frozen=True)
class ChangeEvent:
    event: ChangeKind
    conversation_id: str
    row: dict[str, Any] = field(default_factory=dict)
    table: ChangeTable = "messages"

    @property
    def channel(self) -> Channel:
        if self.table == "conversations":
            return conversation_list_channel(self.row.get("user_id") or "")
        return message_channel(self.conversation_id)

    def to_payload(self) -> dict[str, Any]:
        return {
            "event": self.event,
            "table": self.table,
            "conversationId": self.conversation_id,
            "row": self.row,
        }


_CLOSED = object()


class Subscription:
    """Async iterator over the change events of one channel."""

    def __init__(self, feed: "ChangeFeed", channel: Channel, loop: asyncio.AbstractEventLoop):
        self.channel = channel
        self._feed = feed
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def deliver(self, item: Any) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._queue.put_nowait(item)
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, item)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._feed._unsubscribe(self)
        try:
            self.deliver(_CLOSED)
        except RuntimeError:
            # Event loop already closed; nothing is waiting any more.
            pass

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


class ChangeFeed:
    def __init__(self) -> None:
        self._subscriptions: dict[Channel, set[Subscription]] = {}
        self._lock = threading.Lock()

    def _subscribe(self, channel: Channel) -> Subscription:
        subscription = Subscription(self, channel, asyncio.get_running_loop())
        with self._lock:
            self._subscriptions.setdefault(channel, set()).add(subscription)
        logger.debug("New subscription for %s %s.", *channel)
        return subscription

    def subscribe(self, conversation_id: str) -> Subscription:
        """Subscribe to a conversation's messages. Must be called from the consuming event loop."""
        return self._subscribe(message_channel(conversation_id))

    def subscribe_conversations(self, user_id: str) -> Subscription:
        """Subscribe to changes of the conversations owned by `user_id`."""
        return self._subscribe(conversation_list_channel(user_id))

    def subscriber_count(self, conversation_id: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(message_channel(conversation_id), ()))

    def publish(self, event: ChangeEvent) -> int:
        """Deliver `event` to its channel's subscribers; returns how many got it."""
        channel = event.channel
        with self._lock:
            targets = list(self._subscriptions.get(channel, ()))

        delivered = 0
        for subscription in targets:
            try:
                subscription.deliver(event)
                delivered += 1
            except RuntimeError:
                logger.warning("Dropping subscription for %s %s: event loop is closed.", *channel)
                self._unsubscribe(subscription)
        return delivered

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._subscriptions.get(subscription.channel)
            if not subscribers:
                return
            subscribers.discard(subscription)
            if not subscribers:
                del self._subscriptions[subscription.channel]


__all__ = [
    "Channel",
    "ChangeEvent",
    "ChangeFeed",
    "ChangeKind",
    "ChangeTable",
    "Subscription",
    "conversation_list_channel",
    "message_channel",
]
