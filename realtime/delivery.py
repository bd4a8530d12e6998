"""
Client-side delivery of message rows.

`MessageReconciler` keeps an optimistic local message list in step with the
server-confirmed insert/update stream of one conversation. `DeliveryBridge`
connects a reconciler to a change feed subscription.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from realtime.feed import ChangeEvent, ChangeFeed, Subscription


logger = logging.getLogger(__name__)


TEMP_ID_PREFIX = "temp-"
DUPLICATE_WINDOW = timedelta(seconds=5)
SETTLED_STATUSES = frozenset({"completed", "responded"})


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ChatMessage(BaseModel):
    """One row of the local message list."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    conversation_id: str = Field(
        validation_alias=AliasChoices("conversation_id", "conversationId")
    )
    content: str = ""
    sender: str
    status: str
    message_type: str = Field(
        default="text", validation_alias=AliasChoices("message_type", "messageType")
    )
    metadata: Optional[dict[str, Any]] = None
    client_key: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("client_key", "clientKey")
    )
    created_at: datetime = Field(
        default_factory=_utc_now,
        validation_alias=AliasChoices("created_at", "createdAt"),
    )

    @field_validator("created_at")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def is_local(self) -> bool:
        return self.id.startswith(TEMP_ID_PREFIX)


class MessageReconciler:
    """
    Optimistic message list for one conversation.

    Inserts are matched in order: by id (ignored), by client key (the local
    row is replaced by the server row), then for user rows without a key by
    the content heuristic (same content and sender within five seconds; the
    local twin adopts the server id). Anything else is appended.
    """

    def __init__(
        self,
        conversation_id: str,
        messages: Optional[Iterable[ChatMessage]] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.conversation_id = conversation_id
        self._messages: list[ChatMessage] = list(messages or [])
        self._clock = clock
        self.agent_thinking = False
        self._derive_thinking()

    @property
    def messages(self) -> list[ChatMessage]:
        return list(self._messages)

    def _index_of(self, message_id: str) -> Optional[int]:
        for index, message in enumerate(self._messages):
            if message.id == message_id:
                return index
        return None

    def _derive_thinking(self) -> None:
        if not self._messages:
            return
        last = self._messages[-1]
        if last.sender == "user" and last.status == "sent":
            self.agent_thinking = True
        elif last.sender == "agent" and last.status in SETTLED_STATUSES:
            self.agent_thinking = False

    def submit_local(self, content: str) -> ChatMessage:
        """Append an optimistic user row before the server has seen it."""
        message = ChatMessage(
            id=f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}",
            conversation_id=self.conversation_id,
            content=content,
            sender="user",
            status="sent",
            client_key=str(uuid.uuid4()),
            created_at=self._clock(),
        )
        self._messages.append(message)
        self.agent_thinking = True
        self._derive_thinking()
        return message

    def _find_twin(self, incoming: ChatMessage) -> Optional[int]:
        for index, message in enumerate(self._messages):
            if not message.is_local or message.sender != incoming.sender:
                continue
            if message.content != incoming.content:
                continue
            if abs(incoming.created_at - message.created_at) <= DUPLICATE_WINDOW:
                return index
        return None

    def apply_insert(self, row: dict[str, Any]) -> bool:
        """Reconcile a server insert. Returns True when the list changed."""
        incoming = ChatMessage.model_validate(row)

        if self._index_of(incoming.id) is not None:
            return False

        if incoming.client_key is not None:
            for index, message in enumerate(self._messages):
                if message.is_local and message.client_key == incoming.client_key:
                    self._messages[index] = incoming
                    self._derive_thinking()
                    return True
        elif incoming.sender == "user":
            twin = self._find_twin(incoming)
            if twin is not None:
                # Adopt the server id so later updates find the row.
                self._messages[twin] = self._messages[twin].model_copy(
                    update={"id": incoming.id}
                )
                self._derive_thinking()
                return False

        self._messages.append(incoming)
        self._derive_thinking()
        return True

    def apply_update(self, row: dict[str, Any]) -> bool:
        """Apply a server update to the row with the same id."""
        incoming = ChatMessage.model_validate(row)
        index = self._index_of(incoming.id)
        if index is None:
            logger.debug("Update for unknown message %s ignored.", incoming.id)
            return False

        self._messages[index] = self._messages[index].model_copy(
            update={
                "content": incoming.content,
                "status": incoming.status,
                "metadata": incoming.metadata,
                "message_type": incoming.message_type,
            }
        )
        if incoming.status in SETTLED_STATUSES:
            self.agent_thinking = False
        self._derive_thinking()
        return True

    def apply(self, event: ChangeEvent) -> bool:
        if event.table != "messages" or event.conversation_id != self.conversation_id:
            return False
        if event.event == "insert":
            return self.apply_insert(event.row)
        if event.event == "update":
            return self.apply_update(event.row)
        return False


class DeliveryBridge:
    """Forwards one conversation's change events into a reconciler."""

    def __init__(self, feed: ChangeFeed, reconciler: MessageReconciler) -> None:
        self._feed = feed
        self.reconciler = reconciler
        self._subscription: Optional[Subscription] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _forward(self, subscription: Subscription) -> None:
        async for event in subscription:
            try:
                self.reconciler.apply(event)
            except ValueError:
                logger.warning(
                    "Malformed %s event for conversation %s dropped.",
                    event.event,
                    event.conversation_id,
                )

    def start(self) -> None:
        """Subscribe and start forwarding. Must be called inside a running loop."""
        if self.running:
            return
        self._subscription = self._feed.subscribe(self.reconciler.conversation_id)
        self._task = asyncio.get_running_loop().create_task(
            self._forward(self._subscription)
        )
        logger.debug("Delivery started for conversation %s.", self.reconciler.conversation_id)

    async def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def switch(
        self, conversation_id: str, reconciler: Optional[MessageReconciler] = None
    ) -> MessageReconciler:
        """Tear down the current subscription and follow another conversation."""
        await self.stop()
        self.reconciler = reconciler or MessageReconciler(conversation_id)
        if self.reconciler.conversation_id != conversation_id:
            raise ValueError("Reconciler belongs to a different conversation")
        self.start()
        return self.reconciler


__all__ = [
    "ChatMessage",
    "DUPLICATE_WINDOW",
    "DeliveryBridge",
    "MessageReconciler",
    "SETTLED_STATUSES",
    "TEMP_ID_PREFIX",
]
