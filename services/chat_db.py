"""Persistence service for conversations, message rows and usage.

Thin layer between the API/processing code and the SQLAlchemy models. Every
operation runs in its own short-lived session. Storage failures surface as
`DatabaseError`, except for the bookkeeping operations that report success as
a bool (batch insert, status update, usage update). Every committed message
insert or update, and every conversation create, rename or delete, is
published to the change feed when one is configured.
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator, Optional, Sequence

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from db.models import (
    TITLE_MAX_LENGTH,
    Conversation,
    ConversationUsage,
    Message,
    MessageStatus,
    MessageType,
    STATUS_TRANSITIONS,
    utc_now,
)
from realtime.feed import ChangeEvent, ChangeFeed


logger = logging.getLogger(__name__)


class DatabaseError(Exception):
    """Storage or transport failure in the persistence layer."""


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ConversationRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    user_id: str
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    def to_row(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class MessageRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    conversation_id: str
    content: str
    sender: str
    status: str
    message_type: str
    metadata: Optional[dict[str, Any]] = Field(
        default=None, validation_alias=AliasChoices("metadata_json", "metadata")
    )
    client_key: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def ensure_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    def to_row(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class UsageSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    conversation_id: str
    user_id: str
    input_tokens: int
    output_tokens: int
    cost: float


class NewMessage(BaseModel):
    """One row of a batch insert."""

    conversation_id: str
    content: str
    sender: str
    status: str
    message_type: str = MessageType.text.value
    metadata: Optional[dict[str, Any]] = None
    client_key: Optional[str] = None


class ChatDBService:
    """CRUD and bookkeeping operations for the chat.

    Args:
        session_factory: Session factory bound to the target engine.
        feed: Optional change feed notified after message commits.
    """

    def __init__(self, session_factory: sessionmaker, feed: Optional[ChangeFeed] = None) -> None:
        self._session_factory = session_factory
        self._feed = feed

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        session: Session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Database error during %s: %s", operation, exc)
            raise DatabaseError(f"{operation} failed") from exc
        finally:
            session.close()

    def _publish(self, kind: str, record: MessageRecord) -> None:
        if self._feed is None:
            return
        self._feed.publish(ChangeEvent(kind, record.conversation_id, record.to_row()))

    def _publish_conversation(self, kind: str, record: ConversationRecord) -> None:
        if self._feed is None:
            return
        self._feed.publish(ChangeEvent(kind, record.id, record.to_row(), table="conversations"))

    # Conversations

    def create_conversation(self, owner_id: str, title_seed: str) -> ConversationRecord:
        """Create a conversation titled with the first 50 characters of `title_seed`."""
        with self._session("create_conversation") as session:
            conversation = Conversation(
                user_id=owner_id,
                title=(title_seed or "")[:TITLE_MAX_LENGTH],
            )
            session.add(conversation)
            session.commit()
            record = ConversationRecord.model_validate(conversation)
        logger.info("Created conversation %s for user %s.", record.id, owner_id)
        self._publish_conversation("insert", record)
        return record

    def verify_ownership(self, conversation_id: str, user_id: str) -> bool:
        """True when the conversation exists and belongs to `user_id`.

        A miss is a normal outcome and returns False.
        """
        with self._session("verify_ownership") as session:
            found = session.execute(
                select(Conversation.id).where(
                    Conversation.id == conversation_id,
                    Conversation.user_id == user_id,
                )
            ).first()
        return found is not None

    def get_conversation_user_id(self, conversation_id: str) -> Optional[str]:
        with self._session("get_conversation_user_id") as session:
            return session.execute(
                select(Conversation.user_id).where(Conversation.id == conversation_id)
            ).scalar_one_or_none()

    def list_conversations(self, user_id: str) -> list[ConversationRecord]:
        with self._session("list_conversations") as session:
            conversations = session.scalars(
                select(Conversation)
                .where(Conversation.user_id == user_id)
                .order_by(Conversation.created_at.desc())
            ).all()
            return [ConversationRecord.model_validate(c) for c in conversations]

    def rename_conversation(self, conversation_id: str, user_id: str, title: str) -> bool:
        with self._session("rename_conversation") as session:
            conversation = session.execute(
                select(Conversation).where(
                    Conversation.id == conversation_id,
                    Conversation.user_id == user_id,
                )
            ).scalar_one_or_none()
            if conversation is None:
                return False
            conversation.title = title[:TITLE_MAX_LENGTH]
            session.commit()
            record = ConversationRecord.model_validate(conversation)
        self._publish_conversation("update", record)
        return True

    def delete_conversation(self, conversation_id: str, user_id: str) -> bool:
        """Delete a conversation with its messages and usage in one transaction.

        Returns False when the conversation does not exist or is not owned by
        `user_id`; nothing is deleted in that case.
        """
        with self._session("delete_conversation") as session:
            conversation = session.execute(
                select(Conversation).where(
                    Conversation.id == conversation_id,
                    Conversation.user_id == user_id,
                )
            ).scalar_one_or_none()
            if conversation is None:
                return False
            record = ConversationRecord.model_validate(conversation)
            session.execute(delete(Message).where(Message.conversation_id == conversation_id))
            session.execute(
                delete(ConversationUsage).where(
                    ConversationUsage.conversation_id == conversation_id
                )
            )
            session.execute(delete(Conversation).where(Conversation.id == conversation_id))
            session.commit()
        logger.info("Deleted conversation %s.", conversation_id)
        self._publish_conversation("delete", record)
        return True

    # Messages

    def get_conversation_history(self, conversation_id: str) -> list[MessageRecord]:
        """All rows of a conversation, oldest first."""
        with self._session("get_conversation_history") as session:
            rows = session.scalars(
                select(Message)
                .where(Message.conversation_id == conversation_id)
                .order_by(Message.created_at.asc())
            ).all()
            return [MessageRecord.model_validate(row) for row in rows]

    def insert_message(
        self,
        conversation_id: str,
        content: str,
        sender: str,
        status: str,
        message_type: str = MessageType.text.value,
        metadata: Optional[dict[str, Any]] = None,
        client_key: Optional[str] = None,
    ) -> MessageRecord:
        with self._session("insert_message") as session:
            message = Message(
                conversation_id=conversation_id,
                content=content,
                sender=sender,
                status=status,
                message_type=message_type,
                metadata_json=metadata,
                client_key=client_key,
            )
            session.add(message)
            session.commit()
            record = MessageRecord.model_validate(message)
        self._publish("insert", record)
        return record

    def insert_messages(self, batch: Sequence[NewMessage]) -> bool:
        """Insert a batch atomically: either every row is committed or none is.

        Rows get strictly increasing timestamps in batch order so that history
        reads return them in the order given.
        """
        if not batch:
            return True

        base = utc_now()
        try:
            with self._session("insert_messages") as session:
                rows = [
                    Message(
                        conversation_id=item.conversation_id,
                        content=item.content,
                        sender=item.sender,
                        status=item.status,
                        message_type=item.message_type,
                        metadata_json=item.metadata,
                        client_key=item.client_key,
                        created_at=base + timedelta(microseconds=offset),
                        updated_at=base + timedelta(microseconds=offset),
                    )
                    for offset, item in enumerate(batch)
                ]
                session.add_all(rows)
                session.commit()
                records = [MessageRecord.model_validate(row) for row in rows]
        except DatabaseError:
            logger.error("Batch insert of %d messages failed; nothing was committed.", len(batch))
            return False

        for record in records:
            self._publish("insert", record)
        return True

    def update_message_status(self, message_id: str, status: str) -> bool:
        try:
            with self._session("update_message_status") as session:
                message = session.get(Message, message_id)
                if message is None:
                    logger.warning("Cannot update status of unknown message %s.", message_id)
                    return False
                if status not in STATUS_TRANSITIONS.get(message.status, frozenset()):
                    logger.warning(
                        "Rejected status change of message %s from %s to %s.",
                        message_id,
                        message.status,
                        status,
                    )
                    return False
                message.status = status
                session.commit()
                record = MessageRecord.model_validate(message)
        except DatabaseError:
            return False

        self._publish("update", record)
        return True

    # Usage

    def update_usage(
        self,
        user_id: str,
        conversation_id: str,
        input_tokens: int,
        output_tokens: int,
        cost: float,
    ) -> bool:
        """Accumulate usage with a database-side increment.

        Concurrent callers never lose updates: the increment is a single
        UPDATE ... SET x = x + ?, and a concurrent first insert falls back to
        the increment.
        """
        increment = (
            update(ConversationUsage)
            .where(ConversationUsage.conversation_id == conversation_id)
            .values(
                input_tokens=ConversationUsage.input_tokens + input_tokens,
                output_tokens=ConversationUsage.output_tokens + output_tokens,
                cost=ConversationUsage.cost + cost,
                updated_at=utc_now(),
            )
        )
        try:
            with self._session("update_usage") as session:
                result = session.execute(increment)
                if result.rowcount == 0:
                    session.add(
                        ConversationUsage(
                            conversation_id=conversation_id,
                            user_id=user_id,
                            input_tokens=input_tokens,
                            output_tokens=output_tokens,
                            cost=cost,
                        )
                    )
                    try:
                        session.commit()
                    except IntegrityError:
                        # Either a concurrent first insert won, or the
                        # conversation does not exist.
                        session.rollback()
                        retried = session.execute(increment)
                        session.commit()
                        if retried.rowcount == 0:
                            logger.warning(
                                "Usage for unknown conversation %s was not recorded.",
                                conversation_id,
                            )
                            return False
                else:
                    session.commit()
        except DatabaseError:
            return False
        return True

    def get_usage_summary(self, conversation_id: str) -> Optional[UsageSummary]:
        with self._session("get_usage_summary") as session:
            usage = session.get(ConversationUsage, conversation_id)
            return UsageSummary.model_validate(usage) if usage is not None else None


__all__ = [
    "ChatDBService",
    "ConversationRecord",
    "DatabaseError",
    "MessageRecord",
    "MessageStatus",
    "NewMessage",
    "UsageSummary",
]
