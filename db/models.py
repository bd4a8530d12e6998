"""SQLAlchemy ORM models for conversations, messages and usage.

Uses SQLAlchemy 2.0 style with Mapped and mapped_column. A conversation owns
its message rows and its usage row; deleting it cascades to both.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def generate_uuid() -> str:
    """Generate a UUID4 string for primary keys."""
    return str(uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


TITLE_MAX_LENGTH = 50


class MessageSender(str, Enum):
    user = "user"
    agent = "agent"


class MessageStatus(str, Enum):
    """Status values for message rows.

    Lifecycle: user rows sent -> responded once the agent reply is persisted.
               agent rows are written as completed and never change.
               completed, responded and error are terminal; see STATUS_TRANSITIONS.
    """

    sent = "sent"
    processing = "processing"
    completed = "completed"
    error = "error"
    responded = "responded"


# Allowed status changes; statuses without an entry are terminal.
STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    MessageStatus.sent.value: frozenset(
        {MessageStatus.processing.value, MessageStatus.responded.value, MessageStatus.error.value}
    ),
    MessageStatus.processing.value: frozenset(
        {MessageStatus.responded.value, MessageStatus.error.value, MessageStatus.completed.value}
    ),
}


class MessageType(str, Enum):
    text = "text"
    message = "message"
    thought = "thought"
    tool_call = "tool_call"
    tool_result = "tool_result"
    error = "error"


class Base(DeclarativeBase):
    pass


class Conversation(Base):
    """A chat conversation, owned by exactly one user. Only `title` changes."""

    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    title: Mapped[str] = mapped_column(String(TITLE_MAX_LENGTH), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    messages: Mapped[list["Message"]] = relationship(
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.created_at",
    )
    usage: Mapped[Optional["ConversationUsage"]] = relationship(
        cascade="all, delete-orphan",
        uselist=False,
    )


class Message(Base):
    """A persisted chat message: user text or one classified agent trace entry."""

    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_conversation_created", "conversation_id", "created_at"),
        Index("ix_messages_conversation_client_key", "conversation_id", "client_key"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    conversation_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    sender: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MessageStatus.sent.value
    )
    message_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MessageType.text.value
    )
    # `metadata` is reserved on declarative classes, hence the attribute name.
    metadata_json: Mapped[Optional[dict[str, Any]]] = mapped_column(
        "metadata", JSON, nullable=True
    )
    client_key: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    conversation: Mapped[Conversation] = relationship(back_populates="messages")


class ConversationUsage(Base):
    """Accumulated token usage and cost of a conversation."""

    __tablename__ = "conversation_usage"

    conversation_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    input_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    output_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )
