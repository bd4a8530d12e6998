"""
Pydantic schemas for the chat API.

Request bodies accept the camelCase field names used by the web client.
Responses are serialized by alias, so the client sees camelCase as well.
"""

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ChatRequest(CamelModel):
    """Body of POST /api/chat."""

    message: str = ""
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    client_key: Optional[str] = Field(default=None, alias="clientKey")

    @field_validator("message", mode="before")
    @classmethod
    def none_as_blank(cls, value: Any) -> Any:
        return "" if value is None else value


class ChatResponse(CamelModel):
    success: bool = True
    message_id: str = Field(alias="messageId")
    conversation_id: str = Field(alias="conversationId")


class RenameRequest(CamelModel):
    title: str = Field(..., min_length=1)


class ConversationOut(CamelModel):
    id: str
    title: str
    created_at: datetime = Field(alias="createdAt")


class MessageOut(CamelModel):
    id: str
    conversation_id: str = Field(alias="conversationId")
    content: str
    sender: str
    status: str
    message_type: str = Field(alias="messageType")
    metadata: Optional[dict[str, Any]] = None
    client_key: Optional[str] = Field(default=None, alias="clientKey")
    tool_output: Optional[Union[list, dict, str]] = Field(default=None, alias="toolOutput")
    created_at: datetime = Field(alias="createdAt")


class UsageOut(CamelModel):
    conversation_id: str = Field(alias="conversationId")
    input_tokens: int = Field(default=0, alias="inputTokens")
    output_tokens: int = Field(default=0, alias="outputTokens")
    cost: float = 0.0


__all__ = [
    "ChatRequest",
    "ChatResponse",
    "ConversationOut",
    "MessageOut",
    "RenameRequest",
    "UsageOut",
]
