"""
Typed model of the raw message records emitted by the agent runtime.

The runtime serializes LangChain messages in their constructor form:

    {"lc": 1, "type": "constructor",
     "id": ["langchain", "schema", "messages", "AIMessage"],
     "kwargs": {"content": ..., "tool_calls": [...], "usage_metadata": {...}}}

Records are validated into an explicit tagged union at the runtime boundary.
Anything that is not a "constructor" record, or whose role is not one of the
four message roles, becomes an `OpaqueRawMessage` and is ignored downstream.
Records that are structurally malformed are quarantined (logged and dropped)
by `parse_raw_messages` instead of being classified.
"""

import json
import logging
from typing import Annotated, Any, Iterable, Optional, Union, Literal

from langchain_core.load import dumpd
from langchain_core.messages import BaseMessage
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    ValidationError,
    field_validator,
)


logger = logging.getLogger(__name__)


ERROR_SENTINEL = "I encountered an error while processing your request. Please try again."
PROCESSING_PLACEHOLDER = "Processing your message..."

HUMAN = "HumanMessage"
AI = "AIMessage"
SYSTEM = "SystemMessage"
TOOL = "ToolMessage"
MESSAGE_ROLES = (HUMAN, AI, SYSTEM, TOOL)


class TextBlock(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["text"] = "text"
    text: str = ""


class ToolUseBlock(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: Literal["tool_use"] = "tool_use"
    tool_call_id: Optional[str] = Field(default=None, alias="id")
    tool_name: Optional[str] = Field(default=None, alias="name")
    tool_input: Any = Field(default=None, alias="input")


class OpaqueBlock(BaseModel):
    """Any content block other than text or tool_use (images, thinking, ...)."""

    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None


def _block_tag(value: Any) -> str:
    if isinstance(value, dict):
        kind = value.get("type")
    else:
        kind = getattr(value, "type", None)
    return kind if kind in ("text", "tool_use") else "opaque"


ContentBlock = Annotated[
    Union[
        Annotated[TextBlock, Tag("text")],
        Annotated[ToolUseBlock, Tag("tool_use")],
        Annotated[OpaqueBlock, Tag("opaque")],
    ],
    Discriminator(_block_tag),
]

Content = Union[str, list[ContentBlock]]


class ToolCall(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    args: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("args", "arguments"),
    )
    id: Optional[str] = None
    type: str = "tool_call"


class UsageMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    input_tokens: int = Field(
        default=0, validation_alias=AliasChoices("input_tokens", "inputTokens")
    )
    output_tokens: int = Field(
        default=0, validation_alias=AliasChoices("output_tokens", "outputTokens")
    )
    total_tokens: int = Field(
        default=0, validation_alias=AliasChoices("total_tokens", "totalTokens")
    )


class MessagePayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    content: Content = ""
    # Stable runtime message id, when the runtime assigns one.
    id: Optional[str] = None

    @field_validator("content", mode="before")
    @classmethod
    def wrap_bare_strings(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [
                {"type": "text", "text": item} if isinstance(item, str) else item
                for item in value
            ]
        return value


class AIPayload(MessagePayload):
    tool_calls: list[ToolCall] = Field(
        default_factory=list,
        validation_alias=AliasChoices("tool_calls", "toolCalls"),
    )
    usage_metadata: Optional[UsageMetadata] = Field(
        default=None,
        validation_alias=AliasChoices("usage_metadata", "usageMetadata"),
    )

    @field_validator("tool_calls", mode="before")
    @classmethod
    def none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class ToolPayload(MessagePayload):
    tool_call_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("tool_call_id", "toolCallId")
    )
    name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("name", "toolName")
    )


class RawMessageBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    schema_version: int = Field(default=1, alias="lc")
    kind: str = Field(default="constructor", alias="type")
    type_path: list[str] = Field(default_factory=list, alias="id")

    @field_validator("type_path", mode="before")
    @classmethod
    def split_dotted_path(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [part for part in value.split(".") if part]
        return value

    @property
    def role(self) -> Optional[str]:
        return self.type_path[-1] if self.type_path else None


class HumanRawMessage(RawMessageBase):
    payload: MessagePayload = Field(default_factory=MessagePayload, alias="kwargs")


class SystemRawMessage(RawMessageBase):
    payload: MessagePayload = Field(default_factory=MessagePayload, alias="kwargs")


class AIRawMessage(RawMessageBase):
    payload: AIPayload = Field(default_factory=AIPayload, alias="kwargs")


class ToolRawMessage(RawMessageBase):
    payload: ToolPayload = Field(default_factory=ToolPayload, alias="kwargs")


class OpaqueRawMessage(RawMessageBase):
    """Non-message metadata or an unknown role; never classified."""

    payload: dict[str, Any] = Field(default_factory=dict, alias="kwargs")


def message_role(value: Any) -> Optional[str]:
    """
    Terminal segment of a record's type path, whatever its record kind.

    Works on unvalidated dicts as well as parsed records, so a turn boundary
    is still visible when the record itself would be quarantined.
    """
    if isinstance(value, RawMessageBase):
        path: Any = value.type_path
    elif isinstance(value, dict):
        path = value.get("id")
    else:
        return None
    if isinstance(path, str):
        path = [part for part in path.split(".") if part]
    if not isinstance(path, (list, tuple)) or not path or not isinstance(path[-1], str):
        return None
    return path[-1]


def _raw_tag(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        kind = value.get("type", "constructor")
    elif isinstance(value, RawMessageBase):
        kind = value.kind
    else:
        return None

    if kind != "constructor":
        return "opaque"
    role = message_role(value)
    if role is None:
        # A constructor record without a role is malformed; returning None
        # makes validation fail so the record is quarantined.
        return None
    return role if role in MESSAGE_ROLES else "opaque"


RawMessage = Annotated[
    Union[
        Annotated[HumanRawMessage, Tag(HUMAN)],
        Annotated[AIRawMessage, Tag(AI)],
        Annotated[SystemRawMessage, Tag(SYSTEM)],
        Annotated[ToolRawMessage, Tag(TOOL)],
        Annotated[OpaqueRawMessage, Tag("opaque")],
    ],
    Discriminator(_raw_tag),
]

_raw_message_adapter: TypeAdapter = TypeAdapter(RawMessage)


def parse_raw_message(payload: Any) -> RawMessageBase:
    """Validate a single record. Raises `pydantic.ValidationError` when malformed."""
    if isinstance(payload, RawMessageBase):
        return payload
    return _raw_message_adapter.validate_python(payload)


def parse_raw_messages(payloads: Iterable[Any]) -> list[RawMessageBase]:
    """
    Validate a runtime message list, quarantining malformed records.

    Order is preserved for every record that validates.
    """
    parsed: list[RawMessageBase] = []
    for index, payload in enumerate(payloads):
        try:
            parsed.append(parse_raw_message(payload))
        except ValidationError as exc:
            logger.warning(
                "Quarantined malformed raw message at index %d: %s",
                index,
                exc.errors(include_url=False),
            )
    return parsed


def to_raw_messages(messages: Iterable[BaseMessage]) -> list[RawMessageBase]:
    """Serialize runtime messages to their wire form and validate them."""
    return parse_raw_messages(dumpd(message) for message in messages)


def _dump_blocks(blocks: list[Any]) -> str:
    return json.dumps(
        [block.model_dump(by_alias=True, exclude_none=True) for block in blocks],
        ensure_ascii=False,
    )


def flatten_content(content: Content) -> str:
    """
    Flatten message content to a single string.

    A plain string is returned as-is. For block lists the first text block
    wins; a list without any text block falls back to its JSON encoding.
    """
    if isinstance(content, str):
        return content
    for block in content:
        if isinstance(block, TextBlock):
            return block.text
    return _dump_blocks(content)


def content_verbatim(content: Content) -> str:
    """Content as stored for tool results: strings untouched, blocks as JSON."""
    if isinstance(content, str):
        return content
    return _dump_blocks(content)


__all__ = [
    "AI",
    "AIPayload",
    "AIRawMessage",
    "ContentBlock",
    "ERROR_SENTINEL",
    "HUMAN",
    "HumanRawMessage",
    "MESSAGE_ROLES",
    "MessagePayload",
    "OpaqueBlock",
    "OpaqueRawMessage",
    "PROCESSING_PLACEHOLDER",
    "RawMessage",
    "RawMessageBase",
    "SYSTEM",
    "SystemRawMessage",
    "TOOL",
    "TextBlock",
    "ToolCall",
    "ToolPayload",
    "ToolRawMessage",
    "ToolUseBlock",
    "UsageMetadata",
    "content_verbatim",
    "flatten_content",
    "message_role",
    "parse_raw_message",
    "parse_raw_messages",
    "to_raw_messages",
]
