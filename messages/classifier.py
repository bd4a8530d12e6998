"""
Classification of a raw agent-runtime message list into a typed trace.

Only the current turn is classified: everything up to and including the most
recent HumanMessage is discarded. Within the remaining window each AI message
becomes a `tool_call` (when it invokes tools), the final `message` (when it is
the last AI message of the window) or an intermediate `thought`; each tool
message becomes a `tool_result`.
"""

import logging
from typing import Any, Literal, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from messages.raw import (
    ERROR_SENTINEL,
    HUMAN,
    PROCESSING_PLACEHOLDER,
    AIRawMessage,
    RawMessageBase,
    ToolRawMessage,
    content_verbatim,
    flatten_content,
    message_role,
    parse_raw_messages,
)
from tools.schemas import TOOL_OUTPUT_SCHEMAS, ToolOutputSchema


logger = logging.getLogger(__name__)


AgentMessageKind = Literal["message", "thought", "tool_call", "tool_result"]

# Transient placeholders that are never part of a trace.
RESERVED_CONTENT = frozenset({PROCESSING_PLACEHOLDER, ERROR_SENTINEL})


class AgentMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: AgentMessageKind
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)


def _find_cut_point(records: Sequence[Any]) -> int:
    # Decided on the unvalidated records by role alone, so a human turn still
    # bounds the window when its record is malformed or not a constructor.
    cut = -1
    for index, record in enumerate(records):
        if message_role(record) == HUMAN:
            cut = index
    return cut


def _is_classifiable(message: RawMessageBase) -> bool:
    if not isinstance(message, (AIRawMessage, ToolRawMessage)):
        return False
    return flatten_content(message.payload.content) not in RESERVED_CONTENT


def _classify_ai(message: AIRawMessage, is_last: bool) -> AgentMessage:
    payload = message.payload
    usage = payload.usage_metadata.model_dump() if payload.usage_metadata else None
    metadata = {
        "tool_calls": [call.model_dump() for call in payload.tool_calls],
        "usage_metadata": usage,
    }
    if payload.tool_calls:
        kind: AgentMessageKind = "tool_call"
    elif is_last:
        kind = "message"
    else:
        kind = "thought"
    return AgentMessage(
        kind=kind,
        content=flatten_content(payload.content),
        metadata=metadata,
    )


def _classify_tool_result(
    message: ToolRawMessage, tool_schemas: Mapping[str, str]
) -> AgentMessage:
    payload = message.payload
    return AgentMessage(
        kind="tool_result",
        content=content_verbatim(payload.content),
        metadata={
            "tool_call_id": payload.tool_call_id,
            "tool_name": payload.name,
            "output_schema": tool_schemas.get(
                payload.name or "", ToolOutputSchema.TEXT.value
            ),
        },
    )


def classify(
    raw: Any, tool_schemas: Optional[Mapping[str, str]] = None
) -> list[AgentMessage]:
    """
    Classify a raw runtime message list into the current turn's trace.

    Pure and deterministic: the input is never mutated and repeated calls on
    the same input produce equal output. Non-list or empty input yields [].
    """
    if not isinstance(raw, (list, tuple)) or not raw:
        return []

    schemas = TOOL_OUTPUT_SCHEMAS if tool_schemas is None else tool_schemas
    cut = _find_cut_point(raw)
    window = [
        message
        for message in parse_raw_messages(raw[cut + 1 :])
        if _is_classifiable(message)
    ]

    # The final answer is chosen by position in the filtered window, so two
    # AI messages with identical content are still told apart.
    last_ai_index = -1
    for index, message in enumerate(window):
        if isinstance(message, AIRawMessage):
            last_ai_index = index

    trace: list[AgentMessage] = []
    for index, message in enumerate(window):
        if isinstance(message, AIRawMessage):
            trace.append(_classify_ai(message, is_last=index == last_ai_index))
        elif isinstance(message, ToolRawMessage):
            trace.append(_classify_tool_result(message, schemas))

    logger.debug(
        "Classified %d raw messages into %d trace entries (cut point %d).",
        len(raw),
        len(trace),
        cut,
    )
    return trace


__all__ = ["AgentMessage", "AgentMessageKind", "RESERVED_CONTENT", "classify"]
