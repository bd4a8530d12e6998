import logging
from typing import Protocol, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage


logger = logging.getLogger(__name__)


class HistoryRow(Protocol):
    sender: str
    content: str
    message_type: str


def history_to_messages(
    rows: Sequence[HistoryRow], tool_result_lookback: int = 8
) -> list[BaseMessage]:
    """
    Convert persisted message rows into runtime messages for replay.

    - tool_call rows are dropped; the results carry the useful information.
    - tool_result rows are kept only within the last `tool_result_lookback` rows.
    - user rows become HumanMessages, everything else AIMessages.
    """
    total = len(rows)
    converted: list[BaseMessage] = []
    for index, row in enumerate(rows):
        if row.message_type == "tool_call":
            continue
        if row.message_type == "tool_result":
            if index < total - tool_result_lookback:
                continue
            converted.append(AIMessage(content=f"[tool_result]\n{row.content}"))
            continue
        if row.sender == "user":
            converted.append(HumanMessage(content=row.content))
        else:
            converted.append(AIMessage(content=row.content))

    logger.debug("Replaying %d of %d persisted rows as history.", len(converted), total)
    return converted


def prompt_window(messages: Sequence[BaseMessage]) -> list[BaseMessage]:
    """
    Bound the messages sent to a model.

    The current turn (from the last HumanMessage on) is kept in full. Earlier
    turns keep only their human messages and plain AI replies, so that stale
    tool traffic does not accumulate across turns.
    """
    cut = -1
    for index, message in enumerate(messages):
        if isinstance(message, HumanMessage):
            cut = index
    if cut <= 0:
        return list(messages)

    earlier = [
        message
        for message in messages[:cut]
        if isinstance(message, HumanMessage)
        or (isinstance(message, AIMessage) and not message.tool_calls)
    ]
    return earlier + list(messages[cut:])


__all__ = ["HistoryRow", "history_to_messages", "prompt_window"]
