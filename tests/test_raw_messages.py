"""Boundary validation of raw runtime message records."""

import pytest
from langchain_core.messages import AIMessage, HumanMessage, ToolMessage
from pydantic import ValidationError

from messages.raw import (
    AIRawMessage,
    HumanRawMessage,
    OpaqueRawMessage,
    TextBlock,
    ToolRawMessage,
    ToolUseBlock,
    OpaqueBlock,
    flatten_content,
    parse_raw_message,
    parse_raw_messages,
    to_raw_messages,
)


def _record(role: str, **kwargs) -> dict:
    return {
        "lc": 1,
        "type": "constructor",
        "id": ["langchain", "schema", "messages", role],
        "kwargs": kwargs,
    }


def test_roles_map_to_typed_records():
    assert isinstance(parse_raw_message(_record("HumanMessage", content="q")), HumanRawMessage)
    assert isinstance(parse_raw_message(_record("AIMessage", content="a")), AIRawMessage)
    assert isinstance(
        parse_raw_message(_record("ToolMessage", content="r", tool_call_id="c")), ToolRawMessage
    )


def test_unknown_role_and_non_constructor_are_opaque():
    assert isinstance(parse_raw_message(_record("ChatMessageChunk")), OpaqueRawMessage)
    opaque = parse_raw_message({"lc": 1, "type": "secret", "id": ["OPENAI_API_KEY"]})
    assert isinstance(opaque, OpaqueRawMessage)


def test_dotted_type_path_is_accepted():
    record = {"type": "constructor", "id": "langchain.schema.messages.AIMessage", "kwargs": {}}
    parsed = parse_raw_message(record)
    assert isinstance(parsed, AIRawMessage)
    assert parsed.role == "AIMessage"


def test_constructor_without_role_is_rejected():
    with pytest.raises(ValidationError):
        parse_raw_message({"lc": 1, "type": "constructor", "id": []})


def test_parse_raw_messages_quarantines_bad_records_and_keeps_order():
    parsed = parse_raw_messages(
        [
            _record("HumanMessage", content="q"),
            42,
            _record("AIMessage", content="a", tool_calls=None),
        ]
    )
    assert [type(p) for p in parsed] == [HumanRawMessage, AIRawMessage]
    assert parsed[1].payload.tool_calls == []


def test_tool_call_arguments_alias():
    record = _record(
        "AIMessage",
        content="",
        tool_calls=[{"name": "brave_web_search", "arguments": {"query": "x"}, "id": "c"}],
    )
    call = parse_raw_message(record).payload.tool_calls[0]
    assert call.args == {"query": "x"}


def test_content_blocks_are_tagged():
    record = _record(
        "AIMessage",
        content=[
            "bare string",
            {"type": "text", "text": "t"},
            {"type": "tool_use", "id": "c", "name": "n", "input": {}},
            {"type": "image_url", "image_url": "data:"},
        ],
    )
    blocks = parse_raw_message(record).payload.content
    assert [type(b) for b in blocks] == [TextBlock, TextBlock, ToolUseBlock, OpaqueBlock]
    assert blocks[0].text == "bare string"
    assert flatten_content(blocks) == "bare string"


def test_to_raw_messages_round_trips_runtime_messages():
    parsed = to_raw_messages(
        [
            HumanMessage(content="q"),
            AIMessage(content="a"),
            ToolMessage(content="r", tool_call_id="c", name="wikipedia_lookup"),
        ]
    )
    assert [p.role for p in parsed] == ["HumanMessage", "AIMessage", "ToolMessage"]
    assert parsed[2].payload.name == "wikipedia_lookup"
    assert parsed[2].payload.tool_call_id == "c"
