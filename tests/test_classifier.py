"""
Deterministic tests for `messages.classifier.classify`.

Raw inputs are built the way the runtime produces them: LangChain messages
serialized with `langchain_core.load.dumpd`.
"""

import copy
import json
import logging

from langchain_core.load import dumpd
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from messages.classifier import classify
from messages.raw import ERROR_SENTINEL, PROCESSING_PLACEHOLDER
from tools.schemas import ToolOutputSchema


logger = logging.getLogger(__name__)


SEARCH_CALL = {"name": "brave_web_search", "args": {"query": "q"}, "id": "call-1"}


def _raw(*messages):
    return [dumpd(message) for message in messages]


def _ai_record(content, **kwargs):
    return {
        "lc": 1,
        "type": "constructor",
        "id": ["langchain", "schema", "messages", "AIMessage"],
        "kwargs": {"content": content, **kwargs},
    }


def _kinds(trace):
    return [entry.kind for entry in trace]


def test_simple_question_and_answer():
    raw = _raw(
        HumanMessage(content="hi"),
        AIMessage(content="thinking..."),
        AIMessage(content="final answer"),
    )
    trace = classify(raw)
    logger.info("Simple Q&A trace: %s", trace)

    assert [(e.kind, e.content) for e in trace] == [
        ("thought", "thinking..."),
        ("message", "final answer"),
    ]


def test_tool_round_trip():
    results = json.dumps([{"title": "A", "link": "https://a.example", "snippet": "s"}])
    raw = _raw(
        HumanMessage(content="q"),
        AIMessage(content="", tool_calls=[SEARCH_CALL]),
        ToolMessage(content=results, tool_call_id="call-1", name="brave_web_search"),
        AIMessage(content="answer"),
    )
    trace = classify(raw)

    assert _kinds(trace) == ["tool_call", "tool_result", "message"]
    assert trace[0].metadata["tool_calls"][0]["name"] == "brave_web_search"
    assert trace[0].metadata["tool_calls"][0]["args"] == {"query": "q"}
    assert trace[1].content == results
    assert trace[1].metadata == {
        "tool_call_id": "call-1",
        "tool_name": "brave_web_search",
        "output_schema": ToolOutputSchema.SEARCH_RESULTS.value,
    }
    assert trace[2].content == "answer"


def test_processing_placeholder_is_suppressed():
    raw = _raw(
        HumanMessage(content="q"),
        AIMessage(content=PROCESSING_PLACEHOLDER),
        AIMessage(content="real answer"),
    )
    trace = classify(raw)

    assert [(e.kind, e.content) for e in trace] == [("message", "real answer")]


def test_error_sentinel_is_suppressed():
    raw = _raw(
        HumanMessage(content="q"),
        AIMessage(content="draft"),
        AIMessage(content=ERROR_SENTINEL),
    )
    trace = classify(raw)

    # The sentinel never counts as the last AI message.
    assert [(e.kind, e.content) for e in trace] == [("message", "draft")]


def test_only_current_turn_is_classified():
    first_turn = _raw(
        HumanMessage(content="first"),
        AIMessage(content="first answer"),
    )
    second_turn = _raw(
        HumanMessage(content="second"),
        AIMessage(content="second thought"),
        AIMessage(content="second answer"),
    )
    trace = classify(first_turn + second_turn)

    assert [e.content for e in trace] == ["second thought", "second answer"]
    assert classify(second_turn) == trace


def test_no_human_message_classifies_everything():
    raw = _raw(AIMessage(content="one"), AIMessage(content="two"))
    assert _kinds(classify(raw)) == ["thought", "message"]


def test_classify_is_idempotent_and_does_not_mutate():
    raw = _raw(
        HumanMessage(content="q"),
        AIMessage(content="", tool_calls=[SEARCH_CALL]),
        ToolMessage(content="[]", tool_call_id="call-1", name="brave_web_search"),
        AIMessage(content="answer"),
    )
    snapshot = copy.deepcopy(raw)

    assert classify(raw) == classify(raw)
    assert raw == snapshot


def test_at_most_one_message_and_it_is_last_ai_entry():
    raw = _raw(
        HumanMessage(content="q"),
        AIMessage(content="a"),
        AIMessage(content="", tool_calls=[SEARCH_CALL]),
        ToolMessage(content="[]", tool_call_id="call-1", name="brave_web_search"),
        AIMessage(content="b"),
        AIMessage(content="c"),
    )
    trace = classify(raw)

    finals = [i for i, e in enumerate(trace) if e.kind == "message"]
    assert len(finals) == 1
    ai_positions = [i for i, e in enumerate(trace) if e.kind != "tool_result"]
    assert finals[0] == ai_positions[-1]


def test_identical_content_final_is_chosen_by_position():
    raw = _raw(
        HumanMessage(content="q"),
        AIMessage(content="same"),
        AIMessage(content="same"),
    )
    assert _kinds(classify(raw)) == ["thought", "message"]


def test_empty_tool_calls_is_not_a_tool_call():
    raw = _raw(HumanMessage(content="q"), AIMessage(content="x", tool_calls=[]))
    assert _kinds(classify(raw)) == ["message"]

    raw = _raw(HumanMessage(content="q"), AIMessage(content="x", tool_calls=[SEARCH_CALL]))
    assert _kinds(classify(raw)) == ["tool_call"]


def test_tool_use_block_without_text_flattens_to_json():
    blocks = [{"type": "tool_use", "id": "t1", "name": "search", "input": {"q": "x"}}]
    raw = _raw(HumanMessage(content="q")) + [_ai_record(blocks)]
    trace = classify(raw)

    assert len(trace) == 1
    assert json.loads(trace[0].content) == blocks


def test_first_text_block_wins():
    blocks = [
        {"type": "tool_use", "id": "t1", "name": "search", "input": {}},
        {"type": "text", "text": "first"},
        {"type": "text", "text": "second"},
    ]
    raw = _raw(HumanMessage(content="q")) + [_ai_record(blocks)]
    assert classify(raw)[0].content == "first"


def test_non_list_and_empty_input():
    assert classify(None) == []
    assert classify([]) == []
    assert classify("not a list") == []
    assert classify({"lc": 1}) == []


def test_system_and_non_constructor_records_are_ignored():
    raw = _raw(HumanMessage(content="q"), SystemMessage(content="sys"))
    raw.append({"lc": 1, "type": "not_implemented", "id": ["x", "AIMessage"]})
    raw.append(dumpd(AIMessage(content="answer")))

    assert [(e.kind, e.content) for e in classify(raw)] == [("message", "answer")]


def test_malformed_records_are_quarantined():
    raw = _raw(HumanMessage(content="q"), AIMessage(content="answer"))
    raw.insert(1, {"lc": 1, "type": "constructor", "id": []})
    raw.insert(2, "garbage")

    assert [(e.kind, e.content) for e in classify(raw)] == [("message", "answer")]


def test_malformed_human_record_still_bounds_the_turn():
    raw = _raw(HumanMessage(content="q1"), AIMessage(content="old answer"))
    raw.append(
        {
            "lc": 1,
            "type": "constructor",
            "id": ["langchain", "schema", "messages", "HumanMessage"],
            "kwargs": {"content": None},
        }
    )
    raw.append(_ai_record("new answer"))

    trace = classify(raw)
    logger.info("Trace after malformed human record: %s", trace)

    assert [(e.kind, e.content) for e in trace] == [("message", "new answer")]


def test_non_constructor_human_record_still_bounds_the_turn():
    raw = [
        _ai_record("old"),
        {"lc": 1, "type": "not_implemented", "id": ["langchain", "schema", "messages", "HumanMessage"]},
        _ai_record("new"),
    ]

    assert [(e.kind, e.content) for e in classify(raw)] == [("message", "new")]


def test_usage_metadata_is_carried():
    message = AIMessage(
        content="answer",
        usage_metadata={"input_tokens": 10, "output_tokens": 5, "total_tokens": 15},
    )
    trace = classify(_raw(HumanMessage(content="q"), message))

    usage = trace[0].metadata["usage_metadata"]
    assert usage["input_tokens"] == 10
    assert usage["output_tokens"] == 5


def test_unknown_tool_gets_text_schema():
    raw = _raw(
        HumanMessage(content="q"),
        ToolMessage(content="plain", tool_call_id="c", name="mystery_tool"),
    )
    trace = classify(raw)

    assert trace[0].kind == "tool_result"
    assert trace[0].metadata["output_schema"] == ToolOutputSchema.TEXT.value
