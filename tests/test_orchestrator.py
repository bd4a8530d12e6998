"""
Orchestrator tests against a fake compiled graph.

The fake keeps per-thread message lists the way a checkpointer would, so
multi-turn behavior and seeding can be checked without model calls.
"""

import asyncio
import logging
from dataclasses import dataclass
from unittest.mock import MagicMock

from langchain_core.messages import AIMessage, HumanMessage

from messages.raw import ERROR_SENTINEL
from orchestrator.orchestrator import AgentOrchestrator


logger = logging.getLogger(__name__)


@dataclass
class Row:
    sender: str
    content: str
    message_type: str = "text"


class FakeGraph:
    def __init__(self, reply: str = "answer", fail: bool = False, delay: float = 0.0):
        self.reply = reply
        self.fail = fail
        self.delay = delay
        self.threads: dict[str, list] = {}
        self.calls: list[tuple[dict, dict]] = []

    async def ainvoke(self, inputs, config=None):
        self.calls.append((inputs, config))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("provider unavailable")
        thread_id = config["configurable"]["thread_id"]
        messages = self.threads.setdefault(thread_id, [])
        messages.extend(inputs["messages"])
        messages.append(
            AIMessage(
                content=f"{self.reply} to {inputs['query']}",
                usage_metadata={"input_tokens": 10, "output_tokens": 4, "total_tokens": 14},
            )
        )
        return {"messages": list(messages)}


def test_run_returns_final_text_and_trace():
    graph = FakeGraph()
    orchestrator = AgentOrchestrator(graph=graph, checkpointer=MagicMock())

    response = asyncio.run(orchestrator.run("c1", "battery news"))
    logger.info("Orchestrator response: %s", response)

    assert response.final_text == "answer to battery news"
    assert [e.kind for e in response.trace] == ["message"]
    assert response.input_tokens == 10
    assert response.output_tokens == 4
    assert response.cost > 0
    config = graph.calls[0][1]
    assert config["configurable"]["thread_id"].startswith("c1:")
    assert config["recursion_limit"] > 0


def test_second_turn_only_classifies_new_messages():
    graph = FakeGraph()
    orchestrator = AgentOrchestrator(graph=graph, checkpointer=MagicMock())

    async def two_turns():
        await orchestrator.run("c1", "first")
        return await orchestrator.run("c1", "second")

    response = asyncio.run(two_turns())

    assert response.final_text == "answer to second"
    assert len(response.trace) == 1
    # The same checkpoint thread is used for both turns.
    assert graph.calls[0][1] == graph.calls[1][1]


def test_fresh_handle_is_seeded_from_history():
    graph = FakeGraph()
    orchestrator = AgentOrchestrator(graph=graph, checkpointer=MagicMock())
    history = [
        Row("user", "earlier question"),
        Row("agent", "", "tool_call"),
        Row("agent", "earlier answer", "message"),
    ]

    async def two_turns():
        await orchestrator.run("c1", "follow up", history)
        await orchestrator.run("c1", "again", history)

    asyncio.run(two_turns())

    first_inputs = graph.calls[0][0]["messages"]
    assert [type(m) for m in first_inputs] == [HumanMessage, AIMessage, HumanMessage]
    assert first_inputs[0].content == "earlier question"
    assert first_inputs[-1].content == "follow up"
    # The checkpoint already holds the context on the second turn.
    assert [m.content for m in graph.calls[1][0]["messages"]] == ["again"]


def test_failure_returns_error_response_and_resets_thread():
    checkpointer = MagicMock()
    graph = FakeGraph(fail=True)
    orchestrator = AgentOrchestrator(graph=graph, checkpointer=checkpointer)

    response = asyncio.run(orchestrator.run("c1", "q"))

    assert response.final_text == ERROR_SENTINEL
    assert response.trace == []
    failed_thread = graph.calls[0][1]["configurable"]["thread_id"]
    checkpointer.delete_thread.assert_called_once_with(failed_thread)
    handle = orchestrator.handles.current("c1")
    assert handle.is_fresh
    assert handle.thread_id != failed_thread


def test_turn_queued_behind_a_failure_runs_on_the_cached_handle():
    checkpointer = MagicMock()
    graph = FakeGraph(delay=0.05)
    orchestrator = AgentOrchestrator(graph=graph, checkpointer=checkpointer)
    original = graph.ainvoke

    async def fail_first(inputs, config=None):
        if not graph.calls:
            graph.calls.append((inputs, config))
            await asyncio.sleep(0.05)
            raise RuntimeError("provider unavailable")
        return await original(inputs, config)

    graph.ainvoke = fail_first
    history = [Row("user", "earlier question"), Row("agent", "earlier answer", "message")]

    async def concurrent():
        return await asyncio.gather(
            orchestrator.run("c1", "one", history),
            orchestrator.run("c1", "two", history),
        )

    first, second = asyncio.run(concurrent())
    logger.info("Results: %s / %s", first.final_text, second.final_text)

    assert first.final_text == ERROR_SENTINEL
    assert second.final_text == "answer to two"
    failed_thread = graph.calls[0][1]["configurable"]["thread_id"]
    second_thread = graph.calls[1][1]["configurable"]["thread_id"]
    checkpointer.delete_thread.assert_called_once_with(failed_thread)
    assert second_thread != failed_thread
    # The queued turn starts over from persisted history on the new thread.
    assert [m.content for m in graph.calls[1][0]["messages"]] == [
        "earlier question",
        "earlier answer",
        "two",
    ]
    handle = orchestrator.handles.current("c1")
    assert handle.thread_id == second_thread
    assert handle.turns == 1


def test_turn_queued_behind_forget_gets_a_new_handle():
    checkpointer = MagicMock()
    graph = FakeGraph(delay=0.05)
    orchestrator = AgentOrchestrator(graph=graph, checkpointer=checkpointer)

    async def scenario():
        first = asyncio.create_task(orchestrator.run("c1", "one"))
        await asyncio.sleep(0)
        second = asyncio.create_task(orchestrator.run("c1", "two"))
        await asyncio.sleep(0)
        orchestrator.forget("c1")
        return await first, await second

    asyncio.run(scenario())

    forgotten_thread = graph.calls[0][1]["configurable"]["thread_id"]
    assert graph.calls[1][1]["configurable"]["thread_id"] != forgotten_thread
    assert orchestrator.handles.current("c1").thread_id == graph.calls[1][1]["configurable"]["thread_id"]


def test_timeout_returns_error_response():
    orchestrator = AgentOrchestrator(
        graph=FakeGraph(delay=1.0), checkpointer=MagicMock(), timeout_seconds=0.05
    )

    response = asyncio.run(orchestrator.run("c1", "q"))

    assert response.final_text == ERROR_SENTINEL


def test_invalid_input_returns_error_without_invoking():
    graph = FakeGraph()
    orchestrator = AgentOrchestrator(graph=graph, checkpointer=MagicMock())

    assert asyncio.run(orchestrator.run("", "q")).final_text == ERROR_SENTINEL
    assert asyncio.run(orchestrator.run("c1", "   ")).final_text == ERROR_SENTINEL
    assert graph.calls == []


def test_turns_of_one_conversation_are_serialized():
    graph = FakeGraph(delay=0.05)
    orchestrator = AgentOrchestrator(graph=graph, checkpointer=MagicMock())
    active = {"now": 0, "max": 0}
    original = graph.ainvoke

    async def tracking_ainvoke(inputs, config=None):
        active["now"] += 1
        active["max"] = max(active["max"], active["now"])
        try:
            return await original(inputs, config)
        finally:
            active["now"] -= 1

    graph.ainvoke = tracking_ainvoke

    async def concurrent():
        await asyncio.gather(
            orchestrator.run("c1", "one"),
            orchestrator.run("c1", "two"),
        )

    asyncio.run(concurrent())

    assert active["max"] == 1
    assert len(graph.calls) == 2


def test_forget_tears_down_checkpoint():
    checkpointer = MagicMock()
    orchestrator = AgentOrchestrator(graph=FakeGraph(), checkpointer=checkpointer)
    asyncio.run(orchestrator.run("c1", "q"))
    thread_id = orchestrator.handles.get_or_create("c1").thread_id

    assert orchestrator.forget("c1") is True
    checkpointer.delete_thread.assert_called_once_with(thread_id)
    assert orchestrator.forget("c1") is False
