"""
Live end-to-end tests against Gemini and Brave Search.

Run with `python run_test.py --integration`; skipped unless both API keys are set.
"""

import asyncio
import logging
import os
import uuid

import pytest

from graph.builder import build_graph
from graph.state import GraphState, HumanMessage
from messages.extractor import extract
from messages.raw import ERROR_SENTINEL, to_raw_messages
from orchestrator.orchestrator import AgentOrchestrator


logger = logging.getLogger(__name__)


pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(
        not (os.getenv("GEMINI_API_KEY") and os.getenv("BRAVE_SEARCH_API_KEY")),
        reason="GEMINI_API_KEY and BRAVE_SEARCH_API_KEY are required",
    ),
]


def _unique_thread_id(test_name: str) -> str:
    return f"test-{test_name}-{uuid.uuid4()}"


def _base_state(query: str) -> GraphState:
    return {
        "messages": [HumanMessage(content=query)],
        "query": query,
    }


def test_news_query_full_pipeline():
    graph = build_graph()
    config = {"configurable": {"thread_id": _unique_thread_id("news-query")}}
    result = graph.invoke(_base_state("What is the latest news about battery recycling?"), config=config)

    logger.info("Visited nodes: %s", result.get("visited_nodes"))

    visited = result.get("visited_nodes", [])
    assert visited[0] == "start_turn"
    assert "searcher" in visited
    assert result.get("next_agent") == "finish"
    assert (result.get("final_response") or "").strip()

    response = extract(to_raw_messages(result["messages"]))
    assert response.final_text == result["final_response"]
    kinds = [entry.kind for entry in response.trace]
    assert "tool_call" in kinds and "tool_result" in kinds
    assert response.input_tokens > 0


def test_follow_up_uses_conversation_context():
    orchestrator = AgentOrchestrator()
    conversation_id = str(uuid.uuid4())

    async def two_turns():
        first = await orchestrator.run(conversation_id, "Tell me about recent news on Redwood Materials")
        second = await orchestrator.run(conversation_id, "Who founded that company?")
        return first, second

    first, second = asyncio.run(two_turns())
    logger.info("Follow-up answer: %s", second.final_text)

    assert first.final_text != ERROR_SENTINEL
    assert second.final_text != ERROR_SENTINEL
    assert "Straubel" in second.final_text
    orchestrator.shutdown()
