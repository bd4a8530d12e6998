"""
Runs the compiled research graph end to end with every model mocked and the
search provider served by an in-process transport.
"""

import json
import logging
import uuid
from unittest.mock import MagicMock, patch

import httpx
from langchain_core.messages import AIMessage, HumanMessage

from agents.reviewer import ReviewAssessment
from agents.supervisor import SupervisorDecision
from graph.builder import build_graph, start_turn_node
from messages.extractor import extract
from messages.raw import to_raw_messages


logger = logging.getLogger(__name__)


def test_start_turn_resets_progress_and_takes_latest_query():
    state = {
        "messages": [HumanMessage(content="old"), AIMessage(content="a"), HumanMessage(content="new")],
        "query": "old",
        "report": "previous report",
        "review_status": "approved",
        "review_rounds": 2,
    }
    result = start_turn_node(state)

    assert result["query"] == "new"
    assert result["report"] is None
    assert result["review_status"] is None
    assert result["review_rounds"] == 0
    assert result["visited_nodes"] == ["start_turn"]


def _search_client() -> httpx.Client:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, json={"results": [{"title": "Plant opens", "url": "https://news.example/1"}]}
        )

    return httpx.Client(transport=httpx.MockTransport(handler))


@patch("tools.brave_search.get_brave_api_key", return_value="test-key")
@patch("tools.brave_search.get_http_client")
@patch("agents.reviewer.ReviewerAgent._get_model_structured")
@patch("agents.editor.EditorAgent._get_model")
@patch("agents.searcher.SearcherAgent._get_model")
@patch("agents.supervisor.SupervisorAgent._get_model_structured")
def test_research_turn_runs_through_the_team(
    mock_supervisor,
    mock_searcher,
    mock_editor,
    mock_reviewer,
    mock_get_client,
    _mock_key,
) -> None:
    mock_get_client.return_value = _search_client()

    supervisor = MagicMock()
    supervisor.invoke.side_effect = [
        SupervisorDecision(next_agent="searcher", instructions="Find battery news"),
        SupervisorDecision(next_agent="editor"),
        SupervisorDecision(next_agent="reviewer"),
    ]
    mock_supervisor.return_value = supervisor

    searcher = MagicMock()
    searcher.invoke.side_effect = [
        AIMessage(
            content="",
            tool_calls=[{"name": "brave_news_search", "args": {"query": "battery"}, "id": "call-1"}],
            usage_metadata={"input_tokens": 50, "output_tokens": 10, "total_tokens": 60},
        ),
        AIMessage(content="1. Plant opens [https://news.example/1]"),
    ]
    mock_searcher.return_value = searcher

    editor = MagicMock()
    editor.invoke.return_value = AIMessage(content="## Battery news\nA plant opened [1].")
    mock_editor.return_value = editor

    reviewer = MagicMock()
    reviewer.invoke.return_value = ReviewAssessment(verdict="approved", feedback="Sourced")
    mock_reviewer.return_value = reviewer

    graph = build_graph()
    config = {"configurable": {"thread_id": f"test-{uuid.uuid4()}"}, "recursion_limit": 40}
    query = "Battery recycling news?"
    result = graph.invoke({"messages": [HumanMessage(content=query)], "query": query}, config=config)
    logger.info("Visited nodes: %s", result["visited_nodes"])

    assert result["visited_nodes"] == [
        "start_turn",
        "supervisor",
        "searcher",
        "searcher",
        "supervisor",
        "editor",
        "supervisor",
        "reviewer",
        "supervisor",
    ]
    assert result["final_response"] == "## Battery news\nA plant opened [1]."
    # The approved report ends the turn without another supervisor model call.
    assert supervisor.invoke.call_count == 3

    response = extract(to_raw_messages(result["messages"]))
    kinds = [entry.kind for entry in response.trace]
    assert kinds.count("message") == 1
    assert kinds[-1] == "message"
    assert "tool_call" in kinds

    tool_result = next(e for e in response.trace if e.kind == "tool_result")
    assert tool_result.metadata["tool_name"] == "brave_news_search"
    assert json.loads(tool_result.content)[0]["link"] == "https://news.example/1"
    assert response.final_text == result["final_response"]
    assert response.input_tokens == 50
