import logging
from typing import Optional

from langgraph.checkpoint.base import BaseCheckpointSaver
from langgraph.checkpoint.memory import MemorySaver
from langgraph.graph import START, END, StateGraph
from langgraph.graph.state import CompiledStateGraph
from langgraph.prebuilt import ToolNode

from agents.editor import run_editor_agent
from agents.reviewer import run_reviewer_agent
from agents.searcher import run_searcher_agent
from agents.supervisor import run_supervisor_agent
from graph.routing import route_after_searcher, route_after_supervisor
from graph.state import GraphState, HumanMessage
from tools.registry import get_search_tools


logger = logging.getLogger(__name__)


def start_turn_node(state: GraphState) -> GraphState:
    """
    Reset per-turn progress and take the query from the newest user message.

    Checkpointed state from earlier turns would otherwise leak into routing
    (an approved report from the previous turn would end this one at once).
    """
    query = state.get("query") or ""
    for message in reversed(state.get("messages", [])):
        if isinstance(message, HumanMessage):
            query = message.content if isinstance(message.content, str) else str(message.content)
            break
    logger.info("Starting turn for query: %s", query)

    return {
        "query": query,
        "next_agent": None,
        "instructions": None,
        "supervisor_rounds": 0,
        "searcher_steps": 0,
        "search_notes": None,
        "report": None,
        "review_status": None,
        "review_feedback": None,
        "review_rounds": 0,
        "final_response": None,
        "visited_nodes": ["start_turn"],
    }


def build_graph(checkpointer: Optional[BaseCheckpointSaver] = None) -> CompiledStateGraph:
    """
    Construct and compile the research team's StateGraph.

    Nodes:
    - start_turn
    - supervisor (delegates, and writes the final answer)
    - searcher + search_tools (tool-calling loop)
    - editor
    - reviewer

    The graph uses a checkpointer (MemorySaver unless one is given) so that
    multi-turn conversations are preserved via `thread_id`.
    """
    logger.info("Building LangGraph StateGraph for the research team.")

    builder: StateGraph[GraphState] = StateGraph(GraphState)

    builder.add_node("start_turn", start_turn_node)
    builder.add_node("supervisor", run_supervisor_agent)
    builder.add_node("searcher", run_searcher_agent)
    builder.add_node("search_tools", ToolNode(get_search_tools(), handle_tool_errors=True))
    builder.add_node("editor", run_editor_agent)
    builder.add_node("reviewer", run_reviewer_agent)

    builder.add_edge(START, "start_turn")
    builder.add_edge("start_turn", "supervisor")

    builder.add_conditional_edges(
        "supervisor",
        route_after_supervisor,
        {
            "searcher": "searcher",
            "editor": "editor",
            "reviewer": "reviewer",
            "finish": END,
        },
    )

    builder.add_conditional_edges(
        "searcher",
        route_after_searcher,
        {
            "tools": "search_tools",
            "supervisor": "supervisor",
        },
    )

    builder.add_edge("search_tools", "searcher")
    builder.add_edge("editor", "supervisor")
    builder.add_edge("reviewer", "supervisor")

    graph = builder.compile(checkpointer=checkpointer if checkpointer is not None else MemorySaver())

    logger.info("Graph compiled successfully.")
    return graph


__all__ = ["build_graph", "start_turn_node"]
