import logging
from typing import Literal

from langchain_core.messages import AIMessage

from .state import GraphState


logger = logging.getLogger(__name__)


def route_after_supervisor(
    state: GraphState,
) -> Literal["searcher", "editor", "reviewer", "finish"]:
    """
    Route after the supervisor.

    - next_agent in {"searcher", "editor", "reviewer"} -> that agent
    - "finish" or anything unexpected -> "finish" (end of turn)
    """
    next_agent = state.get("next_agent")
    logger.info("Routing after supervisor with next_agent=%s", next_agent)
    if next_agent in ("searcher", "editor", "reviewer"):
        return next_agent
    return "finish"


def route_after_searcher(state: GraphState) -> Literal["tools", "supervisor"]:
    """
    Route after the searcher.

    - If the searcher's last message requests tool calls -> "tools"
    - Otherwise the search task is done -> "supervisor"
    """
    messages = state.get("messages") or []
    last = messages[-1] if messages else None
    has_tool_calls = isinstance(last, AIMessage) and bool(last.tool_calls)
    logger.info(
        "Routing after searcher with has_tool_calls=%s, searcher_steps=%s",
        has_tool_calls,
        state.get("searcher_steps", 0),
    )
    if has_tool_calls:
        return "tools"
    return "supervisor"


__all__ = [
    "route_after_searcher",
    "route_after_supervisor",
]
