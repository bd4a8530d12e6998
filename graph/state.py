from __future__ import annotations

import operator
from typing import Annotated, List, Literal, Optional, TypedDict

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, ToolMessage


AgentName = Literal["searcher", "editor", "reviewer", "finish"]


class GraphState(TypedDict, total=False):
    """
    State carried through the research team's LangGraph workflow.

    Notes:
    - `messages` holds the conversation across turns and uses an operator.add
      reducer, so every node returns only the messages it adds.
    - Fields below "Per-turn progress" are reset by the `start_turn` node at the
      beginning of every user turn.
    - `searcher_steps` counts tool-calling rounds of the current search task and
      is reset whenever the supervisor delegates to the searcher.
    """

    # Conversation and query
    messages: Annotated[List[BaseMessage], operator.add]
    query: str

    # Per-turn progress
    next_agent: Optional[AgentName]
    instructions: Optional[str]
    supervisor_rounds: int
    searcher_steps: int
    search_notes: Optional[str]
    report: Optional[str]
    review_status: Optional[Literal["approved", "needs_revision"]]
    review_feedback: Optional[str]
    review_rounds: int

    # Final response for the user
    final_response: Optional[str]

    visited_nodes: Annotated[List[str], operator.add]


__all__ = [
    "AgentName",
    "GraphState",
    "AIMessage",
    "HumanMessage",
    "BaseMessage",
    "ToolMessage",
]
