import logging

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from agents.common import current_date, message_text
from config import MAX_SEARCH_STEPS, SEARCHER_MODEL, get_gemini_api_key
from graph.state import GraphState
from messages.history import prompt_window
from tools.registry import get_search_tools
from utils.prompts import SEARCHER_SYSTEM_PROMPT, SEARCHER_WRAP_UP_PROMPT


logger = logging.getLogger(__name__)


_searcher_base_model = None
_searcher_model = None
_searcher_wrap_up_model = None


def _get_base_model() -> ChatGoogleGenerativeAI:
    global _searcher_base_model
    if _searcher_base_model is None:
        _searcher_base_model = ChatGoogleGenerativeAI(
            model=SEARCHER_MODEL,
            api_key=get_gemini_api_key(),
            temperature=0.0,
        )
    return _searcher_base_model


class SearcherAgent:
    """
    Searcher:
    - Runs a tool-calling loop over the research tools (the ToolNode executes
      the calls and the graph routes back here).
    - After MAX_SEARCH_STEPS tool rounds it must answer without tools.
    - Its final text becomes `search_notes` for the editor.
    """

    def _get_model(self):
        global _searcher_model
        if _searcher_model is None:
            _searcher_model = _get_base_model().bind_tools(get_search_tools())
        return _searcher_model

    def _get_wrap_up_model(self):
        global _searcher_wrap_up_model
        if _searcher_wrap_up_model is None:
            _searcher_wrap_up_model = _get_base_model().bind_tools(
                get_search_tools(), tool_choice="none"
            )
        return _searcher_wrap_up_model

    def _build_messages(self, state: GraphState, wrap_up: bool) -> list[BaseMessage]:
        system_message = SystemMessage(
            content=SEARCHER_SYSTEM_PROMPT.format(current_date=current_date())
        )
        task = state.get("instructions") or state.get("query") or ""
        request = [HumanMessage(content=f"Search task: {task}")]
        if wrap_up:
            request.append(HumanMessage(content=SEARCHER_WRAP_UP_PROMPT))
        return [system_message] + prompt_window(list(state.get("messages", []))) + request

    def run(self, state: GraphState) -> GraphState:
        steps = state.get("searcher_steps", 0)
        wrap_up = steps >= MAX_SEARCH_STEPS
        logger.info("Running searcher agent (step %s, wrap_up=%s).", steps, wrap_up)

        prompt_messages = self._build_messages(state, wrap_up)
        logger.debug("Searcher prompt messages: %s", prompt_messages)

        model = self._get_wrap_up_model() if wrap_up else self._get_model()
        response = model.invoke(prompt_messages)
        text = message_text(response, "searcher")

        if response.tool_calls and wrap_up:
            logger.warning("Searcher requested tools after its budget; dropping the calls.")
            response = AIMessage(
                content=text or "Search budget exhausted.",
                usage_metadata=response.usage_metadata,
            )
        elif not response.tool_calls and not text:
            logger.warning("Searcher finished without notes.")
            response = AIMessage(
                content="Search finished without notes.",
                usage_metadata=response.usage_metadata,
            )

        updated_state: GraphState = {
            "messages": [response],
            "visited_nodes": ["searcher"],
        }
        if response.tool_calls:
            logger.info(
                "Searcher requested tools: %s",
                [call["name"] for call in response.tool_calls],
            )
            updated_state["searcher_steps"] = steps + 1
        else:
            updated_state["search_notes"] = message_text(response, "searcher")
        return updated_state


def run_searcher_agent(state: GraphState) -> GraphState:
    return SearcherAgent().run(state)


__all__ = ["SearcherAgent", "run_searcher_agent"]
