import logging
from typing import List

from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from agents.common import current_date, message_text
from config import SUPERVISOR_MODEL, get_gemini_api_key
from graph.state import GraphState
from messages.history import prompt_window
from utils.prompts import EDITOR_SYSTEM_PROMPT


logger = logging.getLogger(__name__)


_editor_model = None


class EditorAgent:
    """
    Editor:
    - Turns the search results in the conversation into a cited markdown report.
    - Addresses reviewer feedback when revising.
    """

    def _get_model(self) -> ChatGoogleGenerativeAI:
        global _editor_model
        if _editor_model is None:
            _editor_model = ChatGoogleGenerativeAI(
                model=SUPERVISOR_MODEL,
                api_key=get_gemini_api_key(),
                temperature=0.3,
            )
        return _editor_model

    def _build_messages(self, state: GraphState) -> List[BaseMessage]:
        system_message = SystemMessage(
            content=EDITOR_SYSTEM_PROMPT.format(current_date=current_date())
        )
        parts = [f"Latest user query: {state.get('query') or ''}"]
        if state.get("instructions"):
            parts.append(f"Supervisor instructions: {state['instructions']}")
        if state.get("search_notes"):
            parts.append(f"Searcher notes:\n{state['search_notes']}")
        if state.get("report") and state.get("review_feedback"):
            parts.append(f"Previous draft:\n{state['report']}")
            parts.append(f"Reviewer feedback to address:\n{state['review_feedback']}")
        parts.append("Write the report now.")
        request = HumanMessage(content="\n\n".join(parts))
        return [system_message] + prompt_window(list(state.get("messages", []))) + [request]

    def run(self, state: GraphState) -> GraphState:
        logger.info("Running editor agent.")
        prompt_messages = self._build_messages(state)
        logger.debug("Editor prompt messages: %s", prompt_messages)

        response = self._get_model().invoke(prompt_messages)
        report = message_text(response, "editor")
        if not report:
            logger.error("Empty report returned by editor agent.")
            raise RuntimeError("Editor agent produced an empty report.")

        logger.debug("Editor report: %s", report)

        return {
            "messages": [response],
            "report": report,
            # A new draft has not been reviewed yet.
            "review_status": None,
            "visited_nodes": ["editor"],
        }


def run_editor_agent(state: GraphState) -> GraphState:
    return EditorAgent().run(state)


__all__ = ["EditorAgent", "run_editor_agent"]
