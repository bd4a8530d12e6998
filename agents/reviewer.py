import logging
from typing import Literal

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from pydantic import BaseModel, Field

from agents.common import current_date
from config import SUPERVISOR_MODEL, get_gemini_api_key
from graph.state import GraphState
from messages.history import prompt_window
from utils.prompts import REVIEWER_SYSTEM_PROMPT


logger = logging.getLogger(__name__)


_reviewer_model = None
_reviewer_structured = None


class ReviewAssessment(BaseModel):
    verdict: Literal["approved", "needs_revision"]
    feedback: str = Field(
        description="Brief explanation, or the specific issues the editor must fix"
    )


class ReviewerAgent:
    def _get_model(self) -> ChatGoogleGenerativeAI:
        global _reviewer_model
        if _reviewer_model is None:
            _reviewer_model = ChatGoogleGenerativeAI(
                model=SUPERVISOR_MODEL,
                api_key=get_gemini_api_key(),
                temperature=0.1,
            )
        return _reviewer_model

    def _get_model_structured(self):
        global _reviewer_structured
        if _reviewer_structured is None:
            _reviewer_structured = self._get_model().with_structured_output(
                ReviewAssessment
            )
        return _reviewer_structured

    def _build_messages(self, state: GraphState) -> list[BaseMessage]:
        system_message = SystemMessage(
            content=REVIEWER_SYSTEM_PROMPT.format(current_date=current_date())
        )
        request = HumanMessage(
            content=(
                f"Original query: {state.get('query') or ''}\n\n"
                f"Report to review:\n{state.get('report') or '<<missing>>'}"
            )
        )
        return [system_message] + prompt_window(list(state.get("messages", []))) + [request]

    def run(self, state: GraphState) -> GraphState:
        """
        Reviewer:
        - Fact-checks the current report with structured LLM output.
        - Sets `review_status` and `review_feedback`, increments `review_rounds`.
        """
        logger.info("Running reviewer agent.")
        prompt_messages = self._build_messages(state)
        logger.debug("Reviewer prompt messages: %s", prompt_messages)

        assessment = self._get_model_structured().invoke(prompt_messages)
        logger.info(
            "Reviewer assessment: verdict=%s, feedback=%s",
            assessment.verdict,
            assessment.feedback,
        )

        label = "APPROVED" if assessment.verdict == "approved" else "NEEDS REVISION"
        return {
            "messages": [AIMessage(content=f"{label}\n\n{assessment.feedback}")],
            "review_status": assessment.verdict,
            "review_feedback": assessment.feedback,
            "review_rounds": state.get("review_rounds", 0) + 1,
            "visited_nodes": ["reviewer"],
        }


def run_reviewer_agent(state: GraphState) -> GraphState:
    return ReviewerAgent().run(state)


__all__ = ["ReviewAssessment", "ReviewerAgent", "run_reviewer_agent"]
