import logging
from typing import Literal

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from pydantic import BaseModel, Field

from agents.common import current_date
from config import (
    MAX_REVIEW_ROUNDS,
    MAX_SUPERVISOR_ROUNDS,
    SUPERVISOR_MODEL,
    get_gemini_api_key,
)
from graph.state import GraphState
from messages.history import prompt_window
from utils.prompts import SUPERVISOR_SYSTEM_PROMPT


logger = logging.getLogger(__name__)


_supervisor_model = None
_supervisor_structured = None


class SupervisorDecision(BaseModel):
    next_agent: Literal["searcher", "editor", "reviewer", "finish"] = Field(
        description="The agent to delegate to next, or 'finish' to answer the user"
    )
    instructions: str = Field(
        default="",
        description="Concrete directions for the chosen agent",
    )
    response: str = Field(
        default="",
        description=(
            "Complete answer for the user when finishing without a report, "
            "for example for small talk or follow-up questions"
        ),
    )


def _conversation_only(messages: list[BaseMessage]) -> list[BaseMessage]:
    return [
        message
        for message in messages
        if isinstance(message, HumanMessage)
        or (isinstance(message, AIMessage) and not message.tool_calls)
    ]


class SupervisorAgent:
    """
    Supervisor:
    - Decides which team member works next using structured LLM output.
    - Applies deterministic guards (approved report, round caps) before and
      after consulting the model.
    - On finish, appends the final answer for the user.
    """

    def _get_model(self) -> ChatGoogleGenerativeAI:
        global _supervisor_model
        if _supervisor_model is None:
            _supervisor_model = ChatGoogleGenerativeAI(
                model=SUPERVISOR_MODEL,
                api_key=get_gemini_api_key(),
                temperature=0.0,
            )
        return _supervisor_model

    def _get_model_structured(self):
        global _supervisor_structured
        if _supervisor_structured is None:
            _supervisor_structured = self._get_model().with_structured_output(
                SupervisorDecision
            )
        return _supervisor_structured

    def _build_messages(self, state: GraphState) -> list[BaseMessage]:
        system_message = SystemMessage(
            content=SUPERVISOR_SYSTEM_PROMPT.format(current_date=current_date())
        )
        history = _conversation_only(prompt_window(list(state.get("messages", []))))
        progress = HumanMessage(
            content=(
                f"Latest user query: {state.get('query') or ''}\n"
                f"Search notes available: {'yes' if state.get('search_notes') else 'no'}\n"
                f"Report drafted: {'yes' if state.get('report') else 'no'}\n"
                f"Review status: {state.get('review_status') or 'not reviewed'}\n"
                f"Review rounds used: {state.get('review_rounds', 0)} of {MAX_REVIEW_ROUNDS}\n"
                "Decide the next step."
            )
        )
        return [system_message] + history + [progress]

    def _decide(self, state: GraphState, rounds: int) -> SupervisorDecision:
        report = state.get("report")

        if state.get("review_status") == "approved" and report:
            logger.info("Report approved by reviewer; finishing.")
            return SupervisorDecision(next_agent="finish")

        if rounds > MAX_SUPERVISOR_ROUNDS:
            logger.warning("Supervisor round cap (%s) reached; finishing.", MAX_SUPERVISOR_ROUNDS)
            return SupervisorDecision(next_agent="finish")

        prompt_messages = self._build_messages(state)
        logger.debug("Supervisor prompt messages: %s", prompt_messages)
        decision = self._get_model_structured().invoke(prompt_messages)
        logger.info(
            "Supervisor decision: next_agent=%s, instructions=%s",
            decision.next_agent,
            decision.instructions,
        )

        if decision.next_agent == "reviewer" and not report:
            logger.info("Nothing to review yet; delegating to the editor instead.")
            return SupervisorDecision(next_agent="editor", instructions=decision.instructions)

        if (
            decision.next_agent in ("editor", "reviewer")
            and report
            and state.get("review_rounds", 0) >= MAX_REVIEW_ROUNDS
        ):
            logger.info("Review round cap (%s) reached; finishing with the current report.", MAX_REVIEW_ROUNDS)
            return SupervisorDecision(next_agent="finish")

        return decision

    def run(self, state: GraphState) -> GraphState:
        logger.info("Running supervisor agent.")
        rounds = state.get("supervisor_rounds", 0) + 1
        decision = self._decide(state, rounds)

        if decision.next_agent != "finish":
            note = f"Delegating to {decision.next_agent}."
            if decision.instructions:
                note = f"{note} {decision.instructions}"
            updated_state: GraphState = {
                "messages": [AIMessage(content=note)],
                "next_agent": decision.next_agent,
                "instructions": decision.instructions or None,
                "supervisor_rounds": rounds,
                "visited_nodes": ["supervisor"],
            }
            if decision.next_agent == "searcher":
                updated_state["searcher_steps"] = 0
            return updated_state

        final_text = (
            (state.get("report") or "").strip()
            or decision.response.strip()
            or (state.get("search_notes") or "").strip()
        )
        if not final_text:
            logger.error("Supervisor finished without an answer.")
            raise RuntimeError("Supervisor finished without producing an answer.")

        logger.debug("Final response: %s", final_text)
        return {
            # The final answer is the last AI message of the turn.
            "messages": [AIMessage(content=final_text)],
            "next_agent": "finish",
            "final_response": final_text,
            "supervisor_rounds": rounds,
            "visited_nodes": ["supervisor"],
        }


def run_supervisor_agent(state: GraphState) -> GraphState:
    return SupervisorAgent().run(state)


__all__ = ["SupervisorAgent", "SupervisorDecision", "run_supervisor_agent"]
