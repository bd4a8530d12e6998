import asyncio
import logging
from typing import Any, Optional, Sequence

from langgraph.checkpoint.base import BaseCheckpointSaver
from langgraph.checkpoint.memory import MemorySaver

from config import (
    AGENT_RECURSION_LIMIT,
    AGENT_TIMEOUT_SECONDS,
    DEFAULT_PRICING_MODEL,
    HANDLE_CACHE_SIZE,
    HANDLE_TTL_SECONDS,
    HISTORY_TOOL_RESULT_LOOKBACK,
)
from graph.state import GraphState, HumanMessage
from messages.extractor import ParsedAgentResponse, extract
from messages.history import HistoryRow, history_to_messages
from messages.raw import RawMessageBase, to_raw_messages
from orchestrator.handles import ExecutionHandle, HandleCache


logger = logging.getLogger(__name__)


class AgentOrchestrator:
    """
    Runs one user turn of a conversation through the agent graph.

    Per-conversation context lives in the graph's checkpointer under the
    handle's thread id. A handle that is new (first turn, recreated after
    eviction, or reset after a failed turn) is seeded with the persisted
    history instead.

    `run` never raises: every failure is logged and reported as the error
    response (sentinel text, empty trace).
    """

    def __init__(
        self,
        graph: Any = None,
        checkpointer: Optional[BaseCheckpointSaver] = None,
        max_handles: int = HANDLE_CACHE_SIZE,
        handle_ttl_seconds: float = HANDLE_TTL_SECONDS,
        recursion_limit: int = AGENT_RECURSION_LIMIT,
        timeout_seconds: float = AGENT_TIMEOUT_SECONDS,
        tool_result_lookback: int = HISTORY_TOOL_RESULT_LOOKBACK,
        pricing_model: str = DEFAULT_PRICING_MODEL,
    ) -> None:
        self._checkpointer = checkpointer if checkpointer is not None else MemorySaver()
        self._graph = graph
        self._recursion_limit = recursion_limit
        self._timeout_seconds = timeout_seconds
        self._tool_result_lookback = tool_result_lookback
        self._pricing_model = pricing_model
        self._handles = HandleCache(
            max_size=max_handles,
            ttl_seconds=handle_ttl_seconds,
            on_evict=self._teardown,
        )

    @property
    def handles(self) -> HandleCache:
        return self._handles

    def _get_graph(self) -> Any:
        if self._graph is None:
            # Imported here so that constructing an orchestrator does not pull
            # in the model and tool stack until a turn actually runs.
            from graph.builder import build_graph

            self._graph = build_graph(self._checkpointer)
        return self._graph

    def _teardown(self, handle: ExecutionHandle) -> None:
        self._checkpointer.delete_thread(handle.thread_id)
        logger.info(
            "Released checkpoint %s for conversation %s.",
            handle.thread_id,
            handle.conversation_id,
        )

    async def _acquire(self, conversation_id: str) -> ExecutionHandle:
        """Lock the conversation's cached handle, returning it locked."""
        while True:
            handle = self._handles.get_or_create(conversation_id)
            await handle.lock.acquire()
            if self._handles.current(conversation_id) is handle:
                return handle
            # Evicted or forgotten while this turn was queued; its thread is gone.
            handle.lock.release()

    async def _invoke(
        self,
        handle: ExecutionHandle,
        user_text: str,
        history: Optional[Sequence[HistoryRow]],
    ) -> list[RawMessageBase]:
        messages = []
        if handle.is_fresh and history:
            messages.extend(history_to_messages(history, self._tool_result_lookback))
        messages.append(HumanMessage(content=user_text))

        inputs: GraphState = {"messages": messages, "query": user_text}
        config = {
            "configurable": {"thread_id": handle.thread_id},
            "recursion_limit": self._recursion_limit,
        }
        logger.info(
            "Invoking agent graph for conversation %s (thread_id=%s, seeded=%d).",
            handle.conversation_id,
            handle.thread_id,
            len(messages) - 1,
        )

        invocation = self._get_graph().ainvoke(inputs, config=config)
        if self._timeout_seconds > 0:
            result = await asyncio.wait_for(invocation, timeout=self._timeout_seconds)
        else:
            result = await invocation
        return to_raw_messages(result.get("messages", []))

    async def run(
        self,
        conversation_id: str,
        user_text: str,
        history: Optional[Sequence[HistoryRow]] = None,
    ) -> ParsedAgentResponse:
        if not conversation_id or not (user_text or "").strip():
            logger.error("Agent run requested without a conversation id or text.")
            return ParsedAgentResponse.error()

        handle = await self._acquire(conversation_id)
        try:
            raw = await self._invoke(handle, user_text, history)
            response = extract(raw, model=self._pricing_model)
        except Exception:
            logger.exception("Agent run failed for conversation %s.", conversation_id)
            # The checkpoint may hold a partial turn; the next turn starts on a
            # fresh thread seeded from persisted history.
            self._handles.reset(handle)
            return ParsedAgentResponse.error()
        else:
            handle.turns += 1
        finally:
            handle.lock.release()

        logger.info(
            "Agent run for conversation %s produced %d trace entries (tokens in=%d, out=%d).",
            conversation_id,
            len(response.trace),
            response.input_tokens,
            response.output_tokens,
        )
        return response

    def forget(self, conversation_id: str) -> bool:
        """Tear down the conversation's handle and checkpoint, if any."""
        return self._handles.remove(conversation_id)

    def shutdown(self) -> None:
        self._handles.clear()


__all__ = ["AgentOrchestrator"]
