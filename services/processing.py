"""
Background processing of an inbound user message.

State machine per user message row:

    sent --(agent success, trace non-empty)--> responded
    sent --(agent success, trace empty)------> sent (nothing persisted)
    sent --(failure)-------------------------> sent (logged only)

Each trace entry is persisted as its own agent row (status completed, the
entry kind as message type, its metadata verbatim) in one atomic batch.
Database calls are synchronous and run in worker threads.
"""

import asyncio
import logging
from typing import Optional

from messages.extractor import ParsedAgentResponse
from orchestrator.orchestrator import AgentOrchestrator
from services.chat_db import ChatDBService, MessageStatus, NewMessage


logger = logging.getLogger(__name__)


class MessageProcessor:
    def __init__(self, db: ChatDBService, orchestrator: AgentOrchestrator) -> None:
        self._db = db
        self._orchestrator = orchestrator

    async def _persist(
        self,
        conversation_id: str,
        user_message_id: str,
        user_id: Optional[str],
        response: ParsedAgentResponse,
    ) -> bool:
        batch = [
            NewMessage(
                conversation_id=conversation_id,
                content=entry.content,
                sender="agent",
                status=MessageStatus.completed.value,
                message_type=entry.kind,
                metadata=entry.metadata,
            )
            for entry in response.trace
        ]
        if not await asyncio.to_thread(self._db.insert_messages, batch):
            logger.error(
                "Failed to persist %d trace entries for message %s.",
                len(batch),
                user_message_id,
            )
            return False

        await asyncio.to_thread(
            self._db.update_message_status, user_message_id, MessageStatus.responded.value
        )

        if user_id is None:
            user_id = await asyncio.to_thread(self._db.get_conversation_user_id, conversation_id)
        if user_id is not None:
            await asyncio.to_thread(
                self._db.update_usage,
                user_id,
                conversation_id,
                response.input_tokens,
                response.output_tokens,
                response.cost,
            )
        return True

    async def process(
        self,
        conversation_id: str,
        user_message_id: str,
        user_text: str,
        user_id: Optional[str] = None,
    ) -> Optional[ParsedAgentResponse]:
        """
        Run the agent for a persisted user message and persist its trace.

        Returns the agent response, or None when processing failed before a
        response was available. Never raises.
        """
        logger.info(
            "Processing message %s in conversation %s.", user_message_id, conversation_id
        )
        try:
            history = await asyncio.to_thread(
                self._db.get_conversation_history, conversation_id
            )
            prior = [row for row in history if row.id != user_message_id]

            response = await self._orchestrator.run(conversation_id, user_text, prior)
            if not response.trace:
                logger.warning(
                    "Agent returned no trace for message %s; nothing persisted.",
                    user_message_id,
                )
                return response

            await self._persist(conversation_id, user_message_id, user_id, response)
            return response
        except Exception:
            logger.exception("Processing of message %s failed.", user_message_id)
            return None


__all__ = ["MessageProcessor"]
