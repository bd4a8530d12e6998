"""
POST /api/chat: accept a user message and schedule agent processing.

The user row is persisted with status "sent" before the response returns;
the agent runs afterwards as a background task and its trace reaches the
client through the change feed.
"""

import asyncio
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from api.dependencies import get_current_user_id, get_db, get_processor
from api.schemas import ChatRequest, ChatResponse
from services.chat_db import ChatDBService, MessageStatus
from services.processing import MessageProcessor


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


@router.post("", response_model=ChatResponse, response_model_by_alias=True)
async def send_message(
    body: ChatRequest,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_current_user_id),
    db: ChatDBService = Depends(get_db),
    processor: MessageProcessor = Depends(get_processor),
) -> ChatResponse:
    message = body.message.strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message is required")

    conversation_id = body.conversation_id
    if conversation_id:
        owned = await asyncio.to_thread(db.verify_ownership, conversation_id, user_id)
        if not owned:
            raise HTTPException(status_code=404, detail="Conversation not found")
    else:
        conversation = await asyncio.to_thread(db.create_conversation, user_id, message)
        conversation_id = conversation.id

    record = await asyncio.to_thread(
        db.insert_message,
        conversation_id,
        message,
        "user",
        MessageStatus.sent.value,
        client_key=body.client_key,
    )
    logger.info("Accepted message %s for conversation %s.", record.id, conversation_id)

    background_tasks.add_task(
        processor.process, conversation_id, record.id, message, user_id
    )
    return ChatResponse(messageId=record.id, conversationId=conversation_id)
