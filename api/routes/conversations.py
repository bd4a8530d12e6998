"""
Conversation endpoints.

Endpoints:
    GET    /conversations                 - The caller's conversations, newest first
    GET    /conversations/{id}/messages   - Ordered message rows
    PATCH  /conversations/{id}            - Rename
    DELETE /conversations/{id}            - Delete with messages, usage and agent state
    GET    /conversations/{id}/usage      - Accumulated token usage and cost
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_current_user_id, get_db, get_orchestrator
from api.schemas import ConversationOut, MessageOut, RenameRequest, UsageOut
from db.models import MessageType
from orchestrator.orchestrator import AgentOrchestrator
from services.chat_db import ChatDBService, MessageRecord
from tools.schemas import decode_tool_result


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations", tags=["conversations"])

NOT_FOUND = "Conversation not found"


async def _require_owned(db: ChatDBService, conversation_id: str, user_id: str) -> None:
    if not await asyncio.to_thread(db.verify_ownership, conversation_id, user_id):
        raise HTTPException(status_code=404, detail=NOT_FOUND)


def _message_out(record: MessageRecord) -> MessageOut:
    tool_output = None
    if record.message_type == MessageType.tool_result.value:
        schema_id = (record.metadata or {}).get("output_schema")
        tool_output = decode_tool_result(record.content, schema_id)
    return MessageOut(
        id=record.id,
        conversationId=record.conversation_id,
        content=record.content,
        sender=record.sender,
        status=record.status,
        messageType=record.message_type,
        metadata=record.metadata,
        clientKey=record.client_key,
        toolOutput=tool_output,
        createdAt=record.created_at,
    )


@router.get("", response_model=list[ConversationOut], response_model_by_alias=True)
async def list_conversations(
    user_id: str = Depends(get_current_user_id),
    db: ChatDBService = Depends(get_db),
) -> list[ConversationOut]:
    records = await asyncio.to_thread(db.list_conversations, user_id)
    return [
        ConversationOut(id=r.id, title=r.title, createdAt=r.created_at) for r in records
    ]


@router.get(
    "/{conversation_id}/messages",
    response_model=list[MessageOut],
    response_model_by_alias=True,
)
async def get_messages(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    db: ChatDBService = Depends(get_db),
) -> list[MessageOut]:
    await _require_owned(db, conversation_id, user_id)
    records = await asyncio.to_thread(db.get_conversation_history, conversation_id)
    return [_message_out(record) for record in records]


@router.patch("/{conversation_id}", response_model=ConversationOut, response_model_by_alias=True)
async def rename_conversation(
    conversation_id: str,
    body: RenameRequest,
    user_id: str = Depends(get_current_user_id),
    db: ChatDBService = Depends(get_db),
) -> ConversationOut:
    renamed = await asyncio.to_thread(
        db.rename_conversation, conversation_id, user_id, body.title.strip()
    )
    if not renamed:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    for record in await asyncio.to_thread(db.list_conversations, user_id):
        if record.id == conversation_id:
            return ConversationOut(id=record.id, title=record.title, createdAt=record.created_at)
    raise HTTPException(status_code=404, detail=NOT_FOUND)


@router.delete("/{conversation_id}")
async def delete_conversation(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    db: ChatDBService = Depends(get_db),
    orchestrator: AgentOrchestrator = Depends(get_orchestrator),
) -> dict:
    deleted = await asyncio.to_thread(db.delete_conversation, conversation_id, user_id)
    if not deleted:
        raise HTTPException(status_code=404, detail=NOT_FOUND)
    orchestrator.forget(conversation_id)
    return {"success": True, "conversationId": conversation_id}


@router.get("/{conversation_id}/usage", response_model=UsageOut, response_model_by_alias=True)
async def get_usage(
    conversation_id: str,
    user_id: str = Depends(get_current_user_id),
    db: ChatDBService = Depends(get_db),
) -> UsageOut:
    await _require_owned(db, conversation_id, user_id)
    usage = await asyncio.to_thread(db.get_usage_summary, conversation_id)
    if usage is None:
        return UsageOut(conversationId=conversation_id)
    return UsageOut(
        conversationId=conversation_id,
        inputTokens=usage.input_tokens,
        outputTokens=usage.output_tokens,
        cost=usage.cost,
    )
