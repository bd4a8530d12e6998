"""
WebSocket delivery of row changes.

/ws/conversations/{id} streams one conversation's message rows;
/ws/conversations streams the caller's conversation list.

Server -> Client (JSON):
    {"event": "insert" | "update" | "delete", "table": "messages" | "conversations",
     "conversationId": "...", "row": {...}}
    {"type": "error", "message": "..."}
Client -> Server (JSON):
    {"type": "ping"}  answered with {"type": "pong"}
"""

import asyncio
import contextlib
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from api.dependencies import UNAUTHORIZED_DETAIL, get_feed, resolve_user_id
from realtime.feed import Subscription


logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


async def _forward(websocket: WebSocket, subscription: Subscription) -> None:
    async for event in subscription:
        await websocket.send_json(event.to_payload())


async def _authenticate(websocket: WebSocket) -> Optional[str]:
    user_id = resolve_user_id(websocket)
    if user_id is None:
        await websocket.send_json({"type": "error", "message": UNAUTHORIZED_DETAIL})
        await websocket.close(code=4401)
    return user_id


async def _stream(websocket: WebSocket, subscription: Subscription) -> None:
    forward_task = asyncio.create_task(_forward(websocket, subscription))
    try:
        while True:
            msg = await websocket.receive_json()
            if isinstance(msg, dict) and msg.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        logger.info("WebSocket disconnected from %s %s.", *subscription.channel)
    finally:
        subscription.close()
        forward_task.cancel()
        with contextlib.suppress(asyncio.CancelledError, WebSocketDisconnect, RuntimeError):
            await forward_task


@router.websocket("/ws/conversations")
async def conversation_list_events(websocket: WebSocket) -> None:
    await websocket.accept()
    user_id = await _authenticate(websocket)
    if user_id is None:
        return
    await _stream(websocket, get_feed(websocket).subscribe_conversations(user_id))


@router.websocket("/ws/conversations/{conversation_id}")
async def conversation_events(websocket: WebSocket, conversation_id: str) -> None:
    await websocket.accept()
    user_id = await _authenticate(websocket)
    if user_id is None:
        return

    db = websocket.app.state.db
    if not await asyncio.to_thread(db.verify_ownership, conversation_id, user_id):
        await websocket.send_json({"type": "error", "message": "Conversation not found"})
        await websocket.close(code=4404)
        return

    await _stream(websocket, get_feed(websocket).subscribe(conversation_id))
