"""
Request dependencies: authentication and the shared services on app.state.

A caller is identified by a bearer token or the `clarity_session` cookie,
resolved to a user id through the app's token resolver. In development a
request without credentials runs as the fixed dev user.
"""

import logging
from typing import Callable, Optional

from fastapi import HTTPException, Request, WebSocket
from starlette.requests import HTTPConnection

import config
from orchestrator.orchestrator import AgentOrchestrator
from realtime.feed import ChangeFeed
from services.chat_db import ChatDBService
from services.processing import MessageProcessor


logger = logging.getLogger(__name__)


SESSION_COOKIE = "clarity_session"
UNAUTHORIZED_DETAIL = "Unauthorized - Please sign in to use the chat"

TokenResolver = Callable[[str], Optional[str]]


def env_token_resolver(token: str) -> Optional[str]:
    """Resolve a token against CLARITY_API_TOKENS."""
    return config.get_api_tokens().get(token)


def _extract_token(connection: HTTPConnection) -> Optional[str]:
    header = connection.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    cookie = connection.cookies.get(SESSION_COOKIE)
    if cookie:
        return cookie
    # Browsers cannot set headers on a WebSocket handshake.
    if isinstance(connection, WebSocket):
        return connection.query_params.get("token") or None
    return None


def resolve_user_id(connection: HTTPConnection) -> Optional[str]:
    """The caller's user id, or None when the caller is not signed in."""
    resolver: TokenResolver = getattr(
        connection.app.state, "token_resolver", None
    ) or env_token_resolver
    token = _extract_token(connection)
    if token:
        user_id = resolver(token)
        if user_id:
            return user_id
        logger.warning("Rejected unknown API token.")
        return None
    if config.is_development():
        return config.DEV_USER_ID
    return None


def get_current_user_id(request: Request) -> str:
    user_id = resolve_user_id(request)
    if user_id is None:
        raise HTTPException(status_code=401, detail=UNAUTHORIZED_DETAIL)
    return user_id


def get_db(request: Request) -> ChatDBService:
    return request.app.state.db


def get_orchestrator(request: Request) -> AgentOrchestrator:
    return request.app.state.orchestrator


def get_processor(request: Request) -> MessageProcessor:
    return request.app.state.processor


def get_feed(connection: HTTPConnection) -> ChangeFeed:
    return connection.app.state.feed


__all__ = [
    "SESSION_COOKIE",
    "UNAUTHORIZED_DETAIL",
    "env_token_resolver",
    "get_current_user_id",
    "get_db",
    "get_feed",
    "get_orchestrator",
    "get_processor",
    "resolve_user_id",
]
