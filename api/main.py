"""
FastAPI application for the Clarity chat backend.

`create_app` wires the persistence service, change feed, agent orchestrator
and message processor onto `app.state`; tests pass their own instances.
Every error response has the shape {"error": "<message>"}.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
from api.dependencies import TokenResolver
from api.routes import chat, conversations, realtime
from db.connection import SessionLocal, init_db
from orchestrator.orchestrator import AgentOrchestrator
from realtime.feed import ChangeFeed
from services.chat_db import ChatDBService, DatabaseError
from services.processing import MessageProcessor


logger = logging.getLogger(__name__)


def _parse_allowed_origins() -> list[str]:
    """Comma-separated CORS allowlist from CLARITY_ALLOWED_ORIGINS."""
    raw = os.environ.get("CLARITY_ALLOWED_ORIGINS", "").strip()
    if not raw:
        return []
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(
    db: Optional[ChatDBService] = None,
    orchestrator: Optional[AgentOrchestrator] = None,
    feed: Optional[ChangeFeed] = None,
    token_resolver: Optional[TokenResolver] = None,
) -> FastAPI:
    feed = feed if feed is not None else ChangeFeed()
    owns_database = db is None
    if db is None:
        db = ChatDBService(SessionLocal, feed=feed)
    orchestrator = orchestrator if orchestrator is not None else AgentOrchestrator()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if owns_database:
            init_db()
        logger.info("Clarity API started (environment=%s).", config.get_environment())
        yield
        orchestrator.shutdown()
        logger.info("Clarity API stopped.")

    app = FastAPI(
        title="Clarity API",
        description="Multi-agent news research chat",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.db = db
    app.state.feed = feed
    app.state.orchestrator = orchestrator
    app.state.processor = MessageProcessor(db, orchestrator)
    app.state.token_resolver = token_resolver

    allowed_origins = _parse_allowed_origins()
    if allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allowed_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization"],
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        if request.url.path.startswith("/api/chat"):
            return _error(400, "Message is required")
        return _error(400, "Invalid request")

    @app.exception_handler(DatabaseError)
    async def database_error_handler(request: Request, exc: DatabaseError) -> JSONResponse:
        logger.error("Database failure on %s %s: %s", request.method, request.url.path, exc)
        return _error(500, "Internal server error")

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "Internal server error")

    app.include_router(chat.router, prefix="/api")
    app.include_router(conversations.router, prefix="/api")
    app.include_router(realtime.router)

    @app.get("/health")
    def health_check() -> dict:
        return {
            "status": "ok",
            "environment": config.get_environment(),
            "activeConversations": len(orchestrator.handles),
        }

    return app


__all__ = ["create_app"]
