"""Database connection management.

Usage:
    from db.connection import SessionLocal, init_db

    init_db()  # Create tables
    service = ChatDBService(SessionLocal)
"""

import logging
import os
from typing import Any, Optional

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config import get_database_url
from db.models import Base


logger = logging.getLogger(__name__)


def create_db_engine(url: Optional[str] = None) -> Engine:
    """Create an engine for `url` (default: DATABASE_URL).

    SQLite connections get foreign keys enabled so that ON DELETE CASCADE
    holds. In-memory SQLite uses a single shared connection.
    """
    url = url or get_database_url()
    kwargs: dict[str, Any] = {"echo": os.environ.get("SQL_ECHO", "").lower() == "true"}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool

    engine = create_engine(url, **kwargs)

    if url.startswith("sqlite"):

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


engine = create_db_engine()
SessionLocal = create_session_factory(engine)


def init_db(bind: Optional[Engine] = None) -> None:
    """Create all tables that do not exist yet."""
    target = bind if bind is not None else engine
    Base.metadata.create_all(bind=target)
    logger.info("Database tables initialized.")


__all__ = ["SessionLocal", "create_db_engine", "create_session_factory", "engine", "init_db"]
