"""
Database configuration and session management for the drawing service.

This module defines a SQLModel engine targeting a SQLite database stored
in the project's ``storage`` directory.  Set ``ORTHODRAW_DB_URL`` to use
a different database.  It exposes helper functions to initialise the
schema and to obtain session objects for interacting with the database.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

logger = logging.getLogger(__name__)

# Walk up two parent directories from this file to the backend root.
STORAGE_DIR = Path(__file__).resolve().parents[2] / "storage"
STORAGE_DIR.mkdir(parents=True, exist_ok=True)


def default_database_url() -> str:
    return os.getenv("ORTHODRAW_DB_URL") or f"sqlite:///{(STORAGE_DIR / 'orthodraw.db').as_posix()}"


def _make_engine(url: str) -> Engine:
    # Request handlers run in a threadpool; SQLite connections must be shareable.
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, echo=False, connect_args=connect_args)


engine = _make_engine(default_database_url())


def configure_engine(url: str) -> Engine:
    """Point the module at a different database (used by tests and tools)."""
    global engine
    engine = _make_engine(url)
    logger.info("Database engine configured for %s", url.split("://", 1)[0])
    return engine


def create_db_and_tables() -> None:
    """Create all tables in the database.

    This should be called once on application startup.  If the
    database file does not exist it will be created automatically.
    """
    SQLModel.metadata.create_all(engine)


def get_session() -> Session:
    """Return a new SQLModel session bound to the current engine.

    Use it as a context manager (``with get_session() as session: ...``)
    so the connection is closed afterwards.
    """
    return Session(engine)
