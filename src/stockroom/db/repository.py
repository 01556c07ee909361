"""Engine and session handling for the Stockroom SQLite database.

Record services run their queries on worker threads, so the engine is built once behind a
lock and SQLite connections are allowed to cross threads. Foreign keys are enforced on
every connection so items cannot outlive their transaction.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator

from sqlalchemy import create_engine, event, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from stockroom.config import get_settings
from stockroom.db.models import Base

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None
_engine_lock = threading.Lock()
logger = logging.getLogger(__name__)


def database_url(database_path: Path) -> str:
    return f"sqlite:///{database_path}"


def _enable_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


def _ensure_schema(engine: Engine) -> None:
    existing = set(inspect(engine).get_table_names())
    missing = [name for name in Base.metadata.tables if name not in existing]
    if not missing:
        return
    Base.metadata.create_all(engine, checkfirst=True)
    logger.info("Created Stockroom tables: %s", ", ".join(sorted(missing)))


def get_engine(database_path: Path | None = None) -> Engine:
    """Return the shared engine, creating the transactions and items tables on first use."""
    global _engine, _session_factory

    with _engine_lock:
        if _engine is not None:
            return _engine

        db_path = database_path or get_settings().database_path
        db_path.parent.mkdir(parents=True, exist_ok=True)

        engine = create_engine(
            database_url(db_path),
            connect_args={"check_same_thread": False},
            echo=False,
        )
        event.listen(engine, "connect", _enable_foreign_keys)
        _ensure_schema(engine)
        _engine = engine
        _session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
        return engine


def get_session() -> Session:
    """Return a new session bound to the shared engine."""

    get_engine()
    if _session_factory is None:
        raise RuntimeError("Stockroom database is not initialized.")
    return _session_factory()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Yield a session that commits on success and rolls back on error."""
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def reset_repository_state() -> None:
    """Dispose the cached engine so the next call picks up fresh settings (tests)."""

    global _engine, _session_factory
    with _engine_lock:
        if _engine is not None:
            _engine.dispose()
        _engine = None
        _session_factory = None


__all__ = [
    "database_url",
    "get_engine",
    "get_session",
    "reset_repository_state",
    "session_scope",
]
