"""
Database session management. SQLAlchemy 2.x style.
"""

from collections.abc import Generator
from typing import Any

from sqlalchemy import JSON, create_engine, event, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from codetrack.config import get_settings

settings = get_settings()
_is_sqlite = settings.database_url.startswith("sqlite")

_engine_kwargs: dict[str, Any] = {"pool_pre_ping": True, "echo": settings.debug}
if _is_sqlite:
    # Single shared connection so in-memory databases survive across sessions
    _engine_kwargs["connect_args"] = {"check_same_thread": False}
    _engine_kwargs["poolclass"] = StaticPool
else:
    _engine_kwargs["pool_size"] = 5
    _engine_kwargs["max_overflow"] = 10
    _engine_kwargs["connect_args"] = {
        "connect_timeout": settings.db_connect_timeout,
        "options": "-c timezone=UTC",
    }

engine = create_engine(settings.database_url, **_engine_kwargs)

if _is_sqlite:
    # pysqlite defers BEGIN; emit it ourselves so SAVEPOINT (begin_nested) works.

    @event.listens_for(engine, "connect")
    def _sqlite_connect(dbapi_connection, connection_record):  # noqa: ARG001
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN")


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# JSONB on Postgres, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy models."""


def check_db_connection() -> None:
    """
    Verify database connectivity. Raises if unreachable.
    Call during application startup.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))


def get_db() -> Generator[Session, None, None]:
    """Dependency for FastAPI to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> sessionmaker:
    """Dependency for handlers that open their own session (streaming responses)."""
    return SessionLocal
