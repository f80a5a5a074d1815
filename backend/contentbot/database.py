"""SQLAlchemy engine, session factory and declarative base.

The API gets a session per request from ``get_db``; Celery tasks and the
startup sweep open one with ``session_scope``. On SQLite, foreign keys
are switched on for every connection and file databases use WAL so the
worker and the API can share one file.
"""
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from contentbot.config import get_settings


class Base(DeclarativeBase):
    pass


def _sqlite_path(url: str) -> str | None:
    path = url.split("///", 1)[1] if "///" in url else ""
    return path if path and path != ":memory:" else None


def _build_engine(url: str, echo: bool = False):
    is_sqlite = url.startswith("sqlite")
    connect_args = {"check_same_thread": False} if is_sqlite else {}
    file_path = _sqlite_path(url) if is_sqlite else None
    if file_path:
        Path(file_path).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(url, connect_args=connect_args, echo=echo, pool_pre_ping=not is_sqlite)
    if is_sqlite:
        @event.listens_for(engine, "connect")
        def _sqlite_pragmas(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            if file_path:
                cursor.execute("PRAGMA journal_mode=WAL;")
            cursor.execute("PRAGMA foreign_keys=ON;")
            cursor.close()
    return engine


engine = _build_engine(get_settings().DATABASE_URL, echo=get_settings().DEBUG)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Iterator[Session]:
    """FastAPI dependency that yields a database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope(factory=SessionLocal) -> Iterator[Session]:
    """Session for work outside a request; rolled back if the block raises."""
    db = factory()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def create_tables():
    """Create all tables from ORM metadata (dev convenience)."""
    import contentbot.models  # noqa: F401  registers every mapper
    Base.metadata.create_all(bind=engine)
