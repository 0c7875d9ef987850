"""
Engine, session and transaction helpers for the policy store.

Services receive a ``sessionmaker`` so tests can point them at a throwaway
database; the module-level default is built lazily from settings.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from verification_service.config import settings
from verification_service.models.records import Base

_session_factory: Optional[sessionmaker] = None


def create_db_engine(database_url: Optional[str] = None) -> Engine:
    """Create an engine; SQLite connections take a write lock when a transaction begins."""
    url = database_url or settings.database_url
    if not url.startswith("sqlite"):
        return create_engine(url, echo=settings.db_echo, pool_pre_ping=True, future=True)

    engine = create_engine(
        url,
        echo=settings.db_echo,
        connect_args={"timeout": settings.sqlite_busy_timeout_seconds, "check_same_thread": False},
        future=True,
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):  # pragma: no cover - driver hook
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):  # pragma: no cover - driver hook
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def create_session_factory(database_url: Optional[str] = None) -> sessionmaker:
    engine = create_db_engine(database_url)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


def get_session_factory() -> sessionmaker:
    """Get or create the process-wide session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory()
    return _session_factory


def init_db(session_factory: Optional[sessionmaker] = None) -> None:
    """Create all tables that do not exist yet."""
    factory = session_factory or get_session_factory()
    Base.metadata.create_all(factory.kw["bind"])


@contextmanager
def session_scope(session_factory: Optional[sessionmaker] = None) -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""
    session = (session_factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
