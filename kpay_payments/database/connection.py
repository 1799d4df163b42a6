"""Database connection and session management."""
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Dict

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import Settings, get_settings
from .models import Base

# Global engine and session factory
_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for the given URL.

    In-memory SQLite shares a single connection so every session sees the
    same database.
    """
    kwargs: Dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_recycle"] = 3600  # Recycle connections after 1 hour
    return create_engine(database_url, **kwargs)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(engine, expire_on_commit=False, autoflush=False)


def get_engine(settings: Settings | None = None) -> Engine:
    """
    Get or create the database engine.

    Returns:
        Engine: SQLAlchemy engine instance
    """
    global _engine
    if _engine is None:
        settings = settings or get_settings()
        _engine = create_db_engine(settings.database_url, echo=settings.database_echo)
    return _engine


def get_session_factory(settings: Settings | None = None) -> sessionmaker[Session]:
    """
    Get or create the session factory.

    Returns:
        sessionmaker: SQLAlchemy session factory
    """
    global _session_factory
    if _session_factory is None:
        _session_factory = create_session_factory(get_engine(settings))
    return _session_factory


@contextmanager
def session_scope(factory: sessionmaker[Session]) -> Iterator[Session]:
    """
    Transactional scope around a series of operations.

    Commits on success, rolls back on any exception.
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Engine | None = None) -> None:
    """
    Initialize database tables.

    Creates all tables defined in models if they don't exist.
    """
    engine = engine or get_engine()
    Base.metadata.create_all(engine)


def close_db() -> None:
    """Close database connections and dispose of the engine."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
        _engine = None
        _session_factory = None
