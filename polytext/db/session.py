"""
polytext Database Session Management.

Provides the single entry point for translation DB initialisation plus a
context manager for DB access.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, scoped_session, sessionmaker

from polytext.db.base import Base

_engine: Optional[Engine] = None
_session_factory: Optional[scoped_session] = None


def build_engine(
    db_url: str,
    pool_size: int = 10,
    max_overflow: int = 20,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    pool_pre_ping: bool = True,
    **kwargs: Any,
) -> Engine:
    """Create an engine; pool settings only apply to server databases."""
    if make_url(db_url).get_backend_name() == "sqlite":
        return create_engine(db_url, **kwargs)
    return create_engine(
        db_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        pool_pre_ping=pool_pre_ping,
        **kwargs,
    )


def init_translation_db(
    db_url: Optional[str] = None,
    create_tables: bool = False,
    **engine_kwargs: Any,
) -> sessionmaker:
    """
    Single entry point for translation database initialisation.

    What it does
    ────────────
    1. Builds the engine from ``db_url`` (or the ``database:`` config section).
    2. Optionally calls ``Base.metadata.create_all()`` — dev / tests / the
       ``polytext init`` command. Production uses the host's migrations.
    3. Stores a thread-safe ``scoped_session`` factory as the module-level
       singleton (used by ``get_session()``).

    Returns:
        A plain ``sessionmaker`` bound to the engine.
    """
    global _engine, _session_factory

    if db_url is None:
        from polytext.engine.config import get_config

        db_cfg = get_config().database
        db_url = db_cfg.url
        for name in ("pool_size", "max_overflow", "pool_timeout", "pool_recycle", "pool_pre_ping"):
            engine_kwargs.setdefault(name, getattr(db_cfg, name))

    _engine = build_engine(db_url, **engine_kwargs)

    if create_tables:
        Base.metadata.create_all(_engine)

    factory = sessionmaker(bind=_engine)
    _session_factory = scoped_session(factory)
    return factory


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Translation DB not initialized. Call init_translation_db() first.")
    return _engine


def get_session() -> Session:
    """
    Get a session for the translation database.
    Uses scoped_session for thread-safety.
    """
    if _session_factory is None:
        raise RuntimeError("Translation DB not initialized. Call init_translation_db() first.")
    return _session_factory()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Context manager for sessions with auto-commit/rollback.

    Usage:
        with session_scope() as session:
            article = session.get(Article, 1)
            article.title = "Hallo"
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def close_all_sessions() -> None:
    """Close all sessions and dispose the engine. Used during shutdown."""
    global _engine, _session_factory
    if _session_factory:
        _session_factory.remove()
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None
