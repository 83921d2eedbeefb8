"""
polytext Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v
"""

from __future__ import annotations

from typing import List

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from polytext.db.base import Base
from polytext.engine.config import TranslatableConfig, set_config
from polytext.engine.context import clear_translation_context
from polytext.engine.logging import set_file_logger
from polytext.engine.resolver import reset_locale_resolver

from tests import sample_models  # noqa: F401  (registers the tables on Base.metadata)


# ---------------------------------------------------------------------------
# Global state: config, resolver, context and the JSONL sink
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_singletons():
    """Reset global singletons between tests."""
    set_config(TranslatableConfig())
    reset_locale_resolver()
    clear_translation_context()
    set_file_logger(None)
    yield
    set_config(TranslatableConfig())
    reset_locale_resolver()
    clear_translation_context()
    set_file_logger(None)


@pytest.fixture
def config():
    """Install a config with overrides: ``config(empty_value_policy="keep")``."""
    def _install(**overrides) -> TranslatableConfig:
        cfg = TranslatableConfig(**overrides)
        set_config(cfg)
        return cfg
    return _install


# ---------------------------------------------------------------------------
# Database: one in-memory SQLite database per test
# ---------------------------------------------------------------------------

@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    sess = Session(engine)
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def statements(engine) -> List[str]:
    """SQL statements executed on the engine after this fixture is requested."""
    captured: List[str] = []

    def _capture(conn, cursor, statement, parameters, context, executemany):
        captured.append(statement)

    event.listen(engine, "before_cursor_execute", _capture)
    yield captured
    event.remove(engine, "before_cursor_execute", _capture)


@pytest.fixture
def make_article(session):
    """Persist an Article (flushed, not committed) and return it."""
    def _make(slug: str = "article", title: str = None, body: str = None):
        from tests.sample_models import Article

        article = Article(slug=slug, base_title=title, base_body=body)
        session.add(article)
        session.flush()
        return article
    return _make
