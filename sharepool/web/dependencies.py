"""Shared FastAPI dependency definitions."""
from __future__ import annotations

from collections.abc import Generator
from functools import lru_cache

from sqlalchemy.orm import Session, sessionmaker

from sharepool.db.locks import commit_or_conflict
from sharepool.db.session import get_sessionmaker


@lru_cache(maxsize=1)
def session_factory() -> sessionmaker:
    """Session factory shared by every request; the engine is created on first use."""

    return get_sessionmaker()


def get_db_session() -> Generator[Session, None, None]:
    """Yield a request-scoped session that commits on success and rolls back on error."""

    session = session_factory()()
    try:
        yield session
        commit_or_conflict(session)
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
