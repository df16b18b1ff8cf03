"""Opinionated SQLAlchemy session helpers."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from sharepool.models.base import Base

from .engine import get_shared_engine
from .locks import commit_or_conflict


def get_sessionmaker(url: str | None = None) -> sessionmaker:
    """Return a ``sessionmaker`` bound to the shared engine for ``url``."""

    engine = get_shared_engine(url)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@contextmanager
def session_scope(factory: sessionmaker | None = None) -> Iterator[Session]:
    """Provide a transactional scope: commit on success, roll back on any error."""

    Session_ = factory or get_sessionmaker()
    session = Session_()
    try:
        yield session
        commit_or_conflict(session)
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_schema(engine: Engine | None = None) -> None:
    """Create every ledger table that does not exist yet."""

    # Importing the package registers all mapped classes on ``Base.metadata``.
    import sharepool.models  # noqa: F401

    Base.metadata.create_all(engine or get_shared_engine())
