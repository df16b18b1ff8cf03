"""Database helpers, SQLAlchemy session factories and serializing locks."""

from .engine import create_sync_engine, get_shared_engine, get_sqlalchemy_url
from .locks import (
    KeyedLockRegistry,
    commit_or_conflict,
    flush_or_conflict,
    lock_row,
    retry_on_conflict,
    select_for_update,
)
from .session import create_schema, get_sessionmaker, session_scope

__all__ = [
    "KeyedLockRegistry",
    "commit_or_conflict",
    "create_schema",
    "create_sync_engine",
    "flush_or_conflict",
    "get_sessionmaker",
    "get_shared_engine",
    "get_sqlalchemy_url",
    "lock_row",
    "retry_on_conflict",
    "select_for_update",
    "session_scope",
]
