"""Serializing locks and optimistic-concurrency helpers for ledger writes.

The ledger store gives row-level atomicity only. Mutations that read several
rows before writing (queue positions, batch spend, booking payments) hold a
keyed in-process lock and read their rows ``FOR UPDATE``; versioned rows turn
lost updates into :class:`ConcurrencyConflictError`.

Rows are locked in one order everywhere: instrument, queued sell orders or
the booking, wallets, then share holdings. Deadlocks and lock wait timeouts
reported by the database surface as :class:`ConcurrencyConflictError` too.
"""
from __future__ import annotations

import threading
from collections.abc import Callable, Hashable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, TypeVar

from sqlalchemy import Result, Select, inspect, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from sharepool.core.errors import ConcurrencyConflictError, NotFoundError
from sharepool.core.logger import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")
M = TypeVar("M")

# MySQL: lock wait timeout exceeded, deadlock found.
MYSQL_LOCK_ERRORS = frozenset({1205, 1213})


@dataclass
class _Entry:
    lock: threading.RLock = field(default_factory=threading.RLock)
    users: int = 0


class KeyedLockRegistry:
    """Re-entrant locks created on demand per key, acquired with a bounded wait.

    An entry lives only while some thread holds or waits for it.
    """

    def __init__(self, timeout: float = 10.0) -> None:
        self._timeout = timeout
        self._guard = threading.Lock()
        self._entries: dict[Hashable, _Entry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def set_timeout(self, timeout: float) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be greater than zero")
        self._timeout = timeout

    def _checkout(self, key: Hashable) -> _Entry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1
            return entry

    def _checkin(self, key: Hashable, entry: _Entry) -> None:
        with self._guard:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]

    @contextmanager
    def hold(self, key: Hashable, *, timeout: float | None = None) -> Iterator[None]:
        """Hold the lock for ``key``; raise instead of blocking past the timeout."""

        wait = self._timeout if timeout is None else timeout
        entry = self._checkout(key)
        try:
            if not entry.lock.acquire(timeout=wait):
                LOGGER.warning("Timed out after %.1fs waiting for lock %s", wait, key)
                raise ConcurrencyConflictError(f"Lock {key!r} is busy, retry later", key=str(key))
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            self._checkin(key, entry)


def is_lock_conflict(exc: OperationalError) -> bool:
    """True when the database gave up on a row lock rather than failing outright."""

    args = getattr(exc.orig, "args", ())
    if args and args[0] in MYSQL_LOCK_ERRORS:
        return True
    return "database is locked" in str(exc.orig)


@contextmanager
def conflicts_translated(what: str) -> Iterator[None]:
    """Re-raise stale versions, deadlocks and lock timeouts as conflicts."""

    try:
        yield
    except StaleDataError as exc:
        LOGGER.warning("Stale write detected while updating %s", what)
        raise ConcurrencyConflictError(f"{what} was modified concurrently; reload and retry") from exc
    except OperationalError as exc:
        if not is_lock_conflict(exc):
            raise
        LOGGER.warning("Database lock conflict on %s: %s", what, exc.orig)
        raise ConcurrencyConflictError(f"{what} is locked by another transaction; retry") from exc


def select_for_update(session: Session, statement: Select[Any], what: str) -> Result[Any]:
    """Run ``statement`` as ``SELECT ... FOR UPDATE`` against freshly loaded rows.

    Backends without row locks (SQLite) ignore the clause; the refreshed read
    still gives the caller the latest committed state. Pending writes are
    flushed first so the refresh cannot discard them.
    """

    flush_or_conflict(session, what)
    with conflicts_translated(what):
        return session.execute(statement.with_for_update().execution_options(populate_existing=True))


def lock_row(session: Session, model: type[M], entity_id: Any, *, entity: str | None = None) -> M:
    """Load ``model`` by primary key, locked for the rest of the transaction."""

    name = entity or model.__name__
    primary_key = inspect(model).primary_key[0]
    row = select_for_update(session, select(model).where(primary_key == entity_id), name).scalar_one_or_none()
    if row is None:
        raise NotFoundError(name, entity_id)
    return row


def flush_or_conflict(session: Session, what: str) -> None:
    """Flush pending writes, translating lost updates and lock failures into a conflict."""

    with conflicts_translated(what):
        session.flush()


def commit_or_conflict(session: Session) -> None:
    with conflicts_translated("Transaction"):
        session.commit()


def retry_on_conflict(operation: Callable[[], T], *, attempts: int = 3) -> T:
    """Run ``operation`` again when it raises :class:`ConcurrencyConflictError`.

    ``operation`` must open its own session so every attempt starts from a
    fresh read. Any other error propagates immediately.
    """

    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except ConcurrencyConflictError:
            if attempt == attempts:
                raise
            LOGGER.info("Concurrency conflict, retrying (attempt %d of %d)", attempt + 1, attempts)
    raise AssertionError("unreachable")  # pragma: no cover


ledger_locks = KeyedLockRegistry()
