"""Shared helpers for ledger repositories."""
from __future__ import annotations

from decimal import Decimal
from typing import Any

from sqlalchemy import Select
from sqlalchemy.orm import Session

from sharepool.db.locks import lock_row, select_for_update


class BaseRepository:
    """Base repository providing convenience helpers."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def _scalar_decimal(self, statement: Select[Any]) -> Decimal:
        return self._to_decimal(self._session.execute(statement).scalar())

    def _lock(self, model: type, entity_id: int, entity: str) -> Any:
        return lock_row(self._session, model, entity_id, entity=entity)

    def _locked_rows(self, statement: Select[Any], what: str) -> list[Any]:
        return list(select_for_update(self._session, statement, what).scalars())

    def add(self, instance: Any) -> Any:
        self._session.add(instance)
        return instance

    @staticmethod
    def _to_decimal(value: Any) -> Decimal:
        if isinstance(value, Decimal):
            return value
        if value is None:
            return Decimal(0)
        return Decimal(str(value))
