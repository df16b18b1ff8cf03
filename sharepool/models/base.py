"""Base declarative class and shared column types for the ledger models."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import BigInteger, Integer, Numeric
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import DeclarativeBase

ID_TYPE = BigInteger().with_variant(Integer, "sqlite")
MONEY = Numeric(18, 2, asdecimal=True)
PERCENT = Numeric(9, 4, asdecimal=True)


def utcnow() -> datetime:
    """Naive UTC timestamp, the convention for every stored datetime."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def enum_type(enum_cls: type[Enum], length: int = 32) -> SQLEnum:
    """Store an enum by value in a plain string column."""

    return SQLEnum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
    )


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""

    pass


__all__ = ["Base", "ID_TYPE", "MONEY", "PERCENT", "enum_type", "utcnow"]
