"""ORM models for cash wallets and the movements recorded against them."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import ID_TYPE, MONEY, Base, enum_type, utcnow


class WalletOwnerType(str, Enum):
    USER = "user"
    ADMIN = "admin"


class FundDirection(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


class Wallet(Base):
    """Cash balance in one currency, owned by a user or by the platform."""

    __tablename__ = "wallet"
    __table_args__ = (
        CheckConstraint("balance >= 0", name="ck_wallet_balance_non_negative"),
        Index("ix_wallet_lookup", "owner_type", "wallet_type", "currency"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    owner_type: Mapped[WalletOwnerType] = mapped_column(
        enum_type(WalletOwnerType, length=16), nullable=False, default=WalletOwnerType.USER
    )
    user_id: Mapped[int | None] = mapped_column(ID_TYPE)
    wallet_type: Mapped[str] = mapped_column(String(32), nullable=False, default="personal")
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    balance: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    movements: Mapped[list["FundMovement"]] = relationship(
        back_populates="wallet", cascade="all, delete-orphan", order_by="FundMovement.id"
    )

    __mapper_args__ = {"version_id_col": version}


class FundMovement(Base):
    """Debit or credit applied to a wallet, with the balance on either side."""

    __tablename__ = "fund_movement"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    wallet_id: Mapped[int] = mapped_column(ID_TYPE, ForeignKey("wallet.id"), nullable=False, index=True)
    direction: Mapped[FundDirection] = mapped_column(enum_type(FundDirection, length=8), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    balance_before: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    reference: Mapped[str | None] = mapped_column(String(64))
    description: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    wallet: Mapped[Wallet] = relationship(back_populates="movements")


__all__ = ["FundDirection", "FundMovement", "Wallet", "WalletOwnerType"]
