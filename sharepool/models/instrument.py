"""ORM models for the pooled instrument, its price history and share ownership."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sharepool.domain.status import PriceMethod, PriceMode, TransactionStatus, TransactionType

from .base import ID_TYPE, MONEY, PERCENT, Base, enum_type, utcnow


class Instrument(Base):
    """The single pooled share instrument sold, booked and bought back."""

    __tablename__ = "instrument"
    __table_args__ = (
        CheckConstraint(
            "available_shares >= 0 AND available_shares <= total_shares",
            name="ck_instrument_available_shares",
        ),
        CheckConstraint("current_price > 0", name="ck_instrument_price_positive"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    symbol: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    current_price: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    available_shares: Mapped[int] = mapped_column(Integer, nullable=False)
    total_shares: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="UGX")
    price_calculation_mode: Mapped[PriceMode] = mapped_column(
        enum_type(PriceMode), nullable=False, default=PriceMode.MANUAL
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    price_history: Mapped[list["PriceHistory"]] = relationship(
        back_populates="instrument", cascade="all, delete-orphan", order_by="PriceHistory.id"
    )

    __mapper_args__ = {"version_id_col": version}


class PriceHistory(Base):
    """Append-only record of every price the instrument has carried."""

    __tablename__ = "price_history"
    __table_args__ = (Index("ix_price_history_lineage", "instrument_id", "calculation_method", "id"),)

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    instrument_id: Mapped[int] = mapped_column(ID_TYPE, ForeignKey("instrument.id"), nullable=False)
    price: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    previous_price: Mapped[Decimal | None] = mapped_column(MONEY)
    percent_change: Mapped[Decimal] = mapped_column(PERCENT, nullable=False, default=Decimal("0"))
    calculation_method: Mapped[PriceMethod] = mapped_column(enum_type(PriceMethod), nullable=False)
    factors: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    notes: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str | None] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    instrument: Mapped[Instrument] = relationship(back_populates="price_history")


class ShareTransaction(Base):
    """Completed share movements; the source of the trade activity aggregate."""

    __tablename__ = "share_transaction"
    __table_args__ = (Index("ix_share_transaction_activity", "instrument_id", "status", "created_at"),)

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    instrument_id: Mapped[int] = mapped_column(ID_TYPE, ForeignKey("instrument.id"), nullable=False)
    user_id: Mapped[int] = mapped_column(ID_TYPE, nullable=False)
    transaction_type: Mapped[TransactionType] = mapped_column(enum_type(TransactionType), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price_per_share: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    status: Mapped[TransactionStatus] = mapped_column(
        enum_type(TransactionStatus), nullable=False, default=TransactionStatus.COMPLETED
    )
    reference: Mapped[str | None] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class ShareHolding(Base):
    """Shares a user owns outright, with the part locked by open sell orders."""

    __tablename__ = "share_holding"
    __table_args__ = (
        UniqueConstraint("user_id", "instrument_id", name="uq_share_holding_user_instrument"),
        CheckConstraint(
            "reserved_quantity >= 0 AND reserved_quantity <= quantity",
            name="ck_share_holding_reserved",
        ),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ID_TYPE, nullable=False)
    instrument_id: Mapped[int] = mapped_column(ID_TYPE, ForeignKey("instrument.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reserved_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def free_quantity(self) -> int:
        return self.quantity - self.reserved_quantity


__all__ = ["Instrument", "PriceHistory", "ShareHolding", "ShareTransaction"]
