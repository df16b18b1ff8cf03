"""ORM models for sell/buyback exit orders and their settlements."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sharepool.domain.status import OrderStatus

from .base import ID_TYPE, MONEY, Base, enum_type, utcnow


class SellOrder(Base):
    """A holder's request to sell shares back into the pool."""

    __tablename__ = "sell_order"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_sell_order_quantity_positive"),
        CheckConstraint(
            "remaining_quantity >= 0 AND remaining_quantity <= quantity",
            name="ck_sell_order_remaining",
        ),
        Index("ix_sell_order_queue", "instrument_id", "status", "fifo_position"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ID_TYPE, nullable=False, index=True)
    instrument_id: Mapped[int] = mapped_column(ID_TYPE, ForeignKey("instrument.id"), nullable=False)
    seller_wallet_id: Mapped[int | None] = mapped_column(ID_TYPE, ForeignKey("wallet.id"))
    original_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    remaining_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    processed_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    requested_price: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    fifo_position: Mapped[int | None] = mapped_column(Integer)
    status: Mapped[OrderStatus] = mapped_column(
        enum_type(OrderStatus), nullable=False, default=OrderStatus.PENDING
    )
    modification_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    queued_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime)
    cancellation_reason: Mapped[str | None] = mapped_column(String(255))
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    settlements: Mapped[list["SellOrderSettlement"]] = relationship(
        back_populates="order", cascade="all, delete-orphan", order_by="SellOrderSettlement.id"
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def remaining_value(self) -> Decimal:
        return self.requested_price * self.remaining_quantity


class SellOrderSettlement(Base):
    """One funded slice of a sell order, paid out of the buyback fund."""

    __tablename__ = "sell_order_settlement"
    __table_args__ = (Index("ix_settlement_spend", "created_at"),)

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    sell_order_id: Mapped[int] = mapped_column(ID_TYPE, ForeignKey("sell_order.id"), nullable=False)
    batch_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price_per_share: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    fund_balance_before: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    fund_balance_after: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    order: Mapped[SellOrder] = relationship(back_populates="settlements")


__all__ = ["SellOrder", "SellOrderSettlement"]
