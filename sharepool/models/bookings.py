"""ORM models for installment bookings and the payments applied to them."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sharepool.domain.booking import payment_percentage
from sharepool.domain.status import BookingStatus

from .base import ID_TYPE, MONEY, PERCENT, Base, enum_type, utcnow


class Booking(Base):
    """Installment purchase that unlocks shares in proportion to payments."""

    __tablename__ = "booking"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_booking_quantity_positive"),
        CheckConstraint(
            "shares_owned_progressively >= 0 AND shares_owned_progressively <= quantity",
            name="ck_booking_shares_owned",
        ),
        Index("ix_booking_expiry", "status", "expires_at"),
    )

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ID_TYPE, nullable=False, index=True)
    instrument_id: Mapped[int] = mapped_column(ID_TYPE, ForeignKey("instrument.id"), nullable=False)
    payer_wallet_id: Mapped[int | None] = mapped_column(ID_TYPE, ForeignKey("wallet.id"))
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    booked_price_per_share: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    down_payment_percent: Mapped[Decimal] = mapped_column(PERCENT, nullable=False)
    down_payment_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    cumulative_payments: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    remaining_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    shares_owned_progressively: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        enum_type(BookingStatus), nullable=False, default=BookingStatus.ACTIVE
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime)
    cancellation_reason: Mapped[str | None] = mapped_column(String(255))
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    payments: Mapped[list["BookingPayment"]] = relationship(
        back_populates="booking", cascade="all, delete-orphan", order_by="BookingPayment.id"
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def payment_percentage(self) -> Decimal:
        return payment_percentage(self.cumulative_payments, self.total_amount)


class BookingPayment(Base):
    """One payment applied to a booking, with the shares it unlocked."""

    __tablename__ = "booking_payment"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    booking_id: Mapped[int] = mapped_column(ID_TYPE, ForeignKey("booking.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    cumulative_after: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    shares_unlocked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_down_payment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    booking: Mapped[Booking] = relationship(back_populates="payments")


__all__ = ["Booking", "BookingPayment"]
