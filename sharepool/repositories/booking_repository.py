"""Data access for installment bookings."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import select

from sharepool.domain.status import BookingStatus
from sharepool.models import Booking, BookingPayment

from .base import BaseRepository

_OPEN_STATUSES = (BookingStatus.ACTIVE, BookingStatus.PARTIALLY_PAID)


class BookingRepository(BaseRepository):
    """Repository encapsulating booking queries."""

    def get(self, booking_id: int) -> Booking | None:
        return self._session.get(Booking, booking_id)

    def lock(self, booking_id: int) -> Booking:
        return self._lock(Booking, booking_id, "Booking")

    def list_for_user(self, user_id: int, *, status: BookingStatus | None = None) -> list[Booking]:
        statement = select(Booking).where(Booking.user_id == user_id)
        if status is not None:
            statement = statement.where(Booking.status == status)
        return list(self._session.execute(statement.order_by(Booking.created_at.desc(), Booking.id.desc())).scalars())

    def overdue_ids(self, now: datetime) -> list[int]:
        """Open bookings whose credit period ended before ``now``."""

        statement = (
            select(Booking.id)
            .where(Booking.status.in_(_OPEN_STATUSES), Booking.expires_at < now)
            .order_by(Booking.expires_at, Booking.id)
        )
        return list(self._session.execute(statement).scalars())

    def payments(self, booking_id: int) -> list[BookingPayment]:
        statement = (
            select(BookingPayment)
            .where(BookingPayment.booking_id == booking_id)
            .order_by(BookingPayment.id)
        )
        return list(self._session.execute(statement).scalars())


__all__ = ["BookingRepository"]
