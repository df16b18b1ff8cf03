"""Data access for the sell order queue and buyback spend totals."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select

from sharepool.domain.status import OrderStatus
from sharepool.models import SellOrder, SellOrderSettlement

from .base import BaseRepository

_QUEUED_STATUSES = (OrderStatus.PENDING, OrderStatus.PARTIAL)


class SellOrderRepository(BaseRepository):
    """Repository encapsulating queue reads and settlement aggregates."""

    def get(self, order_id: int) -> SellOrder | None:
        return self._session.get(SellOrder, order_id)

    def lock(self, order_id: int) -> SellOrder:
        return self._lock(SellOrder, order_id, "Sell order")

    def queued(self, instrument_id: int, *, for_update: bool = False) -> list[SellOrder]:
        """Pending and partial orders in queue order."""

        statement = (
            select(SellOrder)
            .where(SellOrder.instrument_id == instrument_id, SellOrder.status.in_(_QUEUED_STATUSES))
            .order_by(SellOrder.fifo_position, SellOrder.queued_at, SellOrder.id)
        )
        if for_update:
            return self._locked_rows(statement, "Sell order queue")
        return list(self._session.execute(statement).scalars())

    def list_for_user(self, user_id: int) -> list[SellOrder]:
        statement = (
            select(SellOrder)
            .where(SellOrder.user_id == user_id)
            .order_by(SellOrder.created_at.desc(), SellOrder.id.desc())
        )
        return list(self._session.execute(statement).scalars())

    def instruments_with_queue(self) -> list[int]:
        statement = (
            select(SellOrder.instrument_id)
            .where(SellOrder.status.in_(_QUEUED_STATUSES))
            .distinct()
            .order_by(SellOrder.instrument_id)
        )
        return list(self._session.execute(statement).scalars())

    def spent_since(self, since: datetime) -> Decimal:
        """Total paid out of the buyback fund since ``since``."""

        statement = select(func.coalesce(func.sum(SellOrderSettlement.amount), 0)).where(
            SellOrderSettlement.created_at >= since
        )
        return self._scalar_decimal(statement)


__all__ = ["SellOrderRepository"]
