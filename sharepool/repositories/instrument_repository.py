"""Data access for the instrument, its price history, holdings and trade activity."""
from __future__ import annotations

from sqlalchemy import case, func, select

from sharepool.domain.config import ActivityWindow
from sharepool.domain.pricing import TradeActivity
from sharepool.domain.status import (
    BOUGHT_BACK_TYPES,
    SOLD_TYPES,
    PriceMethod,
    PriceMode,
    TransactionStatus,
)
from sharepool.models import Instrument, PriceHistory, ShareHolding, ShareTransaction

from .base import BaseRepository


class InstrumentRepository(BaseRepository):
    """Repository for instrument state and the tables derived from it."""

    def get(self, instrument_id: int) -> Instrument | None:
        return self._session.get(Instrument, instrument_id)

    def lock(self, instrument_id: int) -> Instrument:
        return self._lock(Instrument, instrument_id, "Instrument")

    def list_ids_in_mode(self, mode: PriceMode) -> list[int]:
        statement = (
            select(Instrument.id)
            .where(Instrument.price_calculation_mode == mode)
            .order_by(Instrument.id)
        )
        return list(self._session.execute(statement).scalars())

    # Price history -----------------------------------------------------

    def latest_in_lineage(self, instrument_id: int, mode: PriceMode) -> PriceHistory | None:
        """Most recent price record written while ``mode`` was (or became) active."""

        statement = (
            select(PriceHistory)
            .where(
                PriceHistory.instrument_id == instrument_id,
                PriceHistory.calculation_method.in_(PriceMethod.lineage(mode)),
            )
            .order_by(PriceHistory.id.desc())
            .limit(1)
        )
        return self._session.execute(statement).scalar_one_or_none()

    def latest_with_method(self, instrument_id: int, method: PriceMethod) -> PriceHistory | None:
        statement = (
            select(PriceHistory)
            .where(
                PriceHistory.instrument_id == instrument_id,
                PriceHistory.calculation_method == method,
            )
            .order_by(PriceHistory.id.desc())
            .limit(1)
        )
        return self._session.execute(statement).scalar_one_or_none()

    def price_history(self, instrument_id: int, *, limit: int = 50) -> list[PriceHistory]:
        statement = (
            select(PriceHistory)
            .where(PriceHistory.instrument_id == instrument_id)
            .order_by(PriceHistory.id.desc())
            .limit(limit)
        )
        return list(self._session.execute(statement).scalars())

    # Trade activity ----------------------------------------------------

    def trade_activity(self, instrument_id: int, window: ActivityWindow) -> TradeActivity:
        """Sum completed sold and bought-back quantities inside ``window``."""

        sold = func.coalesce(
            func.sum(
                case(
                    (ShareTransaction.transaction_type.in_(SOLD_TYPES), ShareTransaction.quantity),
                    else_=0,
                )
            ),
            0,
        )
        bought_back = func.coalesce(
            func.sum(
                case(
                    (ShareTransaction.transaction_type.in_(BOUGHT_BACK_TYPES), ShareTransaction.quantity),
                    else_=0,
                )
            ),
            0,
        )
        statement = select(sold, bought_back).where(
            ShareTransaction.instrument_id == instrument_id,
            ShareTransaction.status == TransactionStatus.COMPLETED,
            ShareTransaction.created_at >= window.start,
            ShareTransaction.created_at < window.end,
        )
        row = self._session.execute(statement).one()
        return TradeActivity(sold_quantity=int(row[0] or 0), bought_back_quantity=int(row[1] or 0))

    def record_transaction(self, transaction: ShareTransaction) -> ShareTransaction:
        return self.add(transaction)

    # Holdings ----------------------------------------------------------

    def lock_holding(self, user_id: int, instrument_id: int) -> ShareHolding | None:
        statement = select(ShareHolding).where(
            ShareHolding.user_id == user_id, ShareHolding.instrument_id == instrument_id
        )
        rows = self._locked_rows(statement, "Share holding")
        return rows[0] if rows else None

    def holding_for_update(self, user_id: int, instrument_id: int) -> ShareHolding:
        """Locked holding row, created empty when the user holds nothing yet."""

        holding = self.lock_holding(user_id, instrument_id)
        if holding is None:
            holding = ShareHolding(
                user_id=user_id, instrument_id=instrument_id, quantity=0, reserved_quantity=0
            )
            self.add(holding)
            self._session.flush()
        return holding


__all__ = ["InstrumentRepository"]
