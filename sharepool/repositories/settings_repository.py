"""Data access for the append-only admin settings tables."""
from __future__ import annotations

from typing import TypeVar

from sqlalchemy import select

from sharepool.models import BookingSettings, BuybackSettings, PricingSettings

from .base import BaseRepository

S = TypeVar("S", PricingSettings, BuybackSettings, BookingSettings)


class SettingsRepository(BaseRepository):
    """Latest-row-wins reads and appends for admin settings."""

    def _latest(self, model: type[S]) -> S | None:
        statement = select(model).order_by(model.id.desc()).limit(1)
        return self._session.execute(statement).scalar_one_or_none()

    def latest_pricing(self) -> PricingSettings | None:
        return self._latest(PricingSettings)

    def latest_buyback(self) -> BuybackSettings | None:
        return self._latest(BuybackSettings)

    def latest_booking(self) -> BookingSettings | None:
        return self._latest(BookingSettings)


__all__ = ["SettingsRepository"]
