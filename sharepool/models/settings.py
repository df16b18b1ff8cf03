"""Admin settings tables; the most recent row of each is in force."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from sharepool.domain.config import ActivityPeriod

from .base import ID_TYPE, MONEY, PERCENT, Base, enum_type, utcnow


class PricingSettings(Base):
    __tablename__ = "pricing_settings"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sensitivity_scale: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    max_increase_percent: Mapped[Decimal] = mapped_column(PERCENT, nullable=False, default=Decimal("10"))
    max_decrease_percent: Mapped[Decimal] = mapped_column(PERCENT, nullable=False, default=Decimal("10"))
    minimum_price_floor: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    market_activity_period: Mapped[ActivityPeriod] = mapped_column(
        enum_type(ActivityPeriod, length=16), nullable=False, default=ActivityPeriod.DAILY
    )
    update_interval_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=24)
    created_by: Mapped[str | None] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class BuybackSettings(Base):
    __tablename__ = "buyback_settings"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    auto_approval_limit: Mapped[Decimal | None] = mapped_column(MONEY)
    max_daily_amount: Mapped[Decimal | None] = mapped_column(MONEY)
    max_weekly_amount: Mapped[Decimal | None] = mapped_column(MONEY)
    batch_size: Mapped[int] = mapped_column(Integer, nullable=False, default=10)
    minimum_fund_threshold: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    fund_wallet_type: Mapped[str] = mapped_column(String(32), nullable=False, default="share_buyback")
    created_by: Mapped[str | None] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class BookingSettings(Base):
    __tablename__ = "booking_settings"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    default_down_payment_percent: Mapped[Decimal] = mapped_column(
        PERCENT, nullable=False, default=Decimal("30")
    )
    min_down_payment_percent: Mapped[Decimal] = mapped_column(PERCENT, nullable=False, default=Decimal("10"))
    credit_period_days: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    proceeds_wallet_type: Mapped[str] = mapped_column(String(32), nullable=False, default="share_proceeds")
    created_by: Mapped[str | None] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


__all__ = ["BookingSettings", "BuybackSettings", "PricingSettings"]
