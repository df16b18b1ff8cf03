"""Admin-tunable bounds, validated and passed explicitly into each operation."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum

from sharepool.core.errors import ConfigurationError


class ActivityPeriod(str, Enum):
    """Length of the market-activity comparison window."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"

    @property
    def length(self) -> timedelta:
        return timedelta(days=_PERIOD_DAYS[self])

    def windows(self, now: datetime) -> tuple["ActivityWindow", "ActivityWindow"]:
        """Return ``(current, previous)`` windows of equal length ending at ``now``."""

        current_start = now - self.length
        previous_start = current_start - self.length
        return (
            ActivityWindow(start=current_start, end=now),
            ActivityWindow(start=previous_start, end=current_start),
        )


_PERIOD_DAYS = {
    ActivityPeriod.DAILY: 1,
    ActivityPeriod.WEEKLY: 7,
    ActivityPeriod.MONTHLY: 30,
    ActivityPeriod.QUARTERLY: 90,
    ActivityPeriod.YEARLY: 365,
}


@dataclass(frozen=True, slots=True)
class ActivityWindow:
    """Half-open interval ``[start, end)`` of share transaction timestamps."""

    start: datetime
    end: datetime


def _decimal(value: object, default: str | None = None) -> Decimal | None:
    if value is None:
        return None if default is None else Decimal(default)
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True, slots=True)
class PricingConfig:
    """Bounds for the market-activity price formula."""

    is_enabled: bool = False
    sensitivity_scale: int = 5
    max_increase_percent: Decimal = Decimal("10")
    max_decrease_percent: Decimal = Decimal("10")
    minimum_price_floor: Decimal = Decimal("1.00")
    market_activity_period: ActivityPeriod = ActivityPeriod.DAILY
    update_interval_hours: int = 24

    @classmethod
    def from_row(cls, row: object | None) -> "PricingConfig":
        if row is None:
            return cls().validate()
        return cls(
            is_enabled=bool(getattr(row, "is_enabled")),
            sensitivity_scale=int(getattr(row, "sensitivity_scale")),
            max_increase_percent=_decimal(getattr(row, "max_increase_percent")),
            max_decrease_percent=_decimal(getattr(row, "max_decrease_percent")),
            minimum_price_floor=_decimal(getattr(row, "minimum_price_floor")),
            market_activity_period=ActivityPeriod(getattr(row, "market_activity_period")),
            update_interval_hours=int(getattr(row, "update_interval_hours")),
        ).validate()

    def validate(self) -> "PricingConfig":
        if not 1 <= self.sensitivity_scale <= 10:
            raise ConfigurationError(
                "sensitivity_scale must be between 1 and 10",
                sensitivity_scale=self.sensitivity_scale,
            )
        if self.max_increase_percent < 0:
            raise ConfigurationError("max_increase_percent cannot be negative")
        if not Decimal("0") <= self.max_decrease_percent < Decimal("100"):
            raise ConfigurationError("max_decrease_percent must be in [0, 100)")
        if self.minimum_price_floor <= 0:
            raise ConfigurationError("minimum_price_floor must be greater than zero")
        if self.update_interval_hours < 0:
            raise ConfigurationError("update_interval_hours cannot be negative")
        return self

    @property
    def sensitivity_multiplier(self) -> Decimal:
        return Decimal(self.sensitivity_scale) * Decimal("0.2")

    def ensure_floor_reachable(self, current_price: Decimal) -> None:
        """Reject a floor that no single capped increase can ever reach."""

        ceiling = current_price * (1 + self.max_increase_percent / Decimal(100))
        if self.minimum_price_floor > ceiling:
            raise ConfigurationError(
                "minimum_price_floor is unreachable from the current price",
                minimum_price_floor=str(self.minimum_price_floor),
                current_price=str(current_price),
                max_increase_percent=str(self.max_increase_percent),
            )


@dataclass(frozen=True, slots=True)
class BuybackConfig:
    """Funding limits for settlement batches. ``None`` means unlimited."""

    is_enabled: bool = True
    auto_approval_limit: Decimal | None = None
    max_daily_amount: Decimal | None = None
    max_weekly_amount: Decimal | None = None
    batch_size: int = 10
    minimum_fund_threshold: Decimal = Decimal("0")
    fund_wallet_type: str = "share_buyback"

    @classmethod
    def from_row(cls, row: object | None) -> "BuybackConfig":
        if row is None:
            return cls().validate()
        return cls(
            is_enabled=bool(getattr(row, "is_enabled")),
            auto_approval_limit=_decimal(getattr(row, "auto_approval_limit")),
            max_daily_amount=_decimal(getattr(row, "max_daily_amount")),
            max_weekly_amount=_decimal(getattr(row, "max_weekly_amount")),
            batch_size=int(getattr(row, "batch_size")),
            minimum_fund_threshold=_decimal(getattr(row, "minimum_fund_threshold"), "0"),
            fund_wallet_type=str(getattr(row, "fund_wallet_type")),
        ).validate()

    def validate(self) -> "BuybackConfig":
        if self.auto_approval_limit is not None and self.auto_approval_limit <= 0:
            raise ConfigurationError("auto_approval_limit must be greater than zero")
        for name in ("max_daily_amount", "max_weekly_amount"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ConfigurationError(f"{name} cannot be negative")
        if (
            self.max_daily_amount is not None
            and self.max_weekly_amount is not None
            and self.max_weekly_amount < self.max_daily_amount
        ):
            raise ConfigurationError(
                "max_weekly_amount cannot be lower than max_daily_amount",
                max_daily_amount=str(self.max_daily_amount),
                max_weekly_amount=str(self.max_weekly_amount),
            )
        if self.batch_size < 1:
            raise ConfigurationError("batch_size must be at least 1")
        if self.minimum_fund_threshold < 0:
            raise ConfigurationError("minimum_fund_threshold cannot be negative")
        if not self.fund_wallet_type:
            raise ConfigurationError("fund_wallet_type is required")
        return self


@dataclass(frozen=True, slots=True)
class BookingConfig:
    """Installment purchase terms."""

    default_down_payment_percent: Decimal = Decimal("30")
    min_down_payment_percent: Decimal = Decimal("10")
    credit_period_days: int = 30
    proceeds_wallet_type: str = "share_proceeds"

    @classmethod
    def from_row(cls, row: object | None) -> "BookingConfig":
        if row is None:
            return cls().validate()
        return cls(
            default_down_payment_percent=_decimal(getattr(row, "default_down_payment_percent")),
            min_down_payment_percent=_decimal(getattr(row, "min_down_payment_percent")),
            credit_period_days=int(getattr(row, "credit_period_days")),
            proceeds_wallet_type=str(getattr(row, "proceeds_wallet_type")),
        ).validate()

    def validate(self) -> "BookingConfig":
        if not Decimal("0") < self.min_down_payment_percent <= Decimal("100"):
            raise ConfigurationError("min_down_payment_percent must be in (0, 100]")
        if not self.min_down_payment_percent <= self.default_down_payment_percent <= Decimal("100"):
            raise ConfigurationError(
                "default_down_payment_percent must lie between the minimum and 100",
                default_down_payment_percent=str(self.default_down_payment_percent),
                min_down_payment_percent=str(self.min_down_payment_percent),
            )
        if self.credit_period_days < 1:
            raise ConfigurationError("credit_period_days must be at least 1")
        if not self.proceeds_wallet_type:
            raise ConfigurationError("proceeds_wallet_type is required")
        return self


__all__ = [
    "ActivityPeriod",
    "ActivityWindow",
    "BookingConfig",
    "BuybackConfig",
    "PricingConfig",
]
