"""Load and append the admin-tunable bounds for pricing, buyback and bookings."""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import fields, replace
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy.orm import Session

from sharepool.core.errors import ValidationError
from sharepool.core.logger import get_logger
from sharepool.domain.config import ActivityPeriod, BookingConfig, BuybackConfig, PricingConfig
from sharepool.models import BookingSettings, BuybackSettings, PricingSettings
from sharepool.repositories.settings_repository import SettingsRepository

LOGGER = get_logger(__name__)


_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _flag(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValidationError(f"Invalid value for {name}", field=name, value=str(value))


def _coerce(config_type: type, name: str, value: Any) -> Any:
    """Convert API/CLI input to the field's type before validation."""

    current = getattr(config_type(), name)
    if isinstance(current, bool):
        return _flag(name, value)
    try:
        if isinstance(current, ActivityPeriod):
            return ActivityPeriod(value)
        if isinstance(current, int):
            return int(value)
        if isinstance(current, Decimal) or current is None:
            return value if isinstance(value, Decimal) else Decimal(str(value))
    except (ValueError, InvalidOperation) as exc:
        raise ValidationError(f"Invalid value for {name}", field=name, value=str(value)) from exc
    return value


class SettingsService:
    """Reads the latest settings row per table, validated, on every call."""

    def __init__(self, session: Session, repository: SettingsRepository | None = None) -> None:
        self._session = session
        self._repository = repository or SettingsRepository(session)

    def pricing_config(self) -> PricingConfig:
        return PricingConfig.from_row(self._repository.latest_pricing())

    def buyback_config(self) -> BuybackConfig:
        return BuybackConfig.from_row(self._repository.latest_buyback())

    def booking_config(self) -> BookingConfig:
        return BookingConfig.from_row(self._repository.latest_booking())

    def _merge(self, current: Any, changes: dict[str, Any], unset: Iterable[str] = ()) -> Any:
        """Apply ``changes`` on top of ``current``; names in ``unset`` go back to unlimited."""

        config_type = type(current)
        names = {field.name for field in fields(current)}
        cleared = set(unset)
        unknown = sorted((set(changes) | cleared) - names)
        if unknown:
            raise ValidationError("Unknown settings", fields=unknown)
        not_optional = sorted(name for name in cleared if getattr(config_type(), name) is not None)
        if not_optional:
            raise ValidationError("Only optional limits can be cleared", fields=not_optional)
        both = sorted(cleared & {name for name, value in changes.items() if value is not None})
        if both:
            raise ValidationError("A setting cannot be both changed and cleared", fields=both)
        merged: dict[str, Any] = {name: None for name in cleared}
        for name, value in changes.items():
            if value is not None:
                merged[name] = _coerce(config_type, name, value)
        return replace(current, **merged).validate()

    def update_pricing(self, *, actor: str | None = None, **changes: Any) -> PricingConfig:
        config = self._merge(self.pricing_config(), changes)
        self._session.add(
            PricingSettings(
                is_enabled=config.is_enabled,
                sensitivity_scale=config.sensitivity_scale,
                max_increase_percent=config.max_increase_percent,
                max_decrease_percent=config.max_decrease_percent,
                minimum_price_floor=config.minimum_price_floor,
                market_activity_period=config.market_activity_period,
                update_interval_hours=config.update_interval_hours,
                created_by=actor,
            )
        )
        self._session.flush()
        LOGGER.info("Pricing settings updated by %s: %s", actor or "system", sorted(changes))
        return config

    def update_buyback(
        self,
        *,
        actor: str | None = None,
        unset: Iterable[str] = (),
        **changes: Any,
    ) -> BuybackConfig:
        cleared = tuple(unset)
        config = self._merge(self.buyback_config(), changes, cleared)
        self._session.add(
            BuybackSettings(
                is_enabled=config.is_enabled,
                auto_approval_limit=config.auto_approval_limit,
                max_daily_amount=config.max_daily_amount,
                max_weekly_amount=config.max_weekly_amount,
                batch_size=config.batch_size,
                minimum_fund_threshold=config.minimum_fund_threshold,
                fund_wallet_type=config.fund_wallet_type,
                created_by=actor,
            )
        )
        self._session.flush()
        LOGGER.info(
            "Buyback settings updated by %s: %s, cleared %s", actor or "system", sorted(changes), sorted(cleared)
        )
        return config

    def update_booking(self, *, actor: str | None = None, **changes: Any) -> BookingConfig:
        config = self._merge(self.booking_config(), changes)
        self._session.add(
            BookingSettings(
                default_down_payment_percent=config.default_down_payment_percent,
                min_down_payment_percent=config.min_down_payment_percent,
                credit_period_days=config.credit_period_days,
                proceeds_wallet_type=config.proceeds_wallet_type,
                created_by=actor,
            )
        )
        self._session.flush()
        LOGGER.info("Booking settings updated by %s: %s", actor or "system", sorted(changes))
        return config


__all__ = ["SettingsService"]
