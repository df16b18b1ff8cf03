"""Instrument price, history and pricing settings payloads."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from sharepool.domain.config import ActivityPeriod
from sharepool.domain.status import PriceMethod, PriceMode


def _plain(value: Decimal | None) -> str | None:
    return None if value is None else format(value, "f")


class InstrumentSnapshot(BaseModel):
    """Current state of the pooled instrument."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    symbol: str
    name: str
    current_price: Decimal
    available_shares: int
    total_shares: int
    currency: str
    price_calculation_mode: PriceMode
    version: int

    @field_serializer("current_price")
    def serialize_price(self, value: Decimal) -> str:
        return format(value, "f")


class PriceHistoryEntry(BaseModel):
    """One immutable price history record."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    price: Decimal
    previous_price: Decimal | None = None
    percent_change: Decimal
    calculation_method: PriceMethod
    factors: dict[str, Any] = Field(default_factory=dict)
    notes: str | None = None
    created_by: str | None = None
    created_at: datetime

    @field_serializer("price", "previous_price", "percent_change")
    def serialize_decimal(self, value: Decimal | None) -> str | None:
        return _plain(value)


class ActivitySnapshot(BaseModel):
    sold_quantity: int
    bought_back_quantity: int
    net_movement: int


class PricePreview(BaseModel):
    """Intermediate values of a recalculation that has not been written."""

    current_price: Decimal
    new_price: Decimal
    raw_change_percent: Decimal
    weighted_change_percent: Decimal
    capped_change_percent: Decimal
    actual_change_percent: Decimal
    floor_applied: bool
    significant: bool
    current_period: ActivitySnapshot
    previous_period: ActivitySnapshot

    @field_serializer(
        "current_price",
        "new_price",
        "raw_change_percent",
        "weighted_change_percent",
        "capped_change_percent",
        "actual_change_percent",
    )
    def serialize_decimal(self, value: Decimal) -> str:
        return format(value, "f")


class RecalculationResponse(BaseModel):
    applied: bool
    preview: PricePreview
    record: PriceHistoryEntry | None = None


class ModeSwitchRequest(BaseModel):
    target: PriceMode
    expected_version: int | None = None
    actor: str | None = None
    notes: str | None = None


class ManualPriceRequest(BaseModel):
    price: Decimal
    expected_version: int | None = None
    actor: str | None = None
    notes: str | None = None


class PriceChangeResponse(BaseModel):
    """Instrument after a mode switch or manual price; ``record`` is null for no-ops."""

    instrument: InstrumentSnapshot
    record: PriceHistoryEntry | None = None


class PricingSettingsPayload(BaseModel):
    is_enabled: bool
    sensitivity_scale: int
    max_increase_percent: Decimal
    max_decrease_percent: Decimal
    minimum_price_floor: Decimal
    market_activity_period: ActivityPeriod
    update_interval_hours: int

    @field_serializer("max_increase_percent", "max_decrease_percent", "minimum_price_floor")
    def serialize_decimal(self, value: Decimal) -> str:
        return format(value, "f")


class PricingSettingsUpdate(BaseModel):
    """Partial update; omitted fields keep their current value."""

    is_enabled: bool | None = None
    sensitivity_scale: int | None = None
    max_increase_percent: Decimal | None = None
    max_decrease_percent: Decimal | None = None
    minimum_price_floor: Decimal | None = None
    market_activity_period: ActivityPeriod | None = None
    update_interval_hours: int | None = None
    actor: str | None = None
