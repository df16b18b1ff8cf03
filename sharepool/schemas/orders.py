"""Sell order and settlement batch payloads."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from sharepool.domain.status import OrderStatus


class SellOrderCreate(BaseModel):
    """Orders are always priced at the instrument's current price; no price field is accepted."""

    model_config = ConfigDict(extra="forbid")

    instrument_id: int
    user_id: int
    quantity: int
    seller_wallet_id: int | None = None


class SellOrderModify(BaseModel):
    new_quantity: int


class SellOrderCancel(BaseModel):
    reason: str | None = None


class SellOrderView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    instrument_id: int
    quantity: int
    original_quantity: int
    remaining_quantity: int
    processed_quantity: int
    processed_amount: Decimal
    requested_price: Decimal
    fifo_position: int | None = None
    status: OrderStatus
    modification_count: int
    queued_at: datetime
    cancelled_at: datetime | None = None

    @field_serializer("processed_amount", "requested_price")
    def serialize_decimal(self, value: Decimal) -> str:
        return format(value, "f")


class BatchRequest(BaseModel):
    instrument_id: int
    max_orders: int | None = None
    available_funds: Decimal | None = None


class SettledOrderView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order_id: int
    quantity: int
    amount: Decimal
    status: OrderStatus
    remaining_quantity: int

    @field_serializer("amount")
    def serialize_amount(self, value: Decimal) -> str:
        return format(value, "f")


class FailedOrderView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order_id: int
    reason: str
    amount: Decimal

    @field_serializer("amount")
    def serialize_amount(self, value: Decimal) -> str:
        return format(value, "f")


class BatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    instrument_id: int
    batch_id: str
    processed: List[SettledOrderView] = Field(default_factory=list)
    failed: List[FailedOrderView] = Field(default_factory=list)
    spent: Decimal
    funds_available: Decimal | None = None
    skipped_reason: str | None = None
    stopped_reason: str | None = None

    @field_serializer("spent", "funds_available")
    def serialize_decimal(self, value: Decimal | None) -> str | None:
        return None if value is None else format(value, "f")


class BuybackSettingsPayload(BaseModel):
    is_enabled: bool
    auto_approval_limit: Decimal | None = None
    max_daily_amount: Decimal | None = None
    max_weekly_amount: Decimal | None = None
    batch_size: int
    minimum_fund_threshold: Decimal
    fund_wallet_type: str

    @field_serializer(
        "auto_approval_limit", "max_daily_amount", "max_weekly_amount", "minimum_fund_threshold"
    )
    def serialize_decimal(self, value: Decimal | None) -> str | None:
        return None if value is None else format(value, "f")


class BuybackSettingsUpdate(BaseModel):
    """Partial update; limits named in ``unset`` go back to unlimited."""

    is_enabled: bool | None = None
    auto_approval_limit: Decimal | None = None
    max_daily_amount: Decimal | None = None
    max_weekly_amount: Decimal | None = None
    batch_size: int | None = None
    minimum_fund_threshold: Decimal | None = None
    fund_wallet_type: str | None = None
    unset: List[Literal["auto_approval_limit", "max_daily_amount", "max_weekly_amount"]] = Field(default_factory=list)
    actor: str | None = None
