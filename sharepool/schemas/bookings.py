"""Installment booking payloads."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, field_serializer

from sharepool.domain.status import BookingStatus


class BookingCreate(BaseModel):
    instrument_id: int
    user_id: int
    quantity: int
    payer_wallet_id: int
    down_payment_percent: Decimal | None = None


class BookingPaymentRequest(BaseModel):
    amount: Decimal


class BookingReduceRequest(BaseModel):
    new_quantity: int


class BookingCancelRequest(BaseModel):
    reason: str | None = None


class BookingView(BaseModel):
    """Booking with its derived payment percentage."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    instrument_id: int
    quantity: int
    booked_price_per_share: Decimal
    total_amount: Decimal
    down_payment_amount: Decimal
    cumulative_payments: Decimal
    remaining_amount: Decimal
    payment_percentage: Decimal
    shares_owned_progressively: int
    currency: str
    status: BookingStatus
    expires_at: datetime
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None

    @field_serializer(
        "booked_price_per_share",
        "total_amount",
        "down_payment_amount",
        "cumulative_payments",
        "remaining_amount",
        "payment_percentage",
    )
    def serialize_decimal(self, value: Decimal) -> str:
        return format(value, "f")


class BookingPaymentResponse(BaseModel):
    booking: BookingView
    amount: Decimal
    shares_unlocked: int

    @field_serializer("amount")
    def serialize_amount(self, value: Decimal) -> str:
        return format(value, "f")


class BookingSettingsPayload(BaseModel):
    default_down_payment_percent: Decimal
    min_down_payment_percent: Decimal
    credit_period_days: int
    proceeds_wallet_type: str

    @field_serializer("default_down_payment_percent", "min_down_payment_percent")
    def serialize_decimal(self, value: Decimal) -> str:
        return format(value, "f")


class BookingSettingsUpdate(BaseModel):
    default_down_payment_percent: Decimal | None = None
    min_down_payment_percent: Decimal | None = None
    credit_period_days: int | None = None
    proceeds_wallet_type: str | None = None
    actor: str | None = None
