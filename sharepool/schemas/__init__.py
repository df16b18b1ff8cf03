"""Pydantic schemas for request and response payloads."""

from .bookings import (
    BookingCancelRequest,
    BookingCreate,
    BookingPaymentRequest,
    BookingPaymentResponse,
    BookingReduceRequest,
    BookingSettingsPayload,
    BookingSettingsUpdate,
    BookingView,
)
from .orders import (
    BatchRequest,
    BatchResponse,
    BuybackSettingsPayload,
    BuybackSettingsUpdate,
    FailedOrderView,
    SellOrderCancel,
    SellOrderCreate,
    SellOrderModify,
    SellOrderView,
    SettledOrderView,
)
from .pricing import (
    ActivitySnapshot,
    InstrumentSnapshot,
    ManualPriceRequest,
    ModeSwitchRequest,
    PriceChangeResponse,
    PriceHistoryEntry,
    PricePreview,
    PricingSettingsPayload,
    PricingSettingsUpdate,
    RecalculationResponse,
)

__all__ = [
    "ActivitySnapshot",
    "BatchRequest",
    "BatchResponse",
    "BookingCancelRequest",
    "BookingCreate",
    "BookingPaymentRequest",
    "BookingPaymentResponse",
    "BookingReduceRequest",
    "BookingSettingsPayload",
    "BookingSettingsUpdate",
    "BookingView",
    "BuybackSettingsPayload",
    "BuybackSettingsUpdate",
    "FailedOrderView",
    "InstrumentSnapshot",
    "ManualPriceRequest",
    "ModeSwitchRequest",
    "PriceChangeResponse",
    "PriceHistoryEntry",
    "PricePreview",
    "PricingSettingsPayload",
    "PricingSettingsUpdate",
    "RecalculationResponse",
    "SellOrderCancel",
    "SellOrderCreate",
    "SellOrderModify",
    "SellOrderView",
    "SettledOrderView",
]
