"""Pure value types, status machines and arithmetic for the share pool."""
from __future__ import annotations

from .booking import BookingQuote, payment_percentage, shares_unlocked, status_for
from .config import ActivityPeriod, ActivityWindow, BookingConfig, BuybackConfig, PricingConfig
from .fifo import FifoQueue
from .pricing import PriceCalculation, TradeActivity, compute_market_activity_price, percent_change
from .settlement import FillPlan, plan_fill
from .status import (
    BOUGHT_BACK_TYPES,
    SOLD_TYPES,
    BookingStatus,
    OrderStatus,
    PriceMethod,
    PriceMode,
    TransactionStatus,
    TransactionType,
)

__all__ = [
    "ActivityPeriod",
    "ActivityWindow",
    "BOUGHT_BACK_TYPES",
    "BookingConfig",
    "BookingQuote",
    "BookingStatus",
    "BuybackConfig",
    "FifoQueue",
    "FillPlan",
    "OrderStatus",
    "PriceCalculation",
    "PriceMethod",
    "PriceMode",
    "PricingConfig",
    "SOLD_TYPES",
    "TradeActivity",
    "TransactionStatus",
    "TransactionType",
    "compute_market_activity_price",
    "payment_percentage",
    "percent_change",
    "plan_fill",
    "shares_unlocked",
    "status_for",
]
