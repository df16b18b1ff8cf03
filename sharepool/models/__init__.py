"""Database models for the share pool ledger."""
from __future__ import annotations

from .base import Base, utcnow
from .bookings import Booking, BookingPayment
from .funds import FundDirection, FundMovement, Wallet, WalletOwnerType
from .instrument import Instrument, PriceHistory, ShareHolding, ShareTransaction
from .orders import SellOrder, SellOrderSettlement
from .settings import BookingSettings, BuybackSettings, PricingSettings

__all__ = [
    "Base",
    "Booking",
    "BookingPayment",
    "BookingSettings",
    "BuybackSettings",
    "FundDirection",
    "FundMovement",
    "Instrument",
    "PriceHistory",
    "PricingSettings",
    "SellOrder",
    "SellOrderSettlement",
    "ShareHolding",
    "ShareTransaction",
    "Wallet",
    "WalletOwnerType",
    "utcnow",
]
