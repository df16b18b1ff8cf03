"""Query helpers over the share pool ledger tables."""
from __future__ import annotations

from .base import BaseRepository
from .booking_repository import BookingRepository
from .instrument_repository import InstrumentRepository
from .order_repository import SellOrderRepository
from .settings_repository import SettingsRepository
from .wallet_repository import WalletRepository

__all__ = [
    "BaseRepository",
    "BookingRepository",
    "InstrumentRepository",
    "SellOrderRepository",
    "SettingsRepository",
    "WalletRepository",
]
